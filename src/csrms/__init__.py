"""
CSRMS - Citizen Service Request Management System.

Citizens submit service requests, administrators move them through the
request lifecycle, and both roles verify their email with one-time codes.
"""

__version__ = "0.1.0"
