"""
Role profile check shared by every path that hands out a session token.

A role alone grants nothing: citizens need their citizen profile and
administrators need a municipal staff record before a token is issued.
"""

from .exceptions import Forbidden
from .models import UserRecord
from .ports import Role, Transaction


def require_role_profile(tx: Transaction, user: UserRecord) -> None:
    """
    Raises:
        Forbidden: Citizen without a citizen profile, or administrator
            without a staff record
    """
    if user.role is Role.CITIZEN and tx.get_citizen_by_user(user.id) is None:
        raise Forbidden("Citizen record not found")
    if user.role is Role.ADMINISTRATOR and not tx.has_staff_record(user.id):
        raise Forbidden("Admin record not found")
