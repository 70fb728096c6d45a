"""Token adapters - signed session credentials."""

from .jwt_issuer import JwtTokenIssuer

__all__ = ["JwtTokenIssuer"]
