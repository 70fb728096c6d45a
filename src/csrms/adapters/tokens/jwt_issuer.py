"""
JWT token issuer adapter - Implements TokenIssuer protocol.

Session tokens carry ``sub`` (user id), ``role`` and ``email`` and expire
after a fixed lifetime. Signing uses python-jose.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from jose import JWTError, jwt

from csrms.domain.exceptions import Unauthorized
from csrms.domain.models import Principal, UserRecord, utc_now
from csrms.domain.ports import Role


class JwtTokenIssuer:
    """
    Implements TokenIssuer protocol with HMAC-signed JWTs.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_seconds: int = 86400,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expires = timedelta(seconds=expires_seconds)
        self._clock = clock

    def issue(self, user: UserRecord) -> str:
        claims = {
            "sub": str(user.id),
            "role": user.role.value,
            "email": user.email,
            "exp": self._clock() + self._expires,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Principal:
        """
        Validate signature and expiry and return the carried identity.

        Raises:
            Unauthorized: Malformed, tampered or expired token
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
            return Principal(
                user_id=int(payload["sub"]),
                role=Role(payload["role"]),
                email=payload["email"],
            )
        except (JWTError, KeyError, ValueError) as e:
            raise Unauthorized("Invalid token") from e
