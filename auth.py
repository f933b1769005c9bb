"""
Admin authentication

There is a single admin identity guarded by a shared secret. A correct
secret buys a signed JWT carrying {"role": "admin"} that expires after
JWT_EXPIRES_MIN minutes. Nothing is stored server side: a token is valid
as long as its signature checks out and it has not expired.
"""

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import InvalidCredential, InvalidOrExpiredToken, MalformedHeader, MissingCredential

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


class AuthGate:
    def __init__(self, settings, clock: Optional[Callable[[], datetime]] = None):
        self._jwt_secret = settings.jwt_secret
        self._password = settings.admin_password
        self._password_hash = settings.admin_password_hash
        self._expires = timedelta(minutes=settings.jwt_expires_min)
        self._clock = clock or _utcnow

    def verify_password(self, supplied: str) -> bool:
        if self._password_hash:
            try:
                return pwd_context.verify(supplied, self._password_hash)
            except ValueError:
                logger.error("ADMIN_PASSWORD_HASH is not a recognized hash format")
                return False
        return hmac.compare_digest(supplied.encode("utf-8"), self._password.encode("utf-8"))

    def issue_token(self, supplied: Optional[str]) -> str:
        if not supplied:
            raise MissingCredential()
        if not self.verify_password(supplied):
            logger.warning("Admin login rejected")
            raise InvalidCredential()

        issued = self._clock()
        claims = {
            "role": "admin",
            "iat": int(issued.timestamp()),
            "exp": int((issued + self._expires).timestamp()),
        }
        logger.info("Admin token issued, valid until %s", (issued + self._expires).isoformat())
        return jwt.encode(claims, self._jwt_secret, algorithm=JWT_ALG)

    def authorize(self, header: Optional[str]) -> None:
        """
        Accept `Authorization: Bearer <token>` when the token is signed with
        our key and not yet expired; raise otherwise.
        """
        if not header:
            raise MalformedHeader("Missing Authorization header")
        parts = header.split()
        if len(parts) != 2 or parts[0] != "Bearer":
            raise MalformedHeader("Invalid authorization format")

        try:
            # Expiry is checked against our own clock below.
            claims = jwt.decode(
                parts[1], self._jwt_secret, algorithms=[JWT_ALG], options={"verify_exp": False}
            )
        except JWTError:
            logger.warning("Rejected token with bad signature or encoding")
            raise InvalidOrExpiredToken()

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or self._clock().timestamp() > exp:
            logger.info("Rejected expired token")
            raise InvalidOrExpiredToken()
