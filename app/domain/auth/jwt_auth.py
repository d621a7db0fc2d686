"""Bearer token verification for members and admins.

Tokens are HS256 JWTs issued by the member auth service with the payload
``{memberId, email, role}``.
"""

from datetime import timedelta

import jwt
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.shared.domain.time_utils import utc_now

JWT_ALGORITHM = "HS256"

ROLE_ADMIN = "admin"
ROLE_GUEST = "guest"


class InvalidTokenError(Exception):
    """Token is missing, malformed, expired, or not signed with our secret."""


class AuthSubject(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    member_id: str = Field(alias="memberId", min_length=1)
    email: str | None = None
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def verify_token(token: str | None, secret: str | None) -> AuthSubject:
    """Decode and validate a bearer token. Guests are not accepted."""
    if not token:
        raise InvalidTokenError("Missing token")
    if not secret:
        # Without a secret nothing can be verified
        logger.error("JWT_SECRET is not configured, rejecting token")
        raise InvalidTokenError("Token verification is not configured")

    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug(f"Token rejected: {type(e).__name__}")
        raise InvalidTokenError("Invalid token") from e

    try:
        subject = AuthSubject.model_validate(payload)
    except ValidationError as e:
        raise InvalidTokenError("Invalid token payload") from e

    if subject.role == ROLE_GUEST:
        raise InvalidTokenError("Guest tokens are not accepted")

    return subject


def sign_token(
    member_id: str,
    secret: str,
    *,
    email: str | None = None,
    role: str = "member",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    payload = {
        "memberId": member_id,
        "email": email,
        "role": role,
        "exp": utc_now() + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
