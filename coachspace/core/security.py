from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt, JWTError

from ..config import get_settings
from .constants import ROLE_STUDENT


class InvalidToken(Exception):
    pass


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller identity as asserted by the external identity provider."""

    user_id: str
    role: str = ROLE_STUDENT


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise InvalidToken("Could not validate credentials") from exc
    user_id = payload.get("sub")
    if not user_id:
        raise InvalidToken("Token has no subject")
    return Principal(user_id=str(user_id), role=payload.get("role") or ROLE_STUDENT)


def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
