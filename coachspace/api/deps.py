from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from ..core import errors
from ..core.security import InvalidToken, Principal, decode_access_token
from ..services.booking_service import BookingManager, get_booking_manager


bearer_scheme = HTTPBearer(auto_error=False)

_ERROR_STATUS: list[tuple[type[errors.BookingError], int]] = [
    (errors.ClassNotFound, status.HTTP_404_NOT_FOUND),
    (errors.BookingNotFound, status.HTTP_404_NOT_FOUND),
    (errors.AlreadyBooked, status.HTTP_409_CONFLICT),
    (errors.ClassFull, status.HTTP_409_CONFLICT),
    (errors.InvalidTransition, status.HTTP_409_CONFLICT),
    (errors.ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (errors.PersistenceTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (errors.PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(exc: errors.BookingError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(credentials.credentials)
    except InvalidToken as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_roles(*roles: str):
    def dependency(user: Annotated[Principal, Depends(get_current_user)]) -> Principal:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return dependency


def get_manager() -> BookingManager:
    return get_booking_manager()
