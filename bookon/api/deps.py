from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session
from bookon.db.session import get_db
from bookon.core.errors import (
    BookOnError,
    IneligibleCancellationError,
    InsufficientCreditsError,
    NotFoundError,
    PersistenceFailure,
    RefundAlreadyProcessedError,
)
from bookon.core.security import decode_token
from bookon.models.user import User

bearer = HTTPBearer(auto_error=False)

STAFF_ROLES = ("admin", "staff")

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, payload.get("sub"))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user

def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard

_STATUS_BY_ERROR = {
    NotFoundError: 404,
    IneligibleCancellationError: 409,
    RefundAlreadyProcessedError: 409,
    InsufficientCreditsError: 400,
    PersistenceFailure: 500,
}

def http_error(exc: BookOnError) -> HTTPException:
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400)
    return HTTPException(status_code=status, detail={"code": exc.code, "message": exc.message})
