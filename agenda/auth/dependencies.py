import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from agenda.auth import jwt_handler
from agenda.database import get_db
from agenda.models.user import Role, User
from agenda.scheduling.context import CallerContext
from agenda.scheduling.directory import Directory, normalize_email

security = HTTPBearer()


def get_token_subject(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email or not normalize_email(email):
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return normalize_email(email)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    email = get_token_subject(credentials)
    user = Directory(db).find_by_email(email)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_caller_context(current_user: User = Depends(get_current_user)) -> CallerContext:
    # The role always comes from our users table, never from the token or the request body.
    return CallerContext(user_id=current_user.id, role=Role(current_user.role))
