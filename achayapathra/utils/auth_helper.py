import os
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session, select

from achayapathra.models.user import User

ALGORITHM = "HS256"

bearer_scheme_required = HTTPBearer(auto_error=True)


def get_jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "your_really_long_secret_key")


def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_required)):
    try:
        payload = jwt.decode(
            token.credentials,
            get_jwt_secret(),
            algorithms=[ALGORITHM],
        )
        return payload
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_db_user(session: Session, current_user) -> User:
    user = session.exec(
        select(User).where(User.public_id == current_user["sub"])
    ).first()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return user


def require_admin(session: Session, current_user) -> User:
    user = get_db_user(session, current_user)
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
