import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.core.security import create_access_token, get_password_hash, verify_password, verify_token
from app.models.user import User
from app.schemas.auth import AuthResponse, RegisterRequest
from app.schemas.enums import Role

logger = logging.getLogger(__name__)

router = APIRouter()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> User:
    if not authorization:
        raise _unauthorized("Authorization header required")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _unauthorized("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid authentication scheme")

    payload, error = verify_token(token)
    if error == "expired":
        raise _unauthorized("Token has expired")
    elif error == "invalid":
        raise _unauthorized("Invalid token")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise _unauthorized("Token payload invalid")

    # Re-read the row so bans and role changes apply to live tokens
    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("Account is inactive")

    return user


def get_current_identity(user: User = Depends(get_current_user)) -> IdentityContext:
    return IdentityContext.from_user(user)


def _auth_response(user: User) -> dict:
    expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    return {
        "user_id": user.id,
        "username": user.username,
        "role": user.role,
        "access_token": create_access_token(data={"sub": str(user.id)}, expires_delta=expires_delta),
        "token_type": "bearer",
        "expires": datetime.now(timezone.utc) + expires_delta,
    }


@router.post("/register", response_model=AuthResponse)
def register_user(user_data: RegisterRequest, db: Session = Depends(get_db)):
    if db.query(User).filter(User.username == user_data.username).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken"
        )
    if db.query(User).filter(User.email == user_data.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered"
        )

    db_user = User(
        username=user_data.username,
        email=user_data.email,
        passwordhash=get_password_hash(user_data.password),
        role=Role.CONTRIBUTOR.value,
        is_active=True,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"User {db_user.id} registered")
    return _auth_response(db_user)


@router.post("/login", response_model=AuthResponse)
def login(username: str = Form(), password: str = Form(), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.passwordhash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated",
        )

    return _auth_response(user)
