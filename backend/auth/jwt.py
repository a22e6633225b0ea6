from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..config import settings
from ..models.models import Resident

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _create_token(data: dict, expires_minutes: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode = data.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict) -> str:
    payload = data.copy()
    payload.setdefault("type", "access")
    return _create_token(payload, settings.access_token_expire_minutes)


def create_refresh_token(resident_id: str) -> str:
    payload = {"sub": resident_id, "type": "refresh"}
    return _create_token(payload, settings.refresh_token_expire_minutes)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def _resident_from_token(db: Session, token: str) -> Optional[Resident]:
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    resident_id: Optional[str] = payload.get("sub")
    if resident_id is None or payload.get("type") not in (None, "access"):
        return None
    try:
        return db.get(Resident, int(resident_id))
    except ValueError:
        return None


def get_current_resident(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Resident:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    resident = _resident_from_token(db, token)
    if resident is None or not resident.is_active:
        raise credentials_exception
    if resident.is_blocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=resident.block_reason or "Account is blocked")
    return resident


def require_roles(*allowed_roles: str):
    allowed = set(allowed_roles)

    def role_checker(resident: Resident = Depends(get_current_resident)) -> Resident:
        if not allowed:
            return resident
        if resident.has_any_role(*allowed):
            return resident
        raise HTTPException(status_code=403, detail="Operation not permitted for your role")

    return role_checker
