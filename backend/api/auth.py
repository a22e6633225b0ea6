from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import create_access_token, create_refresh_token, decode_token, get_current_resident
from ..core.clock import get_now
from ..models.models import Resident
from ..schemas.schemas import ResidentRead, ResidentSignup, Token, TokenRefreshRequest
from ..services import residents as resident_service

router = APIRouter()


def _build_token_response(resident: Resident) -> Token:
    role_names = sorted(resident.role_names)
    access_token = create_access_token({"sub": str(resident.id), "roles": role_names, "type": "access"})
    refresh_token = create_refresh_token(str(resident.id))
    return Token(access_token=access_token, refresh_token=refresh_token, token_type="bearer", roles=role_names)


def _ensure_not_blocked(resident: Resident) -> None:
    if resident.is_blocked:
        detail = "Account is blocked"
        if resident.block_reason:
            detail = f"{detail}: {resident.block_reason}"
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
) -> Token:
    resident = resident_service.authenticate_resident(db, form_data.username, form_data.password)
    if resident is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    _ensure_not_blocked(resident)
    return _build_token_response(resident)


@router.post("/signup", response_model=ResidentRead, status_code=status.HTTP_201_CREATED)
def signup(
    payload: ResidentSignup,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> Resident:
    resident = resident_service.create_resident(db, now=now, **payload.model_dump())
    db.commit()
    db.refresh(resident)
    return resident


@router.post("/refresh", response_model=Token)
def refresh_token(
    payload: TokenRefreshRequest,
    db: Session = Depends(get_db),
) -> Token:
    credentials_exception = HTTPException(status_code=401, detail="Invalid refresh token")
    try:
        decoded = decode_token(payload.refresh_token)
    except JWTError as exc:
        raise credentials_exception from exc

    if decoded.get("type") != "refresh" or not decoded.get("sub"):
        raise credentials_exception

    resident = db.get(Resident, int(decoded["sub"]))
    if not resident or not resident.is_active:
        raise credentials_exception
    _ensure_not_blocked(resident)
    return _build_token_response(resident)


@router.get("/me", response_model=ResidentRead)
def read_me(resident: Resident = Depends(get_current_resident)) -> Resident:
    return resident
