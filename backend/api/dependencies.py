from typing import Generator

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import SessionLocal
from ..constants import MANAGER_ROLES
from ..models.models import Resident


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_manager(resident: Resident) -> bool:
    return resident.has_any_role(*MANAGER_ROLES)


def ensure_self_or_manager(resident: Resident, resident_id: int) -> None:
    """Residents may act on their own records; board members and developers on anyone's."""
    if resident.id != resident_id and not is_manager(resident):
        raise HTTPException(status_code=403, detail="Not allowed to access another resident's records")
