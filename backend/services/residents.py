import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.jwt import get_password_hash, verify_password
from ..core.clock import utcnow
from ..core.errors import ConflictError, NotFoundError, ValidationError, reject_nulls
from ..models.models import Resident

logger = logging.getLogger(__name__)

RESIDENT_UPDATABLE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "address",
    "unit_number",
    "is_resident",
    "is_board_member",
    "is_renter",
    "is_active",
    "password",
    "profile_image",
)
RESIDENT_REQUIRED_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "address",
    "is_resident",
    "is_board_member",
    "is_renter",
    "is_active",
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_resident_by_email(session: Session, email: str) -> Optional[Resident]:
    return session.query(Resident).filter(func.lower(Resident.email) == normalize_email(email)).first()


def get_resident(session: Session, resident_id: int) -> Resident:
    resident = session.get(Resident, resident_id)
    if not resident:
        raise NotFoundError("Resident not found")
    return resident


def list_residents(session: Session) -> List[Resident]:
    return session.query(Resident).order_by(Resident.last_name.asc(), Resident.first_name.asc()).all()


def get_active_residents(session: Session) -> List[Resident]:
    return (
        session.query(Resident)
        .filter(Resident.is_active.is_(True))
        .order_by(Resident.last_name.asc(), Resident.first_name.asc())
        .all()
    )


def create_resident(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    address: str,
    phone: Optional[str] = None,
    unit_number: Optional[str] = None,
    is_resident: bool = True,
    is_renter: bool = False,
    is_board_member: bool = False,
    is_dev: bool = False,
    password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Resident:
    email = normalize_email(email)
    if get_resident_by_email(session, email):
        raise ConflictError("A resident with this email already exists")
    now = now or utcnow()
    resident = Resident(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        address=address,
        unit_number=unit_number,
        is_resident=is_resident,
        is_renter=is_renter,
        is_board_member=is_board_member,
        is_dev=is_dev,
        is_active=True,
        is_blocked=False,
        hashed_password=get_password_hash(password) if password else None,
        created_at=now,
        updated_at=now,
    )
    session.add(resident)
    session.flush()
    logger.info("Resident %s created (%s)", resident.id, resident.user_type)
    return resident


def update_resident(session: Session, resident_id: int, now: Optional[datetime] = None, **fields) -> Resident:
    """Patch a resident. Changing the email to another resident's address conflicts."""
    resident = get_resident(session, resident_id)
    unknown = set(fields) - set(RESIDENT_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown resident fields: {', '.join(sorted(unknown))}")
    reject_nulls(fields, RESIDENT_REQUIRED_FIELDS)
    if fields.get("email") is not None:
        fields["email"] = normalize_email(fields["email"])
        holder = get_resident_by_email(session, fields["email"])
        if holder and holder.id != resident.id:
            raise ConflictError("A resident with this email already exists")
    password = fields.pop("password", None)
    if password:
        resident.hashed_password = get_password_hash(password)
    for key, value in fields.items():
        setattr(resident, key, value)
    resident.updated_at = now or utcnow()
    session.flush()
    return resident


def delete_resident(session: Session, resident_id: int) -> None:
    resident = get_resident(session, resident_id)
    session.delete(resident)
    session.flush()
    logger.info("Resident %s deleted", resident_id)


def authenticate_resident(session: Session, email: str, password: str) -> Optional[Resident]:
    """Return the resident for valid credentials, or ``None``. Inactive accounts never authenticate."""
    resident = get_resident_by_email(session, email)
    if not resident or not resident.hashed_password:
        return None
    if not verify_password(password, resident.hashed_password):
        return None
    if not resident.is_active:
        return None
    return resident


def set_block_status(
    session: Session,
    resident_id: int,
    is_blocked: bool,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Resident:
    resident = get_resident(session, resident_id)
    resident.is_blocked = is_blocked
    resident.block_reason = reason if is_blocked else None
    resident.updated_at = now or utcnow()
    session.flush()
    logger.info("Resident %s %s", resident_id, "blocked" if is_blocked else "unblocked")
    return resident
