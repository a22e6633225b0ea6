import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import CHARGE_STATUSES, FEE_TYPE_FINE, STATUS_PAID, STATUS_PENDING
from ..core.clock import utcnow
from ..core.errors import NotFoundError, ValidationError, reject_nulls
from ..models.models import Fee, Resident

logger = logging.getLogger(__name__)

FINE_UPDATABLE_FIELDS = (
    "reason",
    "amount",
    "date_issued",
    "due_date",
    "status",
    "description",
    "resident_id",
    "address",
)
FINE_REQUIRED_FIELDS = ("reason", "amount", "date_issued", "due_date", "status", "description")


def _ensure_status(status: str) -> str:
    if status not in CHARGE_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(CHARGE_STATUSES)}")
    return status


def _load_fine(session: Session, fine_id: int) -> Fee:
    fine = session.get(Fee, fine_id)
    if not fine or fine.type != FEE_TYPE_FINE:
        raise NotFoundError("Fine not found")
    return fine


def _fine_name(reason: str) -> str:
    return f"Fine: {reason}"


def _set_status(fine: Fee, status: str, now: datetime) -> None:
    """Move the fine to ``status``. A fine that stays Paid keeps its original ``paid_at``."""
    if status != STATUS_PAID:
        fine.paid_at = None
    elif fine.status != STATUS_PAID or fine.paid_at is None:
        fine.paid_at = now
    fine.status = status


def add_fine_to_property(
    session: Session,
    *,
    address: str,
    homeowner_id: int,
    amount: Decimal,
    reason: str,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Fee:
    """Issue a pending fine against a homeowner's property."""
    if session.get(Resident, homeowner_id) is None:
        raise NotFoundError("Homeowner not found")
    now = now or utcnow()
    today = now.date()
    fine = Fee(
        type=FEE_TYPE_FINE,
        name=_fine_name(reason),
        amount=amount,
        frequency="One-time",
        due_date=due_date or today + timedelta(days=settings.fine_due_days),
        date_issued=today,
        description=description or "",
        reason=reason,
        address=address,
        status=STATUS_PENDING,
        resident_id=homeowner_id,
        created_at=now,
        updated_at=now,
    )
    session.add(fine)
    session.flush()
    logger.info("Fine %s issued to resident %s at %s for %s", fine.id, homeowner_id, address, amount)
    return fine


def create_fine(
    session: Session,
    *,
    reason: str,
    amount: Decimal,
    date_issued: date,
    due_date: date,
    status: str = STATUS_PENDING,
    description: str = "",
    resident_id: Optional[int] = None,
    address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Fee:
    if resident_id is not None and session.get(Resident, resident_id) is None:
        raise NotFoundError("Resident not found")
    now = now or utcnow()
    fine = Fee(
        type=FEE_TYPE_FINE,
        name=_fine_name(reason),
        amount=amount,
        frequency="One-time",
        due_date=due_date,
        date_issued=date_issued,
        description=description,
        reason=reason,
        address=address,
        status=_ensure_status(status),
        paid_at=now if status == STATUS_PAID else None,
        resident_id=resident_id,
        created_at=now,
        updated_at=now,
    )
    session.add(fine)
    session.flush()
    logger.info("Fine %s created (%s)", fine.id, reason)
    return fine


def update_fine(session: Session, fine_id: int, now: Optional[datetime] = None, **fields) -> Fee:
    fine = _load_fine(session, fine_id)
    unknown = set(fields) - set(FINE_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fine fields: {', '.join(sorted(unknown))}")
    reject_nulls(fields, FINE_REQUIRED_FIELDS)
    if "status" in fields:
        _ensure_status(fields["status"])
    if fields.get("resident_id") is not None and session.get(Resident, fields["resident_id"]) is None:
        raise NotFoundError("Resident not found")
    now = now or utcnow()
    status = fields.pop("status", None)
    for key, value in fields.items():
        setattr(fine, key, value)
    if status is not None:
        _set_status(fine, status, now)
    if "reason" in fields:
        fine.name = _fine_name(fine.reason)
    fine.updated_at = now
    session.flush()
    return fine


def update_fine_status(session: Session, fine_id: int, status: str, now: Optional[datetime] = None) -> Fee:
    """Set the fine's status. Any status is reachable from any other."""
    _ensure_status(status)
    fine = _load_fine(session, fine_id)
    now = now or utcnow()
    previous = fine.status
    _set_status(fine, status, now)
    fine.updated_at = now
    session.flush()
    logger.info("Fine %s status %s -> %s", fine_id, previous, status)
    return fine


def delete_fine(session: Session, fine_id: int) -> None:
    fine = _load_fine(session, fine_id)
    session.delete(fine)
    session.flush()
    logger.info("Fine %s deleted", fine_id)


def get_all_fines(session: Session) -> List[Fee]:
    return (
        session.query(Fee)
        .filter(Fee.type == FEE_TYPE_FINE)
        .order_by(Fee.date_issued.desc(), Fee.id.desc())
        .all()
    )


def get_fines_for_homeowner(session: Session, resident_id: int) -> List[Fee]:
    return (
        session.query(Fee)
        .filter(Fee.type == FEE_TYPE_FINE, Fee.resident_id == resident_id)
        .order_by(Fee.date_issued.desc(), Fee.id.desc())
        .all()
    )
