import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    ANNUAL_FEE_DESCRIPTION,
    ANNUAL_FEE_NAME,
    FEE_BEARING_USER_TYPES,
    FEE_TYPE_FEE,
    FEE_TYPE_FINE,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PENDING,
    USER_TYPE_BOARD_MEMBER,
    USER_TYPE_HOMEOWNER,
)
from ..core.clock import utcnow
from ..core.errors import NotFoundError, ValidationError, reject_nulls
from ..models.models import Fee, Payment, PaymentStatus, Resident

logger = logging.getLogger(__name__)

ANNUAL_FREQUENCY = "Annually"
FEE_UPDATABLE_FIELDS = (
    "name",
    "amount",
    "frequency",
    "due_date",
    "description",
    "status",
    "payment_method",
    "external_payment_id",
)
FEE_REQUIRED_FIELDS = ("name", "amount", "due_date", "description", "status")


@dataclass(frozen=True)
class SyntheticFee:
    """The standing annual obligation of a homeowner. Never persisted."""

    id: str
    name: str
    amount: Decimal
    frequency: str
    year: int
    due_date: date
    description: str
    is_late: bool
    status: str


def ensure_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def annual_due_date(year: int) -> date:
    return date(year, 12, 31)


def yearly_fee_name(year: int) -> str:
    return f"{ANNUAL_FEE_NAME} {year}"


def get_user_fees(
    user_id: str,
    user_type: str,
    has_paid: bool,
    now: Optional[datetime] = None,
    amount: Optional[Decimal] = None,
) -> List[SyntheticFee]:
    """Derive the current year's annual fee for fee-bearing residents."""
    if user_type not in FEE_BEARING_USER_TYPES:
        return []
    now = now or utcnow()
    year = now.year
    due_date = annual_due_date(year)
    return [
        SyntheticFee(
            id=f"annual-{year}-{user_id}",
            name=ANNUAL_FEE_NAME,
            amount=ensure_decimal(amount if amount is not None else settings.annual_fee_amount),
            frequency=ANNUAL_FREQUENCY,
            year=year,
            due_date=due_date,
            description=ANNUAL_FEE_DESCRIPTION.format(year=year),
            is_late=not has_paid and now.date() > due_date,
            status=STATUS_PAID if has_paid else STATUS_PENDING,
        )
    ]


def _is_annual_fee_payment(payment: Payment, year: int) -> bool:
    return (
        payment.fee_type == ANNUAL_FEE_NAME
        and payment.status == PaymentStatus.SUCCEEDED.value
        and payment.payment_date is not None
        and payment.payment_date.year == year
    )


def paid_annual_fee(payments: Iterable[Payment], year: int) -> bool:
    return any(_is_annual_fee_payment(payment, year) for payment in payments)


def has_paid_annual_fee(session: Session, resident_id: int, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    payments = session.query(Payment).filter(Payment.resident_id == resident_id).all()
    return paid_annual_fee(payments, now.year)


def get_fees_for_resident(session: Session, resident: Resident, now: Optional[datetime] = None) -> List[SyntheticFee]:
    now = now or utcnow()
    has_paid = has_paid_annual_fee(session, resident.id, now)
    return get_user_fees(str(resident.id), resident.user_type, has_paid, now=now)


def get_all_homeowners_payment_status(session: Session, now: Optional[datetime] = None) -> List[dict]:
    """Annotate every homeowner with whether this year's annual fee is settled."""
    now = now or utcnow()
    amount = ensure_decimal(settings.annual_fee_amount)
    homeowners = [
        resident
        for resident in session.query(Resident).order_by(Resident.last_name.asc(), Resident.first_name.asc()).all()
        if resident.is_homeowner
    ]
    payments_by_resident: dict[int, list[Payment]] = defaultdict(list)
    if homeowners:
        rows = (
            session.query(Payment)
            .filter(
                Payment.resident_id.in_([resident.id for resident in homeowners]),
                Payment.fee_type == ANNUAL_FEE_NAME,
            )
            .all()
        )
        for payment in rows:
            payments_by_resident[payment.resident_id].append(payment)

    statuses = []
    for resident in homeowners:
        has_paid = paid_annual_fee(payments_by_resident.get(resident.id, []), now.year)
        statuses.append(
            {
                "id": resident.id,
                "first_name": resident.first_name,
                "last_name": resident.last_name,
                "email": resident.email,
                "phone": resident.phone,
                "address": resident.address,
                "unit_number": resident.unit_number,
                "profile_image": resident.profile_image,
                "is_board_member": resident.is_board_member,
                "is_active": resident.is_active,
                "user_type": USER_TYPE_BOARD_MEMBER if resident.is_board_member else USER_TYPE_HOMEOWNER,
                "has_paid": has_paid,
                "payment_status": STATUS_PAID if has_paid else STATUS_PENDING,
                "annual_fee_amount": amount,
            }
        )
    return statuses


def _yearly_fees_query(session: Session, year: Optional[int] = None):
    query = session.query(Fee).filter(Fee.type != FEE_TYPE_FINE, Fee.frequency == ANNUAL_FREQUENCY)
    if year is not None:
        query = query.filter(Fee.name == yearly_fee_name(year))
    return query


def create_year_fees_for_all_homeowners(
    session: Session,
    year: int,
    amount: Optional[Decimal] = None,
    description: Optional[str] = None,
    skip_existing: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """Insert one annual fee row per homeowner, committing after each insert.

    Running it twice for the same year duplicates rows unless ``skip_existing``
    is set, in which case homeowners that already carry the year's fee are
    skipped. A failure part way through keeps the rows already committed.
    """
    amount = ensure_decimal(amount if amount is not None else settings.annual_fee_amount)
    if amount <= 0:
        raise ValidationError("Fee amount must be positive")
    now = now or utcnow()
    name = yearly_fee_name(year)
    description = description or ANNUAL_FEE_DESCRIPTION.format(year=year)
    homeowners = [resident for resident in session.query(Resident).order_by(Resident.id.asc()).all() if resident.is_homeowner]

    already_billed: set[int] = set()
    if skip_existing:
        already_billed = {
            resident_id
            for (resident_id,) in _yearly_fees_query(session, year).with_entities(Fee.resident_id).all()
            if resident_id is not None
        }

    fee_ids: list[int] = []
    for resident in homeowners:
        if resident.id in already_billed:
            logger.debug("Resident %s already has %s, skipping", resident.id, name)
            continue
        fee = Fee(
            type=FEE_TYPE_FEE,
            name=name,
            amount=amount,
            frequency=ANNUAL_FREQUENCY,
            year=year,
            due_date=annual_due_date(year),
            description=description,
            status=STATUS_PENDING,
            resident_id=resident.id,
            created_at=now,
            updated_at=now,
        )
        session.add(fee)
        try:
            session.commit()
        except Exception:
            session.rollback()
            logger.exception(
                "Year fee generation for %s stopped at resident %s after %d inserts",
                year,
                resident.id,
                len(fee_ids),
            )
            raise
        fee_ids.append(fee.id)
        logger.debug("Created %s for resident %s", name, resident.id)

    logger.info("Generated %d annual fees for %s", len(fee_ids), year)
    return {
        "year": year,
        "count": len(fee_ids),
        "fee_ids": fee_ids,
        "total_amount": amount * len(fee_ids),
    }


def remove_yearly_fees(session: Session, year: int) -> int:
    deleted = _yearly_fees_query(session, year).delete(synchronize_session=False)
    session.flush()
    logger.info("Removed %d annual fees for %s", deleted, year)
    return deleted


def remove_all_yearly_fees(session: Session) -> int:
    deleted = _yearly_fees_query(session).delete(synchronize_session=False)
    session.flush()
    logger.info("Removed %d annual fees across all years", deleted)
    return deleted


def get_yearly_fees(session: Session, year: int) -> List[Fee]:
    return _yearly_fees_query(session, year).order_by(Fee.id.asc()).all()


def get_all_yearly_fees(session: Session) -> List[Fee]:
    return _yearly_fees_query(session).order_by(Fee.created_at.desc(), Fee.id.desc()).all()


def _load_fee(session: Session, fee_id: int) -> Fee:
    fee = session.get(Fee, fee_id)
    if not fee or fee.type == FEE_TYPE_FINE:
        raise NotFoundError("Fee not found")
    return fee


def _ensure_resident(session: Session, resident_id: Optional[int]) -> None:
    if resident_id is not None and session.get(Resident, resident_id) is None:
        raise NotFoundError("Resident not found")


def create_fee(
    session: Session,
    *,
    name: str,
    amount: Decimal,
    frequency: str,
    due_date: date,
    description: str = "",
    resident_id: Optional[int] = None,
    year: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Fee:
    _ensure_resident(session, resident_id)
    now = now or utcnow()
    fee = Fee(
        type=FEE_TYPE_FEE,
        name=name,
        amount=ensure_decimal(amount),
        frequency=frequency,
        year=year,
        due_date=due_date,
        description=description,
        status=STATUS_PENDING,
        resident_id=resident_id,
        created_at=now,
        updated_at=now,
    )
    session.add(fee)
    session.flush()
    logger.info("Fee %s created (%s, %s)", fee.id, name, fee.amount)
    return fee


def update_fee(session: Session, fee_id: int, now: Optional[datetime] = None, **fields) -> Fee:
    fee = _load_fee(session, fee_id)
    unknown = set(fields) - set(FEE_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fee fields: {', '.join(sorted(unknown))}")
    reject_nulls(fields, FEE_REQUIRED_FIELDS)
    now = now or utcnow()
    for key, value in fields.items():
        setattr(fee, key, value)
    if fields.get("status") == STATUS_PAID and fee.paid_at is None:
        fee.paid_at = now
    fee.updated_at = now
    session.flush()
    return fee


def mark_fee_paid(
    session: Session,
    fee_id: int,
    payment_method: str,
    external_payment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Fee:
    fee = _load_fee(session, fee_id)
    now = now or utcnow()
    fee.status = STATUS_PAID
    fee.paid_at = now
    fee.payment_method = payment_method
    fee.external_payment_id = external_payment_id
    fee.updated_at = now
    session.flush()
    logger.info("Fee %s marked paid via %s", fee.id, payment_method)
    return fee


def delete_fee(session: Session, fee_id: int) -> None:
    fee = _load_fee(session, fee_id)
    session.delete(fee)
    session.flush()
    logger.info("Fee %s deleted", fee_id)


def get_all_fees_from_database(session: Session) -> List[Fee]:
    return session.query(Fee).filter(Fee.type != FEE_TYPE_FINE).order_by(Fee.due_date.asc(), Fee.id.asc()).all()


def get_fees_for_homeowner_from_database(session: Session, resident_id: int) -> List[Fee]:
    return (
        session.query(Fee)
        .filter(Fee.type != FEE_TYPE_FINE, Fee.resident_id == resident_id)
        .order_by(Fee.due_date.asc(), Fee.id.asc())
        .all()
    )


def fee_is_late(fee: Fee, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return fee.status != STATUS_PAID and now.date() > fee.due_date


def get_unpaid_fees_for_resident(session: Session, resident_id: int) -> List[Fee]:
    return [fee for fee in get_fees_for_homeowner_from_database(session, resident_id) if fee.status != STATUS_PAID]


def get_overdue_fees_for_resident(session: Session, resident_id: int, now: Optional[datetime] = None) -> List[Fee]:
    now = now or utcnow()
    return [
        fee
        for fee in get_fees_for_homeowner_from_database(session, resident_id)
        if fee.status == STATUS_OVERDUE or fee_is_late(fee, now)
    ]
