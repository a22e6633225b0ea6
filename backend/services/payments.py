import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    FEE_TYPE_FINE,
    PAYMENT_METHOD_VENMO,
    STATUS_PAID,
    VERIFICATION_PENDING,
    VERIFICATION_REJECTED,
    VERIFICATION_VERIFIED,
)
from ..core.clock import utcnow
from ..core.errors import NotFoundError, ValidationError
from ..models.models import Fee, Payment, PaymentStatus, Resident
from .fees import ensure_decimal

logger = logging.getLogger(__name__)


def to_cents(amount) -> int:
    return int((ensure_decimal(amount) * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(amount_cents: int) -> Decimal:
    return (Decimal(amount_cents) / Decimal("100")).quantize(Decimal("0.01"))


def _load_payment(session: Session, payment_id: int) -> Payment:
    payment = session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def _check_links(session: Session, resident_id: int, fee_id: Optional[int], fine_id: Optional[int]) -> None:
    if session.get(Resident, resident_id) is None:
        raise NotFoundError("Resident not found")
    if fee_id is not None:
        fee = session.get(Fee, fee_id)
        if fee is None or fee.type == FEE_TYPE_FINE:
            raise NotFoundError("Fee not found")
    if fine_id is not None:
        fine = session.get(Fee, fine_id)
        if fine is None or fine.type != FEE_TYPE_FINE:
            raise NotFoundError("Fine not found")


def record_payment(
    session: Session,
    *,
    resident_id: int,
    amount: Decimal,
    payment_method: str,
    status="pending",
    fee_type: Optional[str] = None,
    fee_id: Optional[int] = None,
    fine_id: Optional[int] = None,
    currency: Optional[str] = None,
    external_payment_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    venmo_username: Optional[str] = None,
    verification_status: Optional[str] = None,
    payment_date: Optional[date] = None,
    description: str = "",
    metadata: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> Payment:
    """Store a payment. ``status`` accepts the legacy ``Paid`` label."""
    amount = ensure_decimal(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")
    try:
        normalized = PaymentStatus.parse(status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    _check_links(session, resident_id, fee_id, fine_id)
    now = now or utcnow()
    payment = Payment(
        resident_id=resident_id,
        fee_id=fee_id,
        fine_id=fine_id,
        fee_type=fee_type,
        amount=amount,
        currency=(currency or settings.payment_currency).lower(),
        status=normalized.value,
        payment_method=payment_method,
        external_payment_id=external_payment_id,
        transaction_id=transaction_id,
        venmo_username=venmo_username,
        verification_status=verification_status,
        payment_date=payment_date or now.date(),
        description=description,
        payment_metadata={str(key): str(value) for key, value in metadata.items()} if metadata else None,
        created_at=now,
        updated_at=now,
    )
    session.add(payment)
    session.flush()
    logger.info(
        "Payment %s recorded for resident %s: %s %s via %s (%s)",
        payment.id,
        resident_id,
        amount,
        payment.currency,
        payment_method,
        normalized.value,
    )
    return payment


def create_venmo_payment(
    session: Session,
    *,
    resident_id: int,
    fee_type: str,
    amount: Decimal,
    venmo_username: str,
    venmo_transaction_id: str,
    fee_id: Optional[int] = None,
    fine_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Payment:
    """Record a manual Venmo payment awaiting board verification."""
    return record_payment(
        session,
        resident_id=resident_id,
        amount=amount,
        payment_method=PAYMENT_METHOD_VENMO,
        status=PaymentStatus.PENDING,
        fee_type=fee_type,
        fee_id=fee_id,
        fine_id=fine_id,
        transaction_id=venmo_transaction_id,
        venmo_username=venmo_username,
        verification_status=VERIFICATION_PENDING,
        description=f"Venmo payment from @{venmo_username.lstrip('@')}",
        now=now,
    )


def _settle_linked_charges(session: Session, payment: Payment, now: datetime) -> None:
    for charge_id in (payment.fee_id, payment.fine_id):
        if charge_id is None:
            continue
        charge = session.get(Fee, charge_id)
        if charge is None:
            continue
        charge.status = STATUS_PAID
        charge.paid_at = now
        charge.payment_method = payment.payment_method
        charge.external_payment_id = payment.external_payment_id or payment.transaction_id
        charge.updated_at = now
        logger.info("Charge %s settled by payment %s", charge.id, payment.id)


def verify_payment(
    session: Session,
    payment_id: int,
    verification_status: str,
    now: Optional[datetime] = None,
) -> Payment:
    """Approve or reject a manual payment; approval settles its fee or fine."""
    if verification_status not in (VERIFICATION_VERIFIED, VERIFICATION_REJECTED):
        raise ValidationError("Verification status must be Verified or Rejected")
    payment = _load_payment(session, payment_id)
    now = now or utcnow()
    payment.verification_status = verification_status
    if verification_status == VERIFICATION_VERIFIED:
        payment.status = PaymentStatus.SUCCEEDED.value
        _settle_linked_charges(session, payment, now)
    else:
        payment.status = PaymentStatus.FAILED.value
    payment.updated_at = now
    session.flush()
    logger.info("Payment %s %s", payment.id, verification_status.lower())
    return payment


def update_payment_status(session: Session, payment_id: int, status, now: Optional[datetime] = None) -> Payment:
    try:
        normalized = PaymentStatus.parse(status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    payment = _load_payment(session, payment_id)
    now = now or utcnow()
    payment.status = normalized.value
    if normalized is PaymentStatus.SUCCEEDED:
        _settle_linked_charges(session, payment, now)
    payment.updated_at = now
    session.flush()
    return payment


def apply_processor_outcome(
    session: Session,
    external_payment_id: str,
    status,
    now: Optional[datetime] = None,
) -> Optional[Payment]:
    """Apply a processor confirmation to the payment it references, if any."""
    payment = (
        session.query(Payment)
        .filter(Payment.external_payment_id == external_payment_id)
        .first()
    )
    if payment is None:
        logger.warning("No payment found for processor reference %s", external_payment_id)
        return None
    return update_payment_status(session, payment.id, status, now=now)


def get_payments_for_resident(session: Session, resident_id: int) -> List[Payment]:
    return (
        session.query(Payment)
        .filter(Payment.resident_id == resident_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_all_payments(session: Session) -> List[Payment]:
    return session.query(Payment).order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def get_payment_by_transaction_id(session: Session, transaction_id: str) -> Optional[Payment]:
    return session.query(Payment).filter(Payment.transaction_id == transaction_id).first()


def get_pending_manual_payments(session: Session) -> List[Payment]:
    return (
        session.query(Payment)
        .filter(
            Payment.payment_method == PAYMENT_METHOD_VENMO,
            (Payment.verification_status == VERIFICATION_PENDING) | Payment.verification_status.is_(None),
        )
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment_stats(session: Session, resident_id: int) -> dict:
    payments = get_payments_for_resident(session, resident_id)
    totals = {status: Decimal("0") for status in PaymentStatus}
    successful = 0
    for payment in payments:
        status = PaymentStatus.parse(payment.status)
        totals[status] += ensure_decimal(payment.amount)
        if status is PaymentStatus.SUCCEEDED:
            successful += 1
    return {
        "total_paid": totals[PaymentStatus.SUCCEEDED],
        "total_pending": totals[PaymentStatus.PENDING],
        "total_failed": totals[PaymentStatus.FAILED],
        "total_transactions": len(payments),
        "successful_transactions": successful,
    }
