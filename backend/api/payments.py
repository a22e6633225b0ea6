import logging
from datetime import datetime
from typing import List, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..api.dependencies import ensure_self_or_manager, get_db
from ..auth.jwt import get_current_resident, require_roles
from ..config import settings
from ..constants import MANAGER_ROLES, PAYMENT_METHOD_STRIPE
from ..core.clock import get_now
from ..models.models import Payment, PaymentStatus, Resident
from ..schemas.schemas import (
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentIntentStatusRead,
    PaymentRead,
    PaymentStatsRead,
    PaymentStatusUpdate,
    PaymentVerification,
    VenmoPaymentCreate,
)
from ..services import payments as payment_service
from ..services.audit import audit_log

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_OUTCOMES = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.CANCELED,
}
TERMINAL_INTENT_STATUSES = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "canceled": PaymentStatus.CANCELED,
}


def _configure_stripe() -> None:
    if not settings.stripe_api_key:
        raise HTTPException(status_code=503, detail="Stripe is not configured")
    stripe.api_key = settings.stripe_api_key


@router.get("/", response_model=List[PaymentRead])
def list_payments(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Payment]:
    return payment_service.get_all_payments(db)


@router.get("/me", response_model=List[PaymentRead])
def my_payments(
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> List[Payment]:
    return payment_service.get_payments_for_resident(db, resident.id)


@router.get("/me/stats", response_model=PaymentStatsRead)
def my_payment_stats(
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> dict:
    return payment_service.get_payment_stats(db, resident.id)


@router.get("/resident/{resident_id}", response_model=List[PaymentRead])
def resident_payments(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> List[Payment]:
    ensure_self_or_manager(resident, resident_id)
    return payment_service.get_payments_for_resident(db, resident_id)


@router.get("/resident/{resident_id}/stats", response_model=PaymentStatsRead)
def resident_payment_stats(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> dict:
    ensure_self_or_manager(resident, resident_id)
    return payment_service.get_payment_stats(db, resident_id)


@router.get("/pending-manual", response_model=List[PaymentRead])
def pending_manual_payments(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Payment]:
    return payment_service.get_pending_manual_payments(db)


@router.get("/transaction/{transaction_id}", response_model=Optional[PaymentRead])
def payment_by_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Optional[Payment]:
    return payment_service.get_payment_by_transaction_id(db, transaction_id)


@router.post("/venmo", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def submit_venmo_payment(
    payload: VenmoPaymentCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> Payment:
    payment = payment_service.create_venmo_payment(db, resident_id=resident.id, now=now, **payload.model_dump())
    db.commit()
    db.refresh(payment)
    return payment


@router.post("/{payment_id}/verify", response_model=PaymentRead)
def verify_payment(
    payment_id: int,
    payload: PaymentVerification,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Payment:
    payment = payment_service.verify_payment(db, payment_id, payload.verification_status, now=now)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="payment.verify",
        target_entity_type="Payment",
        target_entity_id=str(payment.id),
        after={"verification_status": payload.verification_status, "status": payment.status},
    )
    db.refresh(payment)
    return payment


@router.put("/{payment_id}/status", response_model=PaymentRead)
def update_payment_status(
    payment_id: int,
    payload: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Payment:
    payment = payment_service.update_payment_status(db, payment_id, payload.status, now=now)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="payment.status",
        target_entity_type="Payment",
        target_entity_id=str(payment.id),
        after={"status": payload.status.value},
    )
    db.refresh(payment)
    return payment


@router.post("/intent", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
def create_payment_intent(
    payload: PaymentIntentCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> PaymentIntentRead:
    _configure_stripe()
    amount_cents = payment_service.to_cents(payload.amount)
    metadata = {"resident_id": str(resident.id)}
    if payload.fee_type:
        metadata["fee_type"] = payload.fee_type
    if payload.fee_id is not None:
        metadata["fee_id"] = str(payload.fee_id)
    if payload.fine_id is not None:
        metadata["fine_id"] = str(payload.fine_id)

    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=settings.payment_currency,
            description=payload.description or None,
            receipt_email=resident.email,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe rejected payment intent for resident %s: %s", resident.id, exc)
        raise HTTPException(status_code=502, detail="Unable to create Stripe payment intent") from exc

    payment = payment_service.record_payment(
        db,
        resident_id=resident.id,
        amount=payload.amount,
        payment_method=PAYMENT_METHOD_STRIPE,
        status=PaymentStatus.PENDING,
        fee_type=payload.fee_type,
        fee_id=payload.fee_id,
        fine_id=payload.fine_id,
        external_payment_id=intent["id"],
        description=payload.description,
        metadata=metadata,
        now=now,
    )
    db.commit()
    return PaymentIntentRead(
        id=intent["id"],
        client_secret=intent.get("client_secret"),
        amount=amount_cents,
        currency=settings.payment_currency,
        status=intent.get("status") or "requires_payment_method",
        payment_id=payment.id,
    )


@router.get("/verify/{intent_id}", response_model=PaymentIntentStatusRead)
def verify_payment_intent(
    intent_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: Resident = Depends(get_current_resident),
) -> PaymentIntentStatusRead:
    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as exc:
        raise HTTPException(status_code=502, detail="Unable to retrieve Stripe payment intent") from exc

    outcome = TERMINAL_INTENT_STATUSES.get(intent["status"])
    if outcome is not None:
        payment_service.apply_processor_outcome(db, intent["id"], outcome, now=now)
        db.commit()
    return PaymentIntentStatusRead(
        id=intent["id"],
        status=intent["status"],
        amount=intent["amount"],
        currency=intent["currency"],
    )


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict[str, bool]:
    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=503, detail="Stripe webhook secret is not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    outcome = WEBHOOK_OUTCOMES.get(event_type)
    if outcome is None:
        logger.debug("Ignoring Stripe event %s", event_type)
        return {"received": True}

    intent_id = event["data"]["object"]["id"]
    payment = payment_service.apply_processor_outcome(db, intent_id, outcome, now=now)
    if payment is not None:
        db.commit()
        audit_log(
            db_session=db,
            actor_resident_id=None,
            action=f"payments.stripe.{outcome.value}",
            target_entity_type="Payment",
            target_entity_id=str(payment.id),
            after={"reference": intent_id, "event": event_type},
        )
    return {"received": True}
