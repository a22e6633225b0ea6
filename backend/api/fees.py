import io
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..api.dependencies import ensure_self_or_manager, get_db
from ..auth.jwt import get_current_resident, require_roles
from ..constants import MANAGER_ROLES
from ..core.clock import get_now
from ..models.models import Fee, Resident
from ..schemas.schemas import (
    FeeCreate,
    FeeMarkPaid,
    FeeRead,
    FeeUpdate,
    HomeownerPaymentStatusRead,
    RemovedFeesResult,
    SyntheticFeeRead,
    YearFeesCreate,
    YearFeesResult,
)
from ..services import fees as fee_service
from ..services.audit import audit_log, model_snapshot
from ..utils.csv_utils import homeowner_status_to_csv

router = APIRouter()


@router.get("/me", response_model=List[SyntheticFeeRead])
def my_annual_fees(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> List[SyntheticFeeRead]:
    return [SyntheticFeeRead(**asdict(fee)) for fee in fee_service.get_fees_for_resident(db, resident, now=now)]


@router.get("/me/annual-status", response_model=Dict[str, bool])
def my_annual_fee_status(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> Dict[str, bool]:
    return {"has_paid": fee_service.has_paid_annual_fee(db, resident.id, now=now)}


@router.get("/homeowners/status", response_model=List[HomeownerPaymentStatusRead])
def homeowner_payment_status(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[dict]:
    return fee_service.get_all_homeowners_payment_status(db, now=now)


@router.get("/homeowners/status.csv")
def export_homeowner_payment_status(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> StreamingResponse:
    content = homeowner_status_to_csv(fee_service.get_all_homeowners_payment_status(db, now=now))
    filename = f"homeowner-payment-status-{now.year}.csv"
    return StreamingResponse(
        io.StringIO(content),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/yearly", response_model=YearFeesResult, status_code=status.HTTP_201_CREATED)
def create_year_fees(
    payload: YearFeesCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> dict:
    result = fee_service.create_year_fees_for_all_homeowners(
        db,
        year=payload.year,
        amount=payload.amount,
        description=payload.description,
        skip_existing=payload.skip_existing,
        now=now,
    )
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fees.yearly.create",
        target_entity_type="Fee",
        target_entity_id=str(payload.year),
        after={"count": result["count"], "skip_existing": payload.skip_existing},
    )
    return result


@router.get("/yearly", response_model=List[FeeRead])
def list_all_yearly_fees(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Fee]:
    return fee_service.get_all_yearly_fees(db)


@router.get("/yearly/{year}", response_model=List[FeeRead])
def list_yearly_fees(
    year: int,
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Fee]:
    return fee_service.get_yearly_fees(db, year)


@router.delete("/yearly/{year}", response_model=RemovedFeesResult)
def remove_yearly_fees(
    year: int,
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> RemovedFeesResult:
    deleted = fee_service.remove_yearly_fees(db, year)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fees.yearly.remove",
        target_entity_type="Fee",
        target_entity_id=str(year),
        before={"deleted_count": deleted},
    )
    return RemovedFeesResult(deleted_count=deleted, year=year)


@router.delete("/yearly", response_model=RemovedFeesResult)
def remove_all_yearly_fees(
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> RemovedFeesResult:
    deleted = fee_service.remove_all_yearly_fees(db)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fees.yearly.remove_all",
        target_entity_type="Fee",
        before={"deleted_count": deleted},
    )
    return RemovedFeesResult(deleted_count=deleted)


@router.get("/", response_model=List[FeeRead])
def list_fees(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Fee]:
    return fee_service.get_all_fees_from_database(db)


@router.get("/resident/{resident_id}", response_model=List[FeeRead])
def list_resident_fees(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> List[Fee]:
    ensure_self_or_manager(resident, resident_id)
    return fee_service.get_fees_for_homeowner_from_database(db, resident_id)


@router.get("/resident/{resident_id}/unpaid", response_model=List[FeeRead])
def list_resident_unpaid_fees(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> List[Fee]:
    ensure_self_or_manager(resident, resident_id)
    return fee_service.get_unpaid_fees_for_resident(db, resident_id)


@router.get("/resident/{resident_id}/overdue", response_model=List[FeeRead])
def list_resident_overdue_fees(
    resident_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> List[Fee]:
    ensure_self_or_manager(resident, resident_id)
    return fee_service.get_overdue_fees_for_resident(db, resident_id, now=now)


@router.post("/", response_model=FeeRead, status_code=status.HTTP_201_CREATED)
def create_fee(
    payload: FeeCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    fee = fee_service.create_fee(db, now=now, **payload.model_dump())
    db.commit()
    db.refresh(fee)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fee.create",
        target_entity_type="Fee",
        target_entity_id=str(fee.id),
        after=model_snapshot(fee),
    )
    return fee


@router.patch("/{fee_id}", response_model=FeeRead)
def update_fee(
    fee_id: int,
    payload: FeeUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    changes = payload.model_dump(exclude_unset=True)
    fee = fee_service.update_fee(db, fee_id, now=now, **changes)
    db.commit()
    db.refresh(fee)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fee.update",
        target_entity_type="Fee",
        target_entity_id=str(fee.id),
        after=changes,
    )
    return fee


@router.post("/{fee_id}/pay", response_model=FeeRead)
def mark_fee_paid(
    fee_id: int,
    payload: FeeMarkPaid,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    fee = fee_service.mark_fee_paid(
        db,
        fee_id,
        payment_method=payload.payment_method,
        external_payment_id=payload.external_payment_id,
        now=now,
    )
    db.commit()
    db.refresh(fee)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fee.mark_paid",
        target_entity_type="Fee",
        target_entity_id=str(fee.id),
        after=payload.model_dump(),
    )
    return fee


@router.delete("/{fee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fee(
    fee_id: int,
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Response:
    fee_service.delete_fee(db, fee_id)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fee.delete",
        target_entity_type="Fee",
        target_entity_id=str(fee_id),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
