from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ..api.dependencies import ensure_self_or_manager, get_db, is_manager
from ..auth.jwt import get_current_resident, require_roles
from ..constants import MANAGER_ROLES
from ..core.clock import get_now
from ..models.models import Resident
from ..schemas.schemas import ResidentBlockUpdate, ResidentCreate, ResidentRead, ResidentUpdate
from ..services import residents as resident_service
from ..services.audit import audit_log, model_snapshot

router = APIRouter()

# Only board members and developers may change these on any record.
PRIVILEGED_FIELDS = {"is_resident", "is_renter", "is_board_member", "is_active"}


@router.get("/", response_model=List[ResidentRead])
def list_residents(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Resident]:
    return resident_service.list_residents(db)


@router.get("/active", response_model=List[ResidentRead])
def list_active_residents(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Resident]:
    return resident_service.get_active_residents(db)


@router.get("/by-email", response_model=Optional[ResidentRead])
def find_resident_by_email(
    email: str = Query(..., min_length=3),
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Optional[Resident]:
    return resident_service.get_resident_by_email(db, email)


@router.post("/", response_model=ResidentRead, status_code=status.HTTP_201_CREATED)
def create_resident(
    payload: ResidentCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Resident:
    resident = resident_service.create_resident(db, now=now, **payload.model_dump())
    db.commit()
    db.refresh(resident)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="resident.create",
        target_entity_type="Resident",
        target_entity_id=str(resident.id),
        after=model_snapshot(resident),
    )
    return resident


@router.get("/{resident_id}", response_model=ResidentRead)
def get_resident(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> Resident:
    ensure_self_or_manager(resident, resident_id)
    return resident_service.get_resident(db, resident_id)


@router.patch("/{resident_id}", response_model=ResidentRead)
def update_resident(
    resident_id: int,
    payload: ResidentUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(get_current_resident),
) -> Resident:
    ensure_self_or_manager(actor, resident_id)
    changes = payload.model_dump(exclude_unset=True)
    if not is_manager(actor) and PRIVILEGED_FIELDS.intersection(changes):
        raise HTTPException(status_code=403, detail="Only the board can change residency or account flags")
    target = resident_service.get_resident(db, resident_id)
    before = model_snapshot(target)
    resident = resident_service.update_resident(db, resident_id, now=now, **changes)
    db.commit()
    db.refresh(resident)
    changes.pop("password", None)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="resident.update",
        target_entity_type="Resident",
        target_entity_id=str(resident.id),
        before=before,
        after=changes,
    )
    return resident


@router.put("/{resident_id}/block", response_model=ResidentRead)
def set_block_status(
    resident_id: int,
    payload: ResidentBlockUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Resident:
    if resident_id == actor.id and payload.is_blocked:
        raise HTTPException(status_code=400, detail="You cannot block your own account")
    resident = resident_service.set_block_status(db, resident_id, payload.is_blocked, payload.block_reason, now=now)
    db.commit()
    db.refresh(resident)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="resident.block" if payload.is_blocked else "resident.unblock",
        target_entity_type="Resident",
        target_entity_id=str(resident.id),
        after=payload.model_dump(),
    )
    return resident


@router.delete("/{resident_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resident(
    resident_id: int,
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Response:
    resident_service.delete_resident(db, resident_id)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="resident.delete",
        target_entity_type="Resident",
        target_entity_id=str(resident_id),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
