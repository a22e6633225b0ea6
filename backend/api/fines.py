from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..api.dependencies import ensure_self_or_manager, get_db
from ..auth.jwt import get_current_resident, require_roles
from ..constants import MANAGER_ROLES
from ..core.clock import get_now
from ..models.models import Fee, Resident
from ..schemas.schemas import FeeRead, FineCreate, FineStatusUpdate, FineUpdate, PropertyFineCreate
from ..services import fines as fine_service
from ..services.audit import audit_log, model_snapshot

router = APIRouter()


@router.get("/", response_model=List[FeeRead])
def list_fines(
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[Fee]:
    return fine_service.get_all_fines(db)


@router.get("/resident/{resident_id}", response_model=List[FeeRead])
def list_resident_fines(
    resident_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> List[Fee]:
    ensure_self_or_manager(resident, resident_id)
    return fine_service.get_fines_for_homeowner(db, resident_id)


@router.post("/property", response_model=FeeRead, status_code=status.HTTP_201_CREATED)
def fine_property(
    payload: PropertyFineCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    fine = fine_service.add_fine_to_property(db, now=now, **payload.model_dump())
    db.commit()
    db.refresh(fine)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fine.issue",
        target_entity_type="Fine",
        target_entity_id=str(fine.id),
        after=model_snapshot(fine),
    )
    return fine


@router.post("/", response_model=FeeRead, status_code=status.HTTP_201_CREATED)
def create_fine(
    payload: FineCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    fine = fine_service.create_fine(db, now=now, **payload.model_dump())
    db.commit()
    db.refresh(fine)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fine.create",
        target_entity_type="Fine",
        target_entity_id=str(fine.id),
        after=model_snapshot(fine),
    )
    return fine


@router.patch("/{fine_id}", response_model=FeeRead)
def update_fine(
    fine_id: int,
    payload: FineUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    changes = payload.model_dump(exclude_unset=True)
    fine = fine_service.update_fine(db, fine_id, now=now, **changes)
    db.commit()
    db.refresh(fine)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fine.update",
        target_entity_type="Fine",
        target_entity_id=str(fine.id),
        after=changes,
    )
    return fine


@router.put("/{fine_id}/status", response_model=FeeRead)
def update_fine_status(
    fine_id: int,
    payload: FineStatusUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Fee:
    fine = fine_service.update_fine_status(db, fine_id, payload.status, now=now)
    db.commit()
    db.refresh(fine)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fine.status",
        target_entity_type="Fine",
        target_entity_id=str(fine.id),
        after={"status": payload.status},
    )
    return fine


@router.delete("/{fine_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fine(
    fine_id: int,
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Response:
    fine_service.delete_fine(db, fine_id)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="fine.delete",
        target_entity_type="Fine",
        target_entity_id=str(fine_id),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
