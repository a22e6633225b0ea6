from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_resident, require_roles
from ..constants import MANAGER_ROLES
from ..core.clock import get_now
from ..models.models import PollVote, Resident
from ..schemas.schemas import PollCreate, PollPage, PollRead, PollUpdate, PollVoteCast, PollVoteRead
from ..services import polls as poll_service
from ..services.audit import audit_log, model_snapshot

router = APIRouter()


def _to_read(item: poll_service.PollWithTally) -> PollRead:
    return PollRead(**item.as_dict())


@router.get("/", response_model=List[PollRead])
def list_polls(
    active_only: bool = Query(False),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: Resident = Depends(get_current_resident),
) -> List[PollRead]:
    items = poll_service.list_polls(db, active_only=active_only, category=category, now=now)
    return [_to_read(item) for item in items]


@router.get("/page", response_model=PollPage)
def list_polls_page(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: Resident = Depends(get_current_resident),
) -> PollPage:
    items, total = poll_service.list_polls_paginated(db, limit=limit, offset=offset)
    return PollPage(items=[_to_read(item) for item in items], total=total)


@router.get("/active", response_model=List[PollRead])
def list_active_polls(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: Resident = Depends(get_current_resident),
) -> List[PollRead]:
    return [_to_read(item) for item in poll_service.list_active_polls(db, now=now)]


@router.get("/my-votes", response_model=Dict[int, List[int]])
def my_votes(
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> Dict[int, List[int]]:
    return poll_service.get_all_user_votes(db, str(resident.id))


@router.post("/", response_model=PollRead, status_code=status.HTTP_201_CREATED)
def create_poll(
    payload: PollCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> PollRead:
    poll = poll_service.create_poll(
        db,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        options=payload.options,
        allow_multiple_votes=payload.allow_multiple_votes,
        expires_at=payload.expires_at,
        created_by=str(actor.id),
        now=now,
    )
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="poll.create",
        target_entity_type="Poll",
        target_entity_id=str(poll.id),
        after=model_snapshot(poll),
    )
    return _to_read(poll_service.get_poll_with_tally(db, poll.id))


@router.get("/{poll_id}", response_model=PollRead)
def get_poll(
    poll_id: int,
    db: Session = Depends(get_db),
    _: Resident = Depends(get_current_resident),
) -> PollRead:
    return _to_read(poll_service.get_poll_with_tally(db, poll_id))


@router.patch("/{poll_id}", response_model=PollRead)
def update_poll(
    poll_id: int,
    payload: PollUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> PollRead:
    changes = payload.model_dump(exclude_unset=True)
    poll = poll_service.update_poll(db, poll_id, now=now, **changes)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="poll.update",
        target_entity_type="Poll",
        target_entity_id=str(poll.id),
        after=changes,
    )
    return _to_read(poll_service.get_poll_with_tally(db, poll.id))


@router.post("/{poll_id}/toggle", response_model=PollRead)
def toggle_poll(
    poll_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> PollRead:
    poll = poll_service.toggle_active(db, poll_id, now=now)
    db.commit()
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="poll.toggle",
        target_entity_type="Poll",
        target_entity_id=str(poll.id),
        after={"is_active": poll.is_active},
    )
    return _to_read(poll_service.get_poll_with_tally(db, poll.id))


@router.delete("/{poll_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_poll(
    poll_id: int,
    db: Session = Depends(get_db),
    actor: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> Response:
    removed_votes = poll_service.delete_poll(db, poll_id)
    audit_log(
        db_session=db,
        actor_resident_id=actor.id,
        action="poll.delete",
        target_entity_type="Poll",
        target_entity_id=str(poll_id),
        before={"votes_removed": removed_votes},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{poll_id}/vote", response_model=PollVoteRead)
def cast_vote(
    poll_id: int,
    payload: PollVoteCast,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    resident: Resident = Depends(get_current_resident),
) -> PollVote:
    ballot = poll_service.cast_vote(db, poll_id, str(resident.id), payload.selected_options, now=now)
    db.refresh(ballot)
    return ballot


@router.get("/{poll_id}/my-vote", response_model=Optional[PollVoteRead])
def my_vote(
    poll_id: int,
    db: Session = Depends(get_db),
    resident: Resident = Depends(get_current_resident),
) -> Optional[PollVote]:
    return poll_service.get_user_vote(db, poll_id, str(resident.id))


@router.get("/{poll_id}/votes", response_model=List[PollVoteRead])
def list_poll_votes(
    poll_id: int,
    db: Session = Depends(get_db),
    _: Resident = Depends(require_roles(*MANAGER_ROLES)),
) -> List[PollVote]:
    return poll_service.get_poll_votes(db, poll_id)
