from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import MAX_POLL_OPTIONS, MIN_POLL_OPTIONS
from ..core.clock import ensure_aware, to_utc, utcnow
from ..core.errors import (
    ExpiredError,
    InactiveError,
    InvalidOptionError,
    MultiVoteNotAllowedError,
    NotFoundError,
    ValidationError,
    reject_nulls,
)
from ..models.models import Poll, PollVote

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "category",
    "options",
    "allow_multiple_votes",
    "expires_at",
    "is_active",
)
REQUIRED_FIELDS = ("title", "options", "allow_multiple_votes", "is_active")


@dataclass(frozen=True)
class WinningOption:
    index: int
    option: str
    votes: int
    percentage: float
    is_tied: bool
    tied_indices: list[int]


@dataclass(frozen=True)
class PollTally:
    option_votes: list[int]
    total_votes: int
    winning_option: Optional[WinningOption] = None


@dataclass
class PollWithTally:
    poll: Poll
    tally: PollTally = field(repr=False)

    def as_dict(self) -> dict[str, object]:
        poll = self.poll
        winner = self.tally.winning_option
        return {
            "id": poll.id,
            "title": poll.title,
            "description": poll.description,
            "category": poll.category,
            "options": list(poll.options or []),
            "allow_multiple_votes": poll.allow_multiple_votes,
            "expires_at": poll.expires_at,
            "is_active": poll.is_active,
            "created_by": poll.created_by,
            "created_at": poll.created_at,
            "updated_at": poll.updated_at,
            "option_votes": self.tally.option_votes,
            "total_votes": self.tally.total_votes,
            "winning_option": asdict(winner) if winner else None,
        }


def _validate_options(options: Sequence[str]) -> list[str]:
    if options is None or len(options) < MIN_POLL_OPTIONS or len(options) > MAX_POLL_OPTIONS:
        raise ValidationError(
            f"Polls need between {MIN_POLL_OPTIONS} and {MAX_POLL_OPTIONS} options."
        )
    return [str(option) for option in options]


def is_votable(poll: Poll, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if not poll.is_active:
        return False
    expires_at = ensure_aware(poll.expires_at)
    return expires_at is None or expires_at > now


def _load_poll(session: Session, poll_id: int) -> Poll:
    poll = session.get(Poll, poll_id)
    if not poll:
        raise NotFoundError("Poll not found")
    return poll


def create_poll(
    session: Session,
    *,
    title: str,
    options: Sequence[str],
    created_by: str,
    description: Optional[str] = None,
    allow_multiple_votes: bool = False,
    expires_at: Optional[datetime] = None,
    category: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Poll:
    """Persist a new active poll after checking the option count."""
    clean_options = _validate_options(options)
    now = now or utcnow()
    poll = Poll(
        title=title,
        description=description,
        category=category,
        options=clean_options,
        allow_multiple_votes=allow_multiple_votes,
        expires_at=to_utc(expires_at),
        is_active=True,
        created_by=str(created_by),
        created_at=now,
        updated_at=now,
    )
    session.add(poll)
    session.flush()
    logger.info("Poll %s created by %s with %d options", poll.id, created_by, len(clean_options))
    return poll


def update_poll(session: Session, poll_id: int, now: Optional[datetime] = None, **fields) -> Poll:
    """Apply a partial update. Only supplied keys change; ``updated_at`` always moves."""
    poll = _load_poll(session, poll_id)
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown poll fields: {', '.join(sorted(unknown))}")
    reject_nulls(fields, REQUIRED_FIELDS)
    if "options" in fields:
        fields["options"] = _validate_options(fields["options"])
    if fields.get("expires_at") is not None:
        fields["expires_at"] = to_utc(fields["expires_at"])
    for key, value in fields.items():
        setattr(poll, key, value)
    poll.updated_at = now or utcnow()
    session.flush()
    return poll


def vote(
    session: Session,
    poll_id: int,
    user_id: str,
    selected_options: Sequence[int],
    now: Optional[datetime] = None,
) -> PollVote:
    """Record or overwrite a user's selection. The latest call wins."""
    now = now or utcnow()
    poll = _load_poll(session, poll_id)
    if not poll.is_active:
        raise InactiveError("Poll is not active")
    expires_at = ensure_aware(poll.expires_at)
    if expires_at is not None and expires_at <= now:
        raise ExpiredError("Poll has expired")

    option_count = len(poll.options or [])
    selection = [int(index) for index in selected_options]
    for index in selection:
        if index < 0 or index >= option_count:
            raise InvalidOptionError(f"Option index {index} is out of range")
    if not poll.allow_multiple_votes and len(selection) > 1:
        raise MultiVoteNotAllowedError("This poll accepts a single option")

    user_key = str(user_id)
    existing = get_user_vote(session, poll.id, user_key)
    if existing:
        existing.selected_options = selection
        session.flush()
        logger.info("Vote updated on poll %s by %s", poll.id, user_key)
        return existing

    ballot = PollVote(poll_id=poll.id, user_id=user_key, selected_options=selection, created_at=now)
    session.add(ballot)
    session.flush()
    logger.info("Vote recorded on poll %s by %s", poll.id, user_key)
    return ballot


def cast_vote(
    session: Session,
    poll_id: int,
    user_id: str,
    selected_options: Sequence[int],
    now: Optional[datetime] = None,
) -> PollVote:
    """Record a vote and commit it.

    Two first-time votes from the same user can both miss the existing-vote
    lookup; the later insert then hits ``uq_poll_votes_poll_user``. That call
    rolls back and votes again, which overwrites the row the other one wrote.
    """
    try:
        ballot = vote(session, poll_id, user_id, selected_options, now=now)
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("Concurrent first vote on poll %s by %s; overwriting", poll_id, user_id)
        ballot = vote(session, poll_id, user_id, selected_options, now=now)
        session.commit()
    return ballot


def tally(poll: Poll, votes: Iterable[PollVote]) -> PollTally:
    """Count votes per option and determine the winner. Pure; touches no session."""
    options = list(poll.options or [])
    option_votes = [0] * len(options)
    total_votes = 0
    for ballot in votes:
        total_votes += 1
        for index in set(ballot.selected_options or []):
            if 0 <= index < len(option_votes):
                option_votes[index] += 1

    if total_votes == 0 or not option_votes:
        return PollTally(option_votes=option_votes, total_votes=total_votes)

    max_votes = max(option_votes)
    winning_indices = [index for index, count in enumerate(option_votes) if count == max_votes]
    first = winning_indices[0]
    winner = WinningOption(
        index=first,
        option=options[first],
        votes=max_votes,
        percentage=max_votes / total_votes * 100,
        is_tied=len(winning_indices) > 1,
        tied_indices=winning_indices,
    )
    return PollTally(option_votes=option_votes, total_votes=total_votes, winning_option=winner)


def _group_votes(session: Session, polls: Sequence[Poll]) -> Mapping[int, list[PollVote]]:
    grouped: dict[int, list[PollVote]] = defaultdict(list)
    if not polls:
        return grouped
    rows = session.query(PollVote).filter(PollVote.poll_id.in_([poll.id for poll in polls])).all()
    for row in rows:
        grouped[row.poll_id].append(row)
    return grouped


def _with_tallies(session: Session, polls: Sequence[Poll]) -> list[PollWithTally]:
    grouped = _group_votes(session, polls)
    return [PollWithTally(poll=poll, tally=tally(poll, grouped.get(poll.id, []))) for poll in polls]


def _newest_first(query):
    return query.order_by(Poll.created_at.desc(), Poll.id.desc())


def list_polls(
    session: Session,
    active_only: bool = False,
    category: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[PollWithTally]:
    query = session.query(Poll)
    if active_only:
        query = query.filter(Poll.is_active.is_(True))
    if category:
        query = query.filter(Poll.category == category)
    polls = _newest_first(query).all()
    if active_only:
        now = now or utcnow()
        polls = [poll for poll in polls if is_votable(poll, now)]
    return _with_tallies(session, polls)


def list_active_polls(session: Session, now: Optional[datetime] = None) -> list[PollWithTally]:
    return list_polls(session, active_only=True, now=now)


def list_polls_paginated(session: Session, limit: int = 20, offset: int = 0) -> tuple[list[PollWithTally], int]:
    if limit < 1:
        raise ValidationError("limit must be positive")
    if offset < 0:
        raise ValidationError("offset cannot be negative")
    total = session.query(Poll).count()
    polls = _newest_first(session.query(Poll)).offset(offset).limit(limit).all()
    return _with_tallies(session, polls), total


def get_poll_with_tally(session: Session, poll_id: int) -> PollWithTally:
    poll = _load_poll(session, poll_id)
    return _with_tallies(session, [poll])[0]


def delete_poll(session: Session, poll_id: int) -> int:
    """Delete a poll's votes, then the poll, committing each step.

    A failure between the steps leaves the poll without votes; calling this
    again finishes the job. Returns the number of votes removed.
    """
    poll = _load_poll(session, poll_id)
    removed = (
        session.query(PollVote)
        .filter(PollVote.poll_id == poll.id)
        .delete(synchronize_session=False)
    )
    session.commit()
    logger.debug("Removed %d votes for poll %s", removed, poll_id)
    try:
        session.delete(poll)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Poll %s lost its votes but the poll row could not be deleted", poll_id)
        raise
    logger.info("Poll %s deleted", poll_id)
    return removed


def get_user_vote(session: Session, poll_id: int, user_id: str) -> Optional[PollVote]:
    return (
        session.query(PollVote)
        .filter(PollVote.poll_id == poll_id, PollVote.user_id == str(user_id))
        .first()
    )


def get_poll_votes(session: Session, poll_id: int) -> list[PollVote]:
    _load_poll(session, poll_id)
    return (
        session.query(PollVote)
        .filter(PollVote.poll_id == poll_id)
        .order_by(PollVote.created_at.asc(), PollVote.id.asc())
        .all()
    )


def get_all_user_votes(session: Session, user_id: str) -> dict[int, list[int]]:
    rows = session.query(PollVote).filter(PollVote.user_id == str(user_id)).all()
    return {row.poll_id: list(row.selected_options or []) for row in rows}


def toggle_active(session: Session, poll_id: int, now: Optional[datetime] = None) -> Poll:
    poll = _load_poll(session, poll_id)
    poll.is_active = not poll.is_active
    poll.updated_at = now or utcnow()
    session.flush()
    logger.info("Poll %s is_active set to %s", poll_id, poll.is_active)
    return poll
