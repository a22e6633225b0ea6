import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..models.models import AuditLog


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    try:
        return json.dumps(data, default=str)
    except TypeError:
        return str(data)


def model_snapshot(instance: Any, exclude: tuple[str, ...] = ("hashed_password",)) -> dict[str, Any]:
    """Column values of an ORM instance, suitable for the before/after payloads."""
    return {
        attr.key: getattr(instance, attr.key)
        for attr in instance.__mapper__.column_attrs
        if attr.key not in exclude
    }


def audit_log(
    db_session: Session,
    actor_resident_id: Optional[int],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[str] = None,
    before: Any = None,
    after: Any = None,
) -> AuditLog:
    """Record an administrative mutation. Commits the caller's session."""
    entry = AuditLog(
        timestamp=utcnow(),
        actor_resident_id=actor_resident_id,
        action=action,
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        before=_serialize(before),
        after=_serialize(after),
    )
    db_session.add(entry)
    db_session.commit()
    return entry
