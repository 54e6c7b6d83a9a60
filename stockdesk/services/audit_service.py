from typing import Any

from sqlalchemy.orm import Session

from stockdesk.core.id_utils import generate_id
from stockdesk.core.security_current import Actor
from stockdesk.models.audit_log import AuditLog


def log_audit_event(
    db: Session,
    *,
    actor: Actor,
    action: str,
    target_type: str,
    target_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog:
    event = AuditLog(
        id=generate_id(),
        actor_id=actor.id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata_json={"actor_name": actor.name, **(metadata_json or {})},
    )
    db.add(event)
    return event
