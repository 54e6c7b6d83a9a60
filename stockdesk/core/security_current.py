from dataclasses import dataclass

from fastapi import Header, HTTPException

from stockdesk.core.config import settings


@dataclass(frozen=True)
class Actor:
    id: str
    name: str | None = None


def _clean(value: str | None, *, max_length: int) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned[:max_length] or None


def get_current_actor(
    x_actor_id: str | None = Header(default=None, description="Id of the user performing the call"),
    x_actor_name: str | None = Header(default=None, description="Display name of the user"),
) -> Actor:
    """
    Identity is supplied by the upstream gateway. Without a header the
    configured default actor is used, unless the deployment requires one.
    """
    actor_id = _clean(x_actor_id, max_length=64)
    actor_name = _clean(x_actor_name, max_length=255)
    if actor_id:
        return Actor(id=actor_id, name=actor_name)
    if settings.require_actor_header:
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return Actor(id=settings.default_actor_id, name=actor_name or settings.default_actor_name)
