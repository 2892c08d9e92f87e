# tovis/dependencies.py
"""
Request-scoped dependencies.

Identity comes from headers set by the gateway after it has authenticated
the caller: X-User-ID, X-User-Role and, for professionals, X-Professional-ID.
"""

from fastapi import Header, HTTPException, status
from redis import Redis

from .redis_client import redis_client
from .services.actor import Actor, Role
from .services.clock import Clock, utcnow


def get_actor(
    x_user_id: int | None = Header(None),
    x_user_role: str | None = Header(None),
    x_professional_id: int | None = Header(None),
) -> Actor:
    if x_user_id is None or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized")

    try:
        role = Role(x_user_role.strip().upper())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized") from None

    if role == Role.PRO and x_professional_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized")

    return Actor(
        user_id=x_user_id,
        role=role,
        professional_id=x_professional_id if role == Role.PRO else None,
    )


def require_pro(actor: Actor) -> int:
    """Professional ID of the actor, or 403."""
    if not actor.is_pro:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Professionals only")
    return actor.professional_id


def get_clock() -> Clock:
    return utcnow


def get_redis() -> Redis | None:
    return redis_client
