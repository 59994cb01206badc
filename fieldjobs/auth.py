import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from .domain.lifecycle.transitions import VALID_PARTIES, Party
from .shared.errors import ActionNotPermittedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who is calling: which side of the job and their account id"""

    role: str
    id: Optional[str] = None


async def get_current_actor(
    x_actor_role: Optional[str] = Header(None),
    x_actor_id: Optional[str] = Header(None),
) -> Actor:
    """Resolve the caller from the X-Actor-Role / X-Actor-Id headers"""
    role = (x_actor_role or "").strip().lower()
    if role not in VALID_PARTIES:
        logger.warning(f"❌ Rejected request with actor role {x_actor_role!r}")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Provide X-Actor-Role as 'provider' or 'customer'.",
        )
    return Actor(role=role, id=(x_actor_id or "").strip() or None)


def require_provider_self(actor: Actor, provider_id: str) -> None:
    """Provider-scoped resources are only open to that provider"""
    if actor.role != Party.PROVIDER.value or not actor.id or actor.id != provider_id:
        logger.warning(f"⚠️ {actor.role} {actor.id} denied access to provider {provider_id}")
        raise ActionNotPermittedError("You can only access your own provider account")
