"""Per-entity serialized read-modify-write.

Circle, CheckIn and Alert carry a ``version`` column mapped as SQLAlchemy's
``version_id_col``: a flush whose UPDATE matches no row (because another
writer bumped the version first) raises ``StaleDataError``; a racing insert of
a per-user child row raises ``IntegrityError``. ``apply_transition``
reloads the row and re-runs the mutation so a concurrent acknowledgment is
never silently dropped and a terminal alert is never resurrected.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from safecircle.core import clock
from safecircle.core.config import settings
from safecircle.core.errors import NotFoundError, ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def apply_transition(
    db: Session,
    model: type[T],
    entity_id: int,
    mutate: Callable[[T], R],
    not_found: str = "Not found",
) -> tuple[T, R]:
    """Load ``model`` by id, apply ``mutate`` and commit, retrying on version conflicts.

    ``mutate`` must be safe to re-run against a freshly loaded row; it raises
    domain errors to abort without writing.
    """
    attempts = max(1, settings.transition_retry_attempts)
    for attempt in range(1, attempts + 1):
        entity = db.get(model, entity_id, populate_existing=True)
        if entity is None or getattr(entity, "is_deleted", False):
            raise NotFoundError(not_found)
        try:
            result = mutate(entity)
            db.commit()
        except (StaleDataError, IntegrityError):
            db.rollback()
            logger.info(
                "Version conflict on %s %s (attempt %s/%s)",
                model.__name__,
                entity_id,
                attempt,
                attempts,
            )
            continue
        except Exception:
            db.rollback()
            raise
        db.refresh(entity)
        return entity, result
    raise ServerError(f"{model.__name__} {entity_id} is being modified concurrently, retry later")


def touch(entity, now=None) -> None:
    """Mark the parent row dirty so its version advances with child-only changes."""
    entity.updated_at = now or clock.utcnow()
    flag_modified(entity, "updated_at")
