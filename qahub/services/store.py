"""
QA Hub
Store helpers shared by every service.

Transaction policy: every public mutating service function runs inside
``unit_of_work``; the outermost block commits exactly once, nested blocks
just join it. Helpers in this module only flush.

    with unit_of_work("link test case to bug"):
        ...                      # flush-only work
    # committed here, or rolled back and re-raised as a platform error
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app, g
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from qahub.core.exceptions import ConflictError, NotFoundError, PersistenceError
from qahub.models import db
from qahub.models.project import FriendlyIdSequence

logger = logging.getLogger(__name__)

DEFAULT_MUTATION_TIMEOUT = 10


def utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# UNIT OF WORK
# ═════════════════════════════════════════════════════════════════════════════

@contextmanager
def unit_of_work(operation: str):
    """Run a block as one transaction with a bounded duration.

    Raises:
        ConflictError: another writer changed a versioned row, or a unique
            constraint fired.
        PersistenceError: the store failed, or the deadline passed before
            commit. Nothing was applied.
    """
    depth = getattr(g, "_uow_depth", 0)
    if depth:
        # Nested: the outer block owns commit and rollback.
        g._uow_depth = depth + 1
        try:
            yield db.session
        finally:
            g._uow_depth = depth
        return

    timeout = current_app.config.get("MUTATION_TIMEOUT_SECONDS", DEFAULT_MUTATION_TIMEOUT)
    deadline = time.monotonic() + timeout
    g._uow_depth = 1
    try:
        yield db.session
        db.session.flush()
        if time.monotonic() > deadline:
            raise PersistenceError(operation, f"exceeded {timeout}s")
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent modification during %s: %s", operation, exc)
        raise ConflictError(
            "Entity", "version",
            message=f"{operation}: entity was modified concurrently, reload and retry",
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error during %s: %s", operation, exc.orig)
        raise ConflictError(
            "Entity", "constraint",
            message=f"{operation}: duplicate or constraint violation",
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store failure during %s", operation)
        raise PersistenceError(operation, type(exc).__name__) from exc
    except Exception:
        db.session.rollback()
        raise
    finally:
        g._uow_depth = 0


# ═════════════════════════════════════════════════════════════════════════════
# LOOKUPS
# ═════════════════════════════════════════════════════════════════════════════

def get_scoped(model, pk, project_id=None):
    """Fetch by primary key, optionally requiring a project match.

    A row in another project is reported exactly like a missing one.
    """
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk, project_id=project_id)
    if project_id is not None and getattr(obj, "project_id", project_id) != project_id:
        raise NotFoundError(resource=model.__name__, resource_id=pk, project_id=project_id)
    return obj


def touch(*entities):
    """Mark entities as modified so their version counter moves on flush."""
    now = utcnow()
    for entity in entities:
        entity.updated_at = now


# ═════════════════════════════════════════════════════════════════════════════
# FRIENDLY IDS
# ═════════════════════════════════════════════════════════════════════════════

def next_friendly_id(project_id: int, prefix: str, width: int | None = None) -> str:
    """Return the next ``<prefix>-<n>`` for a project (row-locked counter).

    Example: next_friendly_id(3, "RUN", width=3) -> "RUN-007"
    """
    seq = (
        FriendlyIdSequence.query
        .filter_by(project_id=project_id, prefix=prefix)
        .with_for_update()
        .first()
    )
    if seq is None:
        seq = FriendlyIdSequence(project_id=project_id, prefix=prefix, last_value=0)
        db.session.add(seq)
    seq.last_value = (seq.last_value or 0) + 1
    db.session.flush()
    number = f"{seq.last_value:0{width}d}" if width else str(seq.last_value)
    return f"{prefix}-{number}"
