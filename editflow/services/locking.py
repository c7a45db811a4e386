"""
Per-draft serialization.

Every state-changing draft operation runs inside ``locked_draft``: the draft
row is read with ``SELECT ... FOR UPDATE`` so concurrent operations on one
draft queue behind each other, while different drafts never contend. Events
recorded during the block are delivered only after the commit succeeds.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from editflow.core.exceptions import DependencyFailure, EditingError, LockTimeoutError, NotFoundError
from editflow.models import db
from editflow.models.draft import Draft
from editflow.services.events import EventBatch

logger = logging.getLogger(__name__)

# PostgreSQL lock_not_available / MySQL lock wait timeout / SQLite busy
_LOCK_MARKERS = ("lock timeout", "lock_not_available", "lock wait timeout", "database is locked")


def _is_lock_timeout(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode == "55P03":
        return True
    text = str(exc.orig).lower()
    return any(marker in text for marker in _LOCK_MARKERS)


def lock_draft(module_id: str) -> Draft:
    """Load and lock the draft of ``module_id`` for the current transaction.

    Raises:
        NotFoundError: No draft exists (it may have just been concluded or
            cancelled by a concurrent operation).
        LockTimeoutError: Another operation held the lock for too long.
    """
    stmt = (
        select(Draft)
        .where(Draft.module_id == module_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    try:
        draft = db.session.execute(stmt).scalar_one_or_none()
    except OperationalError as exc:
        db.session.rollback()
        if _is_lock_timeout(exc):
            logger.warning("Timed out waiting for draft lock", extra={"draft_id": module_id})
            raise LockTimeoutError("Draft is locked by another operation, retry later",
                                   details={"draft": module_id}) from exc
        raise DependencyFailure("Database unavailable") from exc
    if draft is None:
        raise NotFoundError(resource="Draft", resource_id=module_id)
    return draft


@contextmanager
def locked_draft(module_id: str):
    """Run a block against the locked draft and commit it.

    Yields:
        ``(draft, batch)``. Record events on ``batch``; they are emitted
        after commit and discarded on rollback.
    """
    batch = EventBatch()
    draft = lock_draft(module_id)
    try:
        yield draft, batch
        db.session.commit()
    except EditingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on draft operation", extra={"draft_id": module_id})
        raise DependencyFailure("Database error, no changes were made") from exc
    except Exception:
        db.session.rollback()
        raise
    batch.flush()
