# Overview: Transaction-boundary and row-locking helpers shared by the sale and gift card services.

from __future__ import annotations

from contextlib import contextmanager

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (writers are serialized at
    the database level), but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Scope a unit of work to exactly one datastore transaction.

    Commits when the block exits cleanly; on any exception the session is
    rolled back and the original error propagates unchanged. Nothing here
    retries: a conflicting write surfaces to the caller.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
