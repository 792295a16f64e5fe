# Overview: Per-armory write scope, row locking and bounded retry for the distribution services.

"""
Armory write discipline (authoritative)

- Every Issue / Return / ReturnAll / Renew / Cancel / Restock runs inside
  armory_scope(armory_id) for its whole read-validate-write-commit span.
- The scope holds a process-local lock for that armory only; different
  armories never share a lock, so they never block each other.
- Rows are read with SELECT ... FOR UPDATE and populate_existing() so that
  databases with row locks also serialize writers in other processes, and
  stale identity-map state is never validated against.
- Armory, StockLine and Distribution carry version_id_col; a writer that
  slipped past both locks fails at flush with StaleDataError.
- One operation = one db.session.commit(). On any exit other than a
  successful commit the session is rolled back before the lock is released.
"""

from __future__ import annotations

import threading
import time
import weakref
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrentModificationError


class ArmoryLockRegistry:
    """
    Lazily created lock per armory id.

    Entries live only while some caller holds the lock object, so ids that
    never resolve to an armory do not accumulate.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def lock_for(self, armory_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(armory_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[armory_id] = lock
            return lock


_registry = ArmoryLockRegistry()


def lock_for_update(query):
    """
    Apply row-level locking and refresh already-loaded instances.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the process-local armory lock
    covers it there.
    """
    return query.with_for_update().populate_existing()


@contextmanager
def armory_scope(armory_id: int):
    """
    Exclusive write scope for one armory.

    Rolls back on every non-success exit, including cancellation of the
    calling thread (BaseException), and always releases the lock.
    """
    lock = _registry.lock_for(armory_id)
    lock.acquire()
    try:
        yield
    except BaseException:
        db.session.rollback()
        raise
    finally:
        lock.release()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute an armory operation with retry on concurrency-related failures.

    Retries on OperationalError (database locks, deadlocks) and StaleDataError
    (optimistic version conflicts). Domain errors propagate on first raise.
    When attempts run out the conflict surfaces as ConcurrentModificationError.
    """
    if attempts is None:
        attempts = current_app.config.get("ARMORY_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("ARMORY_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Armory write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))

    raise ConcurrentModificationError(
        f"Concurrent modification persisted after {attempts} attempts",
        attempts=attempts,
        cause=type(last_exc).__name__ if last_exc else None,
    ) from last_exc
