# Overview: Transaction boundaries, row locking and retry for ledger operations.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, TransactionFailure
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query, *, read: bool = False):
    """
    Apply row-level locking for critical operations.

    read=True takes a shared lock (FOR SHARE on PostgreSQL).

    NOTE: SQLite ignores SELECT ... FOR UPDATE; write transactions there
    are serialized by begin_immediate() instead.
    """
    return query.with_for_update(read=read)


def begin_immediate():
    """Take the SQLite write lock up front so check-then-write cannot interleave."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after concurrency conflict (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func inside one transaction and commit it.

    - LedgerError: rolled back and re-raised unchanged
    - lock conflicts: retried (see run_with_retry)
    - any other storage failure: rolled back and raised as TransactionFailure

    func must be safe to re-run from scratch; it receives no arguments and
    its return value is returned after commit.
    """
    def _op():
        begin_immediate()
        try:
            result = func()
            db.session.commit()
        except LedgerError:
            db.session.rollback()
            raise
        return result

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    except LedgerError:
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Transaction rolled back")
        raise TransactionFailure() from exc
