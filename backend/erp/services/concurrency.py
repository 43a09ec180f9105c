# Overview: Service-layer operations for concurrency; transaction, lock and retry helpers.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModificationError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the write transaction before the first locked read.

    On SQLite this issues BEGIN IMMEDIATE so that two writers serialize on
    the database lock instead of both reading stale counters. Other dialects
    rely on SELECT ... FOR UPDATE and this is a no-op.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("STOCK_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation as one transaction, retrying lock failures.

    - OperationalError (lock timeout, deadlock victim): rollback and retry.
    - StaleDataError (optimistic version mismatch): rollback and raise
      ConcurrentModificationError; never retried here.
    - Anything else: rollback and re-raise unchanged.
    """
    if attempts is None:
        attempts = _default_attempts()
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrentModificationError() from exc
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
