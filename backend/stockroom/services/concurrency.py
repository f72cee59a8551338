# Overview: Row locking and retry helpers for stock-affecting transactions.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Rows already in the identity map are refreshed from the locked read.
    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update().populate_existing()


def begin_write(session) -> None:
    """
    Take the database write lock up front on SQLite.

    Accepts a Session or a scoped_session such as Flask-SQLAlchemy's
    db.session. Other engines serialise through the FOR UPDATE row locks
    instead, so this is a no-op for them.
    """
    if isinstance(session, scoped_session):
        session = session()
    bind = session.get_bind()
    if bind.dialect.name != "sqlite":
        return
    if session.in_transaction() and session.new | session.dirty | session.deleted:
        return
    try:
        session.execute(text("BEGIN IMMEDIATE"))
    except OperationalError as exc:
        # pysqlite already opened a transaction for this connection
        if "within a transaction" not in str(exc):
            raise


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic version_id conflicts). Any other exception rolls back and
    propagates unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("retrying after concurrency conflict (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
    if last_exc:
        raise last_exc

