"""
Transaction helpers for SQLAlchemy sessions.

Every write in the gate runs inside one of these so a failure half-way
through an operation (delete-then-insert on issuance, role grant plus
profile mirror on promotion) never leaves a partial result behind.
"""
import time
from functools import wraps
from typing import Callable
import logging

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def atomic_transaction(func: Callable) -> Callable:
    """
    Run ``func(db, ...)`` as one unit: commit when it returns, roll back and
    re-raise when it raises.

    Usage:
        @atomic_transaction
        def store_something(db: Session, ...):
            db.add(...)
    """
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            result = func(db, *args, **kwargs)
            db.commit()
            logger.debug(f"Transaction committed: {func.__name__}")
            return result
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Transaction rolled back: {func.__name__} - Error: {e}")
            raise

    return wrapper


class TransactionContext:
    """
    Explicit transaction block.

    Usage:
        with TransactionContext(db) as tx:
            tx.session.add(BannedIP(ip_address="1.2.3.4"))
    """

    def __init__(self, session: Session):
        self.session = session
        self._committed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.session.rollback()
            logger.error(f"❌ Transaction rolled back due to: {exc_val}")
            return False
        if not self._committed:
            self.session.commit()
            self._committed = True
        return False

    def commit(self):
        if not self._committed:
            self.session.commit()
            self._committed = True


def retry_on_deadlock(max_attempts: int = 3):
    """
    Retry the wrapped call when the database reports a deadlock.

    Two issuance requests for the same email both delete the unverified rows
    before inserting; on PostgreSQL that can deadlock and one side simply
    runs again.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            delay = 0.1
            while True:
                try:
                    return func(*args, **kwargs)
                except OperationalError as e:
                    if 'deadlock' not in str(e).lower():
                        raise
                    attempt += 1
                    if attempt >= max_attempts:
                        logger.error(f"❌ Max retry attempts ({max_attempts}) reached for deadlock")
                        raise
                    logger.warning(f"⚠️  Deadlock detected, retrying (attempt {attempt}/{max_attempts})")
                    time.sleep(delay)
                    delay *= 2

        return wrapper
    return decorator
