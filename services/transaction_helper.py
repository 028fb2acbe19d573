"""
Transaction Helper Service

Wraps service operations in a database transaction:
- Commit on success, rollback on any error
- Retry with backoff on connection-level failures only
- Integrity violations translated into domain conflicts
"""

from functools import wraps
from typing import Callable, Optional
import logging
import time
from sqlalchemy.exc import OperationalError, IntegrityError, DisconnectionError
from app import db
from .exceptions import ConflictError

logger = logging.getLogger(__name__)

class TransactionHelper:
    """Helper class for managing database transactions safely"""

    max_retries = 3
    backoff = 0.5

    @staticmethod
    def with_transaction(func: Optional[Callable] = None, *, conflict_message: str = 'Resource already exists'):
        """
        Decorator that wraps a function in a database transaction.
        Automatically handles commit/rollback and retries connection failures.

        Usage:
            @TransactionHelper.with_transaction
            def terminate(self, employment_id, caller):
                ...

            @TransactionHelper.with_transaction(conflict_message='Duplicate rating')
            def create(self, ...):
                ...
        """
        def decorator(fn: Callable) -> Callable:
            @wraps(fn)
            def wrapper(*args, **kwargs):
                attempts = TransactionHelper.max_retries
                for attempt in range(attempts):
                    try:
                        result = fn(*args, **kwargs)
                        db.session.commit()
                        return result
                    except IntegrityError as e:
                        db.session.rollback()
                        logger.warning(f"Integrity violation in {fn.__name__}: {e.orig}")
                        raise ConflictError(conflict_message) from e
                    except (OperationalError, DisconnectionError) as e:
                        db.session.rollback()
                        if attempt < attempts - 1:
                            sleep_time = TransactionHelper.backoff * (2 ** attempt)
                            logger.warning(f"Database connection error in {fn.__name__} "
                                           f"(attempt {attempt + 1}/{attempts}): {str(e)}. "
                                           f"Retrying in {sleep_time}s...")
                            time.sleep(sleep_time)
                            continue
                        logger.error(f"Transaction failed after {attempts} attempts: {str(e)}")
                        raise
                    except Exception:
                        db.session.rollback()
                        raise
            return wrapper

        if func is not None:
            return decorator(func)
        return decorator
