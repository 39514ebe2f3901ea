"""
Transaction Helper Service

Commits or rolls back service operations based on their result tuple and
retries transient connection failures.
"""

from functools import wraps
from typing import Callable
import logging
import time
from sqlalchemy.exc import OperationalError, DisconnectionError
from app import db

logger = logging.getLogger(__name__)


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    max_retries = 3
    retry_delay = 0.5

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a service call in a database transaction.

        Service results follow the ``(success: bool, error: str, ...)`` pattern:
        a successful result is committed, a failed one rolled back. Connection
        errors are retried; any other exception is rolled back and re-raised.

        Usage:
            @TransactionHelper.with_transaction
            def settle_trip(self, trip_id, actor):
                ...
                return True, None, payment
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_retries = TransactionHelper.max_retries
            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)

                    if isinstance(result, tuple) and len(result) >= 2 and isinstance(result[0], bool):
                        if result[0]:
                            db.session.commit()
                        else:
                            db.session.rollback()
                        return result

                    db.session.commit()
                    return result

                except (OperationalError, DisconnectionError) as e:
                    db.session.rollback()
                    logger.error(f"Transaction error (attempt {attempt + 1}/{max_retries}): {str(e)}")
                    if attempt < max_retries - 1:
                        time.sleep(TransactionHelper.retry_delay)
                        continue
                    logger.error(f"Transaction failed after {max_retries} attempts: {str(e)}")
                    raise
                except Exception as e:
                    db.session.rollback()
                    logger.error(f"Transaction aborted in {func.__name__}: {str(e)}")
                    raise
            return None
        return wrapper
