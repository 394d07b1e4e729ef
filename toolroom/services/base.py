import logging
from contextlib import contextmanager

from pymongo.errors import PyMongoError

from toolroom.exceptions import StoreError

logger = logging.getLogger(__name__)

@contextmanager
def store_errors(operation: str):
    """Re-raise driver failures as StoreError."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"{operation} failed: {e}")
        raise StoreError(f"{operation} failed: {e}") from e
