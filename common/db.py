import logging
from contextlib import contextmanager

from django.db import DatabaseError, transaction

from common.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def atomic_write(operation, **log_extra):
    """Run a multi-table write in one transaction.

    Any ``DatabaseError`` rolls the whole block back and is re-raised as
    ``PersistenceError``; domain errors propagate unchanged.
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception("persistence_failed operation=%s", operation, extra=log_extra)
        raise PersistenceError(operation, exc) from exc
