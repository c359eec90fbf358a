from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from coldstore.core.errors import (
    ConcurrencyConflictError,
    DuplicateBatchNumberError,
    DuplicateKeyError,
    ValidationError,
)

log = logging.getLogger("coldstore.tx")

# lock_not_available, deadlock_detected, serialization_failure
_RETRYABLE_PGCODES = {"55P03", "40P01", "40001"}


def _is_lock_failure(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES:
        return True
    msg = str(exc.orig).lower()
    return "database is locked" in msg or "lock timeout" in msg or "deadlock" in msg


def _is_unique_violation(exc: IntegrityError) -> bool:
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    msg = str(exc.orig).lower()
    return "unique" in msg or "duplicate" in msg


def _violated_column(exc: IntegrityError) -> str:
    # postgres: constraint cs_batch_batch_number_key; sqlite: "UNIQUE constraint failed: cs_batch.batch_number"
    diag = getattr(exc.orig, "diag", None)
    return f"{getattr(diag, 'constraint_name', None) or ''} {exc.orig}"


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Unit of work: commit on success, roll back everything on any failure.

    Driver errors that carry business meaning are translated so callers only
    ever see the ColdStoreError taxonomy or an unexpected fault.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _is_unique_violation(e):
            if "batch_number" in _violated_column(e):
                raise DuplicateBatchNumberError("A batch with the same batch number already exists.") from e
            raise DuplicateKeyError("A record with the same unique key already exists.") from e
        raise ValidationError("Referenced record does not exist.") from e
    except OperationalError as e:
        db.rollback()
        if _is_lock_failure(e):
            log.info("lock conflict, unit of work rolled back: %s", e.orig)
            raise ConcurrencyConflictError("The record is locked by another operation; retry.") from e
        raise
    except BaseException:
        db.rollback()
        raise
