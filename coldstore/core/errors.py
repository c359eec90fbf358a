from __future__ import annotations

from typing import Any


class ColdStoreError(Exception):
    """Business-rule failure with enough structure for the HTTP layer.

    `code` is a stable machine-readable kind, `message` is for humans,
    `details` carries optional structured context (e.g. shortages).
    """

    code = "coldstore_error"
    status = 400

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None,
                 details: Any = None):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationError(ColdStoreError):
    code = "validation_error"
    status = 422


class NotFoundError(ColdStoreError):
    code = "not_found"
    status = 404


class DuplicateKeyError(ColdStoreError):
    code = "duplicate_key"
    status = 409


class DuplicateNameError(DuplicateKeyError):
    code = "duplicate_name"


class DuplicateLocationError(DuplicateKeyError):
    code = "duplicate_location"


class DuplicateBatchNumberError(DuplicateKeyError):
    code = "duplicate_batch_number"


class InvalidStatusError(ColdStoreError):
    code = "invalid_status"
    status = 422


class NoSuitableLocationError(ColdStoreError):
    code = "no_suitable_location"
    status = 409


class InsufficientStockError(ColdStoreError):
    code = "insufficient_stock"
    status = 409


class CapacityExceededError(ColdStoreError):
    code = "capacity_exceeded"
    status = 409


class ConcurrencyConflictError(ColdStoreError):
    """Lock contention or a lost race; the caller may retry."""

    code = "concurrency_conflict"
    status = 409


class LedgerDriftError(ColdStoreError):
    """Occupancy counter disagrees with the batches it is derived from."""

    code = "ledger_drift"
    status = 500
