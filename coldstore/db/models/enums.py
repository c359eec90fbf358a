from __future__ import annotations

import enum


class StorageCategory(str, enum.Enum):
    """Shared by Product.category and StorageLocation.location_type."""

    AMBIENT = "Ambient"
    COLD_STORAGE = "Cold Storage"


class BatchStatus(str, enum.Enum):
    AVAILABLE = "Available"
    PICKED = "Picked"
    DISPATCHED = "Dispatched"
    EXPIRED = "Expired"
    DAMAGED = "Damaged"


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    DISPATCHED = "Dispatched"
    CANCELLED = "Cancelled"


class PickStatus(str, enum.Enum):
    PENDING_PICK = "Pending Pick"
    PICKED = "Picked"
    DISPATCHED = "Dispatched"


def parse_enum(enum_cls: type[enum.Enum], value) -> enum.Enum | None:
    """Member for `value` (member or raw string), None when not a valid value."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None
