from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from coldstore.core.errors import ValidationError
from coldstore.db.models.enums import StorageCategory, parse_enum
from coldstore.db.models.storage import StorageLocation

log = logging.getLogger("coldstore.allocation")


def temperature_in_range(loc: StorageLocation) -> bool:
    if loc.latest_temperature is None or loc.min_temp is None or loc.max_temp is None:
        return False
    return float(loc.min_temp) <= float(loc.latest_temperature) <= float(loc.max_temp)


def allocate(
    db: Session,
    category,
    quantity_needed: int,
    *,
    allow_unread: bool = True,
    exclude: Iterable[str] = (),
) -> StorageLocation | None:
    """Pick one location of `category` with room for `quantity_needed`.

    Candidates are ranked by free space (most slack first). Cold storage
    additionally needs the cached reading inside [min_temp, max_temp]; a
    location with no reading yet is accepted when `allow_unread` is set.
    Returns None when nothing qualifies. Reads only: the caller commits the
    occupancy increment in its own unit of work.
    """
    cat = parse_enum(StorageCategory, category)
    if cat is None:
        raise ValidationError(f"Unknown storage category '{category}'.")
    if int(quantity_needed) <= 0:
        raise ValidationError("Quantity to allocate must be positive.")

    free = StorageLocation.capacity - StorageLocation.current_occupancy
    q = (db.query(StorageLocation)
         .filter(StorageLocation.location_type == cat.value, free >= int(quantity_needed)))
    excluded = list(exclude)
    if excluded:
        q = q.filter(StorageLocation.id.notin_(excluded))
    candidates = q.order_by(free.desc(), StorageLocation.created_at.asc(), StorageLocation.id.asc()).all()

    if cat is StorageCategory.AMBIENT:
        if candidates:
            log.debug("allocated ambient location %s", candidates[0].label)
            return candidates[0]
        log.info("no ambient location can take %s units", quantity_needed)
        return None

    for loc in candidates:
        if loc.latest_temperature is None:
            if allow_unread:
                log.debug("allocated cold location %s without a reading yet", loc.label)
                return loc
            log.warning("skipping cold location %s: no temperature reading", loc.label)
            continue
        if temperature_in_range(loc):
            return loc
        log.warning(
            "skipping cold location %s: %s°C outside [%s, %s]",
            loc.label, loc.latest_temperature, loc.min_temp, loc.max_temp,
        )

    log.info("no cold storage location can take %s units", quantity_needed)
    return None
