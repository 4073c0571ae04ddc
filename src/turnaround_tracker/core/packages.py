"""Package management operations."""

import logging
from datetime import datetime

from turnaround_tracker.core.schedule import refresh_package_window
from turnaround_tracker.core.store import Store, slugify, unique_id
from turnaround_tracker.db.models import PRIORITIES, Package
from turnaround_tracker.errors import ValidationError

logger = logging.getLogger(__name__)


def validate_package(package: Package) -> list[str]:
    """Return a list of problems with a package record (empty when valid)."""
    errors = []
    if not package.id or not package.id.strip():
        errors.append("Package ID is required")
    if not package.name or not package.name.strip():
        errors.append("Package name is required")
    if package.priority not in PRIORITIES:
        errors.append(f"Invalid priority '{package.priority}'")
    if not isinstance(package.start_date, datetime) or not isinstance(package.end_date, datetime):
        errors.append("Planned start and end dates are required")
    elif package.start_date > package.end_date:
        errors.append("Planned start date must not be after the planned end date")
    return errors


def new_package_id(store: Store, name: str) -> str:
    """Generate an unused package id from a name."""
    return unique_id(store.packages, "PKG-" + (slugify(name).upper() or "NEW"))


def upsert_package(store: Store, package: Package) -> Package:
    """Create or replace a package.

    When the package already has activities its planned window is re-derived
    from them, so manually entered dates only stick for empty packages.
    """
    errors = validate_package(package)
    if errors:
        raise ValidationError(errors[0], errors)

    is_update = package.id in store.packages
    store.packages[package.id] = package
    store.dirty = True
    refresh_package_window(store, package.id)
    logger.info("Package %s: %s", "updated" if is_update else "created", package.id)
    return store.packages[package.id]


def delete_package(store: Store, package_id: str) -> bool:
    """Delete a package and every activity that references it."""
    package = store.get_package(package_id)
    if not package:
        return False

    doomed = {a.id for a in store.list_activities(package_id=package_id)}
    for activity_id in doomed:
        del store.activities[activity_id]
    store.events = [e for e in store.events if e.activity_id not in doomed]
    del store.packages[package_id]
    store.dirty = True
    logger.info("Package deleted: %s (%d activities)", package_id, len(doomed))
    return True
