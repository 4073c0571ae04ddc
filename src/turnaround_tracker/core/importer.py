"""Bulk import of packages and activities from an Excel workbook.

The workbook has a ``Packages`` sheet and an ``Activities`` sheet with the
columns listed below. Rows are validated as a whole and every problem is
collected, so a caller can preview the import and only commit it once the
error list is empty. Imported rows are merged by id exactly as given: no
cascade rescheduling is applied.
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.datetime import from_excel

from turnaround_tracker.core.clock import naive_local, parse_timestamp
from turnaround_tracker.core.store import Store
from turnaround_tracker.db.models import NOT_STARTED, PRIORITIES, Activity, Package
from turnaround_tracker.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PACKAGES_SHEET = "Packages"
ACTIVITIES_SHEET = "Activities"

PACKAGE_COLUMNS = [
    "Package ID", "Package Name", "Description", "Priority",
    "Planned Start Date", "Planned End Date", "Supervisor",
]
ACTIVITY_COLUMNS = [
    "Activity ID", "Package ID", "Equipment Tag", "Activity Title", "Priority",
    "Planned Start Date", "Planned End Date", "Assignee",
]
REQUIRED_PACKAGE_COLUMNS = [
    "Package ID", "Package Name", "Priority", "Planned Start Date", "Planned End Date",
]
REQUIRED_ACTIVITY_COLUMNS = [
    "Activity ID", "Package ID", "Equipment Tag", "Activity Title", "Priority",
    "Planned Start Date", "Planned End Date",
]

DATE_FORMAT = "dd-mmm-yy hh:mm"


@dataclass
class ImportPreview:
    packages: list[Package] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ── Parsing ──────────────────────────────────────────────────────────────────


def _sheet_rows(ws) -> list[tuple[int, dict]]:
    """Rows of a worksheet as (row number, {header: value}), skipping blank rows."""
    rows = ws.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        return []
    names = [str(h).strip() if h is not None else "" for h in header]
    result = []
    for row_num, values in enumerate(rows, start=2):
        if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
            continue
        record = {}
        for name, value in zip(names, values):
            if not name:
                continue
            if isinstance(value, str):
                value = value.strip()
            record[name] = value
        result.append((row_num, record))
    return result


def parse_workbook(source: str | Path | bytes) -> tuple[list[tuple[int, dict]], list[tuple[int, dict]]]:
    """Read the raw package and activity rows from a workbook."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    wb = load_workbook(source, read_only=True, data_only=True)
    try:
        if PACKAGES_SHEET not in wb.sheetnames or ACTIVITIES_SHEET not in wb.sheetnames:
            raise ValidationError(
                f"The workbook is missing '{PACKAGES_SHEET}' or '{ACTIVITIES_SHEET}' sheets"
            )
        return _sheet_rows(wb[PACKAGES_SHEET]), _sheet_rows(wb[ACTIVITIES_SHEET])
    finally:
        wb.close()


def to_datetime(value) -> datetime | None:
    """Coerce a cell value (datetime, date, Excel serial or ISO text) to a datetime."""
    if isinstance(value, datetime):
        return naive_local(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        converted = from_excel(value)
        if isinstance(converted, datetime):
            return converted.replace(microsecond=0)
        return None
    if isinstance(value, str) and value:
        try:
            return parse_timestamp(value)
        except ValueError:
            return None
    return None


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value)


def _missing_columns(rows: list[tuple[int, dict]], required: list[str], sheet: str) -> list[str]:
    if not rows:
        return []
    present = set(rows[0][1])
    return [f"{sheet} sheet: missing column '{c}'" for c in required if c not in present]


# ── Validation ───────────────────────────────────────────────────────────────


def validate_rows(
    package_rows: list[tuple[int, dict]],
    activity_rows: list[tuple[int, dict]],
) -> ImportPreview:
    """Build packages and activities from raw rows, collecting every error."""
    preview = ImportPreview()
    preview.errors += _missing_columns(package_rows, REQUIRED_PACKAGE_COLUMNS, PACKAGES_SHEET)
    preview.errors += _missing_columns(activity_rows, REQUIRED_ACTIVITY_COLUMNS, ACTIVITIES_SHEET)
    if preview.errors:
        return preview

    package_ids = set()
    for row_num, row in package_rows:
        prefix = f"Package row {row_num}"
        if any(_blank(row.get(c)) for c in REQUIRED_PACKAGE_COLUMNS):
            preview.errors.append(f"{prefix}: Missing required fields.")
            continue
        package_id = str(row["Package ID"])
        if package_id in package_ids:
            preview.errors.append(f"{prefix}: Duplicate Package ID '{package_id}'.")
            continue
        start = to_datetime(row["Planned Start Date"])
        end = to_datetime(row["Planned End Date"])
        if start is None or end is None:
            preview.errors.append(f"{prefix}: Invalid planned start or end date.")
            continue
        if start > end:
            preview.errors.append(f"{prefix}: Planned start is after planned end.")
            continue
        if row["Priority"] not in PRIORITIES:
            preview.errors.append(f"{prefix}: Invalid priority '{row['Priority']}'.")
            continue
        package_ids.add(package_id)
        preview.packages.append(
            Package(
                id=package_id,
                name=str(row["Package Name"]),
                description=row.get("Description") or None,
                priority=row["Priority"],
                start_date=start,
                end_date=end,
                supervisor=row.get("Supervisor") or None,
            )
        )

    activity_ids = set()
    for row_num, row in activity_rows:
        prefix = f"Activity row {row_num}"
        if any(_blank(row.get(c)) for c in REQUIRED_ACTIVITY_COLUMNS):
            preview.errors.append(f"{prefix}: Missing required fields.")
            continue
        activity_id = str(row["Activity ID"])
        package_id = str(row["Package ID"])
        if activity_id in activity_ids:
            preview.errors.append(f"{prefix}: Duplicate Activity ID '{activity_id}'.")
            continue
        if package_id not in package_ids:
            preview.errors.append(
                f"{prefix}: Package ID '{package_id}' not found in the Packages sheet."
            )
            continue
        deadline = to_datetime(row["Planned Start Date"])
        planned_end = to_datetime(row["Planned End Date"])
        if deadline is None or planned_end is None:
            preview.errors.append(f"{prefix}: Invalid planned start or end date.")
            continue
        if deadline >= planned_end:
            preview.errors.append(f"{prefix}: Planned start must be before planned end.")
            continue
        if row["Priority"] not in PRIORITIES:
            preview.errors.append(f"{prefix}: Invalid priority '{row['Priority']}'.")
            continue
        activity_ids.add(activity_id)
        preview.activities.append(
            Activity(
                id=activity_id,
                title=str(row["Activity Title"]),
                package_name=package_id,
                tag=str(row["Equipment Tag"]),
                priority=row["Priority"],
                deadline=deadline,
                planned_end_date=planned_end,
                status=NOT_STARTED,
                assignee=row.get("Assignee") or None,
            )
        )

    return preview


def read_workbook(source: str | Path | bytes) -> ImportPreview:
    """Parse and validate a workbook into an import preview."""
    package_rows, activity_rows = parse_workbook(source)
    return validate_rows(package_rows, activity_rows)


# ── Merge ────────────────────────────────────────────────────────────────────


def bulk_merge(store: Store, packages: list[Package], activities: list[Activity]) -> tuple[int, int]:
    """Upsert packages and activities by id, taking them as authoritative.

    Package windows and activity windows are stored as given; no cascade is
    run. Returns (package count, activity count).
    """
    known = set(store.packages) | {p.id for p in packages}
    for activity in activities:
        if activity.package_name not in known:
            raise NotFoundError(f"Package not found: {activity.package_name}")

    for package in packages:
        store.packages[package.id] = package
    for activity in activities:
        store.activities[activity.id] = activity
        store.log_event(activity.id, "imported", None, activity.status)
    store.dirty = True
    logger.info("Bulk merged %d packages and %d activities", len(packages), len(activities))
    return len(packages), len(activities)


def commit_import(store: Store, preview: ImportPreview) -> tuple[int, int]:
    """Merge a validated preview; refuses while it has errors."""
    if preview.errors:
        raise ValidationError(
            f"Import blocked by {len(preview.errors)} validation error(s)", preview.errors
        )
    return bulk_merge(store, preview.packages, preview.activities)


# ── Template ─────────────────────────────────────────────────────────────────


def generate_template(path: str | Path | None = None) -> bytes:
    """Build the two-sheet import template; optionally write it to ``path``."""
    wb = Workbook()
    packages_ws = wb.active
    packages_ws.title = PACKAGES_SHEET
    packages_ws.append(PACKAGE_COLUMNS)
    packages_ws.append([
        "PKG-EX-01", "Exchanger Maintenance", "Overhaul of primary heat exchangers",
        "High", datetime(2024, 8, 15, 8, 0), datetime(2024, 8, 20, 12, 0), "John Smith",
    ])
    packages_ws.append([
        "PKG-PMP-01", "Pump Refurbishment", "Annual maintenance for all centrifugal pumps",
        "Medium", datetime(2024, 8, 16, 9, 0), datetime(2024, 8, 19, 18, 0), "Sarah Johnson",
    ])

    activities_ws = wb.create_sheet(ACTIVITIES_SHEET)
    activities_ws.append(ACTIVITY_COLUMNS)
    activities_ws.append([
        "ACT-EX-01-01", "PKG-EX-01", "HE-101A", "Blinding & Isolation", "High",
        datetime(2024, 8, 15, 8, 0), datetime(2024, 8, 15, 10, 0), "Ops Team",
    ])
    activities_ws.append([
        "ACT-EX-01-02", "PKG-EX-01", "HE-101A", "Dismantle Channel Head", "Medium",
        datetime(2024, 8, 15, 10, 0), datetime(2024, 8, 15, 14, 0), "Mech Team A",
    ])
    activities_ws.append([
        "ACT-PMP-01-01", "PKG-PMP-01", "P-201", "Electrical Lockout/Tagout", "High",
        datetime(2024, 8, 16, 9, 0), datetime(2024, 8, 16, 10, 0), "Elec Team",
    ])

    for ws, date_cols in ((packages_ws, (5, 6)), (activities_ws, (6, 7))):
        for col_idx in range(1, ws.max_column + 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = 20
        for row in ws.iter_rows(min_row=2):
            for col_idx in date_cols:
                row[col_idx - 1].number_format = DATE_FORMAT

    buf = io.BytesIO()
    wb.save(buf)
    content = buf.getvalue()
    if path is not None:
        Path(path).write_bytes(content)
    return content
