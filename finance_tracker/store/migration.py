"""
Legacy snapshot migration.

Snapshots written by older versions of the app can contain:
- transactions without an `id` (created before ids existed)
- transactions without a usable `date`
- a transient `isIncome` flag that was persisted by accident
- no `statements` / `balanceTransfers` arrays at all

Migration runs on every load and is idempotent: a migrated snapshot
migrates to itself.
"""

from datetime import date
from typing import Any

import structlog
from pydantic import BaseModel

from finance_tracker.models.transaction import new_id, safe_date


logger = structlog.get_logger(__name__)


COLLECTIONS = ("income", "expenses", "statements", "balanceTransfers")


class MigrationReport(BaseModel):
    """What a migration pass had to fix."""

    backfilled_ids: int = 0
    backfilled_dates: int = 0
    dropped_records: int = 0
    # Records kept verbatim because they still fail validation after migration
    unreadable_records: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.backfilled_ids or self.backfilled_dates or self.dropped_records)


def _migrate_transaction(record: dict, today: date, report: MigrationReport) -> dict:
    record = dict(record)
    record.pop("isIncome", None)

    raw_id = record.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        record["id"] = new_id()
        report.backfilled_ids += 1
    else:
        record["id"] = str(raw_id)

    if safe_date(record.get("date")) is None:
        record["date"] = today.isoformat()
        report.backfilled_dates += 1

    return record


def migrate_snapshot(raw: Any, today: date) -> tuple[dict[str, list], MigrationReport]:
    """
    Bring a raw snapshot up to the current shape.

    Args:
        raw: Decoded JSON (anything; non-dicts are treated as empty)
        today: Date used for records with no usable date

    Returns:
        (snapshot with every collection present, report of fixes)
    """
    report = MigrationReport()
    source = raw if isinstance(raw, dict) else {}
    snapshot: dict[str, list] = {}

    for collection in COLLECTIONS:
        items = source.get(collection)
        if not isinstance(items, list):
            items = []

        migrated = []
        for item in items:
            if not isinstance(item, dict):
                report.dropped_records += 1
                continue
            if collection in ("income", "expenses"):
                migrated.append(_migrate_transaction(item, today, report))
            else:
                record = dict(item)
                if not record.get("id"):
                    record["id"] = new_id()
                    report.backfilled_ids += 1
                migrated.append(record)
        snapshot[collection] = migrated

    if report.changed:
        logger.info(
            "snapshot_migrated",
            backfilled_ids=report.backfilled_ids,
            backfilled_dates=report.backfilled_dates,
            dropped_records=report.dropped_records,
        )
    return snapshot, report
