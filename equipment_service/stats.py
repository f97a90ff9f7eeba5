"""
Statistics Aggregator: read-only rollups over the whole equipment table.

Nothing is cached; every call recomputes from the current rows.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFoundError, ServerError
from .models import CATEGORY_NAMES, STATUS_NAMES, Equipment
from .schemas import serialize_equipment

logger = logging.getLogger(__name__)

# Bucket for rows whose stored category is not a known one.
UNKNOWN_CATEGORY = "Unknown"


def _empty_bucket():
    return {"count": 0, "units": 0, "cost": 0.0}


def _empty_status_totals():
    return {status: 0 for status in STATUS_NAMES}


class StatisticsAggregator:
    def __init__(self, db: Session):
        self.db = db

    def summary(self):
        """Totals, per-category rollups and per-status rollups."""
        try:
            rows = (
                self.db.query(
                    Equipment.category,
                    func.count(Equipment.id),
                    func.coalesce(func.sum(Equipment.quantity), 0),
                    func.coalesce(func.sum(Equipment.quantity * Equipment.cost_per_unit), 0.0),
                    func.coalesce(func.sum(Equipment.available), 0),
                    func.coalesce(func.sum(Equipment.in_use), 0),
                    func.coalesce(func.sum(Equipment.maintenance), 0),
                )
                .group_by(Equipment.category)
                .all()
            )
        except SQLAlchemyError as e:
            logger.exception("Database error while computing summary")
            raise ServerError("Could not compute equipment statistics") from e

        category_totals = {name: _empty_bucket() for name in CATEGORY_NAMES}
        status_totals = _empty_status_totals()

        for category, count, units, cost, available, in_use, maintenance in rows:
            key = category if category in category_totals else UNKNOWN_CATEGORY
            bucket = category_totals.setdefault(key, _empty_bucket())
            bucket["count"] += count
            bucket["units"] += int(units)
            bucket["cost"] += float(cost)

            status_totals["available"] += int(available)
            status_totals["in_use"] += int(in_use)
            status_totals["maintenance"] += int(maintenance)

        for bucket in category_totals.values():
            bucket["cost"] = round(bucket["cost"], 2)

        return {
            "totalEquipmentTypes": sum(b["count"] for b in category_totals.values()),
            "totalUnits": sum(b["units"] for b in category_totals.values()),
            "totalCost": round(sum(b["cost"] for b in category_totals.values()), 2),
            "categoryTotals": category_totals,
            "statusTotals": status_totals,
        }

    def category_detail(self, category):
        """
        Rollup for one category plus its member records. A known category
        with no records yields zeros, not an error.
        """
        if category not in CATEGORY_NAMES:
            raise NotFoundError(f"Category '{category}' not found")

        try:
            items = (
                self.db.query(Equipment)
                .filter(Equipment.category == category)
                .order_by(Equipment.created_at.desc(), Equipment.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.exception("Database error while loading category %s", category)
            raise ServerError("Could not compute category statistics") from e

        detail = {"category": category, **_empty_bucket(), "statusTotals": _empty_status_totals()}
        for item in items:
            detail["count"] += 1
            detail["units"] += item.quantity
            detail["cost"] += item.total_cost
            for status, value in item.status_counts.items():
                detail["statusTotals"][status] += value

        detail["cost"] = round(detail["cost"], 2)
        detail["items"] = [serialize_equipment(item) for item in items]
        return detail
