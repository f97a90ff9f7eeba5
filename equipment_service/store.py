"""
Equipment Store: CRUD over equipment records.

Every write path re-checks the bucket invariant
(available + in_use + maintenance == quantity, all counts >= 0)
before anything is committed.
"""
import logging
import math
from contextlib import contextmanager

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .errors import ConflictError, NotFoundError, ServerError, ValidationError
from .models import CATEGORY_NAMES, STATUS_NAMES, Equipment, Status, utcnow
from .schemas import EquipmentCreate, EquipmentUpdate

logger = logging.getLogger(__name__)

# Filter value the dashboard sends when no filter is selected.
ALL = "all"

# Bucket a status patch draws from when the caller names no source.
DEFAULT_SOURCE = {
    Status.AVAILABLE.value: Status.IN_USE.value,
    Status.IN_USE.value: Status.AVAILABLE.value,
    Status.MAINTENANCE.value: Status.AVAILABLE.value,
}

# Largest count an INTEGER column holds on every supported backend.
MAX_COUNT = 2**31 - 1


def validate_equipment(name, category, quantity, cost_per_unit, counts):
    """
    Checks one candidate field set. Raises ValidationError naming the first
    rule that fails.
    """
    if not name or not name.strip():
        raise ValidationError("name_required", "Equipment name is required")
    if category not in CATEGORY_NAMES:
        raise ValidationError(
            "unknown_category",
            f"Unknown category '{category}'; expected one of {', '.join(CATEGORY_NAMES)}",
        )
    if quantity < 0:
        raise ValidationError("negative_quantity", "Quantity must be non-negative")
    if quantity > MAX_COUNT:
        raise ValidationError("quantity_too_large", f"Quantity must not exceed {MAX_COUNT}")
    if not math.isfinite(cost_per_unit) or not math.isfinite(quantity * cost_per_unit):
        raise ValidationError("invalid_cost", "Cost per unit and total cost must be finite numbers")
    if cost_per_unit < 0:
        raise ValidationError("negative_cost", "Cost per unit must be non-negative")
    check_status_counts(counts, quantity)


def check_status_counts(counts, quantity):
    negative = [status for status in STATUS_NAMES if counts[status] < 0]
    if negative:
        raise ValidationError(
            "negative_status_count",
            f"Status counts cannot be negative ({', '.join(negative)})",
        )
    too_large = [status for status in STATUS_NAMES if counts[status] > MAX_COUNT]
    if too_large:
        raise ValidationError(
            "quantity_too_large",
            f"Status counts must not exceed {MAX_COUNT} ({', '.join(too_large)})",
        )
    total = sum(counts[status] for status in STATUS_NAMES)
    if total != quantity:
        raise ValidationError(
            "status_sum_mismatch",
            f"Status counts ({total}) must equal total quantity ({quantity})",
        )


def parse_status(value, rule="unknown_status"):
    if value not in STATUS_NAMES:
        raise ValidationError(
            rule, f"Unknown status '{value}'; expected one of {', '.join(STATUS_NAMES)}"
        )
    return value


def _escape_like(term):
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EquipmentStore:
    def __init__(self, db: Session, max_patch_retries: int = None):
        self.db = db
        if max_patch_retries is None:
            max_patch_retries = settings.STATUS_PATCH_MAX_RETRIES
        self.max_patch_retries = max_patch_retries

    @contextmanager
    def _persist(self, action):
        """Commits the unit of work; driver errors surface as ServerError."""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Database error while trying to %s", action)
            message = f"Could not {action}"
            if not settings.is_production:
                message = f"{message}: {e}"
            raise ServerError(message) from e
        except Exception:
            self.db.rollback()
            raise

    def list(self, category=None, status=None, search=None):
        """Records matching every given filter, newest first."""
        query = self.db.query(Equipment)

        if category and category != ALL:
            query = query.filter(Equipment.category == category)

        if status and status != ALL:
            bucket = parse_status(status)
            query = query.filter(getattr(Equipment, bucket) > 0)

        if search and search.strip():
            pattern = f"%{_escape_like(search.strip())}%"
            query = query.filter(
                or_(
                    Equipment.name.ilike(pattern, escape="\\"),
                    Equipment.category.ilike(pattern, escape="\\"),
                    Equipment.notes.ilike(pattern, escape="\\"),
                )
            )

        try:
            return query.order_by(Equipment.created_at.desc(), Equipment.id).all()
        except SQLAlchemyError as e:
            logger.exception("Database error while listing equipment")
            raise ServerError("Could not list equipment") from e

    def get(self, equipment_id):
        item = self.db.get(Equipment, equipment_id, populate_existing=True)
        if item is None:
            raise NotFoundError(f"Equipment '{equipment_id}' not found")
        return item

    def create(self, data: EquipmentCreate):
        counts = data.status_counts.model_dump()
        try:
            validate_equipment(data.name, data.category, data.quantity, data.cost_per_unit, counts)
        except ValidationError as e:
            logger.warning("Rejected new equipment %r: %s", data.name, e.rule)
            raise

        item = Equipment(
            name=data.name.strip(),
            category=data.category,
            quantity=data.quantity,
            cost_per_unit=data.cost_per_unit,
            notes=data.notes or "",
            **counts,
        )
        with self._persist("create equipment"):
            self.db.add(item)
        self.db.refresh(item)
        logger.info("Created equipment %s (%s, qty=%s)", item.id, item.name, item.quantity)
        return item

    def update(self, equipment_id, data: EquipmentUpdate):
        """Merges the given fields over the stored record and re-validates it."""
        item = self.get(equipment_id)
        fields = data.model_dump(exclude_unset=True, exclude_none=True)

        name = fields.get("name", item.name)
        category = fields.get("category", item.category)
        quantity = fields.get("quantity", item.quantity)
        cost_per_unit = fields.get("cost_per_unit", item.cost_per_unit)
        counts = fields.get("status_counts", item.status_counts)
        notes = fields.get("notes", item.notes)

        try:
            validate_equipment(name, category, quantity, cost_per_unit, counts)
        except ValidationError as e:
            logger.warning("Rejected update of equipment %s: %s", equipment_id, e.rule)
            raise

        with self._persist("update equipment"):
            item.name = name.strip()
            item.category = category
            item.quantity = quantity
            item.cost_per_unit = cost_per_unit
            item.notes = notes or ""
            for status in STATUS_NAMES:
                setattr(item, status, counts[status])
            item.updated_at = utcnow()
        self.db.refresh(item)
        logger.info("Updated equipment %s", item.id)
        return item

    def patch_status(self, equipment_id, status, change, source=None):
        """
        Moves `change` units into the `status` bucket out of `source`
        (a negative change moves them back). Quantity never changes.

        The write is a compare-and-set on the three counts that were read, so
        two concurrent patches cannot both apply against the same snapshot.
        """
        target = parse_status(status)
        source = parse_status(source) if source else DEFAULT_SOURCE[target]
        if source == target:
            raise ValidationError("same_bucket", "Source and target status must differ")
        if change == 0:
            raise ValidationError("zero_change", "Status change must be non-zero")

        for attempt in range(self.max_patch_retries + 1):
            item = self.get(equipment_id)
            previous = item.status_counts
            counts = dict(previous)
            counts[target] += change
            counts[source] -= change
            try:
                check_status_counts(counts, item.quantity)
            except ValidationError as e:
                logger.warning(
                    "Rejected status patch on %s (%s %+d): %s", equipment_id, target, change, e.rule
                )
                raise

            stmt = (
                update(Equipment)
                .where(
                    Equipment.id == equipment_id,
                    Equipment.available == previous[Status.AVAILABLE.value],
                    Equipment.in_use == previous[Status.IN_USE.value],
                    Equipment.maintenance == previous[Status.MAINTENANCE.value],
                )
                .values(updated_at=utcnow(), **counts)
                .execution_options(synchronize_session=False)
            )
            with self._persist("update equipment status"):
                result = self.db.execute(stmt)

            if result.rowcount == 1:
                item = self.get(equipment_id)
                logger.info(
                    "Equipment %s: %s %+d (from %s) -> %s",
                    equipment_id, target, change, source, item.status_counts,
                )
                return item

            logger.warning(
                "Status patch on %s lost a concurrent update (attempt %d)", equipment_id, attempt + 1
            )

        raise ConflictError(
            f"Equipment '{equipment_id}' was modified concurrently; status change not applied"
        )

    def delete(self, equipment_id):
        item = self.get(equipment_id)
        with self._persist("delete equipment"):
            self.db.delete(item)
        logger.info("Deleted equipment %s", equipment_id)
