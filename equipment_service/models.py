import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from .database import Base # Import the Base class from our database setup


class Category(str, enum.Enum):
    """Fixed top-level classification of equipment."""
    INSTRUMENTS = "Instruments"
    CONSUMABLES = "Consumables"
    DIAGNOSTIC = "Diagnostic"
    FURNITURE = "Furniture"
    ELECTRONICS = "Electronics"


class Status(str, enum.Enum):
    """The three buckets a record's quantity is partitioned into."""
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"


CATEGORY_NAMES = [c.value for c in Category]
STATUS_NAMES = [s.value for s in Status]


def new_equipment_id():
    # 24 hex chars, same width as the ids the dashboard was written against.
    return uuid.uuid4().hex[:24]


def utcnow():
    return datetime.now(timezone.utc)


# Defines the ORM model for one equipment line item (one type, not one physical unit).
class Equipment(Base):
    # The name of the database table.
    __tablename__ = "equipment"

    # Define the table columns.
    id = Column(String(24), primary_key=True, default=new_equipment_id)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0) # Total units owned.
    cost_per_unit = Column(Float, nullable=False, default=0.0)

    # Status buckets; always sum to quantity.
    available = Column(Integer, nullable=False, default=0)
    in_use = Column(Integer, nullable=False, default=0)
    maintenance = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def total_cost(self):
        return (self.quantity or 0) * (self.cost_per_unit or 0.0)

    @property
    def status_counts(self):
        return {
            Status.AVAILABLE.value: self.available,
            Status.IN_USE.value: self.in_use,
            Status.MAINTENANCE.value: self.maintenance,
        }

    def __repr__(self):
        return f"<Equipment {self.id} {self.name!r} qty={self.quantity}>"
