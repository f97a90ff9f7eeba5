from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Strict(BaseModel):
    # One canonical shape; anything the schema does not name is rejected.
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# --- Request Models ---
class StatusCounts(_Strict):
    """Unit counts per status bucket."""
    available: int = 0
    in_use: int = 0
    maintenance: int = 0


class EquipmentCreate(_Strict):
    """Payload for creating a record. Business rules are checked by the store."""
    name: str
    category: str
    quantity: int
    cost_per_unit: float = Field(alias="costPerUnit")
    status_counts: StatusCounts = Field(alias="statusCounts")
    notes: Optional[str] = ""


class EquipmentUpdate(_Strict):
    """Payload for updating a record; omitted fields keep their stored value."""
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = None
    cost_per_unit: Optional[float] = Field(default=None, alias="costPerUnit")
    status_counts: Optional[StatusCounts] = Field(default=None, alias="statusCounts")
    notes: Optional[str] = None


class StatusPatch(_Strict):
    """Move `change` units into `status`, taking them from `source`."""
    status: str
    change: int
    source: Optional[str] = None


# --- Response shaping ---
def _iso(value):
    return value.isoformat() if value is not None else None


def serialize_equipment(item):
    """Wire format of one equipment record."""
    return {
        "_id": item.id,
        "name": item.name,
        "category": item.category,
        "quantity": item.quantity,
        "costPerUnit": item.cost_per_unit,
        "statusCounts": item.status_counts,
        "notes": item.notes or "",
        "totalCost": round(item.total_cost, 2),
        "createdAt": _iso(item.created_at),
        "updatedAt": _iso(item.updated_at),
    }
