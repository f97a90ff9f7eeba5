"""
HTTP client for the equipment API and the dashboard state built on it.

`DashboardState` is the explicit application state a dashboard renders from:
the filtered equipment list, the summary stats and the active filters. Every
mutation goes through it and is followed by a full refresh of list and stats.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

ALL = "all"

# Minimum available share for each stock-health level, best first.
HEALTH_LEVELS = [(0.8, "Excellent"), (0.6, "Good"), (0.3, "Low")]


def stock_health(item: Dict[str, Any]) -> str:
    """Health label from the share of a record's units that are available."""
    counts = item["statusCounts"]
    total = sum(counts.values())
    share = counts["available"] / total if total > 0 else 0
    for threshold, label in HEALTH_LEVELS:
        if share >= threshold:
            return label
    return "Critical"


class ApiError(Exception):
    """Non-2xx response from the equipment API."""

    def __init__(self, status_code: int, message: str, rule: Optional[str] = None):
        super().__init__(f"{status_code} {message}")
        self.status_code = status_code
        self.message = message
        self.rule = rule


class EquipmentApiClient:
    def __init__(self, base_url: str, session=None, timeout: float = 8):
        # e.g. http://localhost:8000/api
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    # =========================
    # HTTP helpers
    # =========================

    def _request(self, method: str, path: str, **kwargs) -> Any:
        kwargs.setdefault("timeout", self.timeout)
        url = self.base_url + path
        logger.debug("%s %s", method, url)
        resp = self.session.request(method, url, **kwargs)

        if resp.status_code >= 400:
            raise self._error_from(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _error_from(resp) -> ApiError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or resp.text or getattr(resp, "reason", None) or "Request failed"
        return ApiError(resp.status_code, message, body.get("rule"))

    # =========================
    # Equipment
    # =========================

    def list_equipment(self, category: str = None, search: str = None, status: str = None) -> List[Dict[str, Any]]:
        params = {}
        if category and category != ALL:
            params["category"] = category
        if search:
            params["search"] = search
        if status and status != ALL:
            params["status"] = status
        return self._request("GET", "/equipment", params=params)

    def get_equipment(self, equipment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/equipment/{equipment_id}")

    def create_equipment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/equipment", json=data)

    def update_equipment(self, equipment_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/equipment/{equipment_id}", json=data)

    def patch_status(self, equipment_id: str, status: str, change: int, source: str = None) -> Dict[str, Any]:
        body = {"status": status, "change": change}
        if source:
            body["source"] = source
        return self._request("PATCH", f"/equipment/{equipment_id}/status", json=body)

    def delete_equipment(self, equipment_id: str) -> None:
        self._request("DELETE", f"/equipment/{equipment_id}")

    # =========================
    # Stats
    # =========================

    def summary(self) -> Dict[str, Any]:
        return self._request("GET", "/stats/summary")

    def category_detail(self, name: str) -> Dict[str, Any]:
        return self._request("GET", f"/stats/category/{name}")


@dataclass
class Filters:
    category: str = ALL
    status: str = ALL
    search: str = ""


@dataclass
class DashboardState:
    client: EquipmentApiClient
    filters: Filters = field(default_factory=Filters)
    equipment: List[Dict[str, Any]] = field(default_factory=list)
    stats: Optional[Dict[str, Any]] = None

    def refresh(self):
        """Re-fetches the filtered list and the stats. Clears both on failure."""
        try:
            self.equipment = self.client.list_equipment(
                category=self.filters.category,
                search=self.filters.search,
                status=self.filters.status,
            )
            self.stats = self.client.summary()
        except (ApiError, requests.RequestException):
            self.equipment = []
            self.stats = None
            raise
        return self

    def set_filters(self, category: str = None, status: str = None, search: str = None):
        if category is not None:
            self.filters.category = category
        if status is not None:
            self.filters.status = status
        if search is not None:
            self.filters.search = search
        return self.refresh()

    def health_levels(self) -> Dict[str, str]:
        """Stock-health label per listed record id."""
        return {item["_id"]: stock_health(item) for item in self.equipment}

    # --- Mutations: each one is followed by a refresh ---

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        created = self.client.create_equipment(data)
        self.refresh()
        return created

    def update(self, equipment_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        updated = self.client.update_equipment(equipment_id, data)
        self.refresh()
        return updated

    def patch_status(self, equipment_id: str, status: str, change: int, source: str = None) -> Dict[str, Any]:
        updated = self.client.patch_status(equipment_id, status, change, source)
        self.refresh()
        return updated

    def delete(self, equipment_id: str) -> None:
        self.client.delete_equipment(equipment_id)
        self.refresh()
