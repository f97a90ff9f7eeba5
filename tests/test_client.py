"""
Tests for the API client and the dashboard state, driven through the app's TestClient.
"""

import pytest

from equipment_service.client import ApiError, DashboardState, EquipmentApiClient, stock_health

from .conftest import equipment_payload


@pytest.fixture
def api(client):
    # TestClient speaks the same request() interface as a requests.Session.
    return EquipmentApiClient("http://testserver/api", session=client)


@pytest.fixture
def state(api):
    return DashboardState(api)


def test_client_crud_roundtrip(api):
    created = api.create_equipment(equipment_payload())
    assert api.get_equipment(created["_id"])["name"] == "Forceps"

    patched = api.patch_status(created["_id"], "maintenance", 2)
    assert patched["statusCounts"]["maintenance"] == 2

    api.delete_equipment(created["_id"])
    with pytest.raises(ApiError) as exc:
        api.get_equipment(created["_id"])
    assert exc.value.status_code == 404


def test_client_surfaces_rule(api):
    with pytest.raises(ApiError) as exc:
        api.create_equipment(equipment_payload(quantity=3))

    assert exc.value.status_code == 400
    assert exc.value.rule == "status_sum_mismatch"


def test_list_skips_all_filters(api):
    api.create_equipment(equipment_payload())
    assert len(api.list_equipment(category="all", status="all")) == 1


def test_state_refreshes_after_each_mutation(state):
    state.refresh()
    assert state.equipment == []
    assert state.stats["totalEquipmentTypes"] == 0

    created = state.create(equipment_payload())
    assert [item["_id"] for item in state.equipment] == [created["_id"]]
    assert state.stats["totalUnits"] == 10

    state.patch_status(created["_id"], "in_use", 4)
    assert state.equipment[0]["statusCounts"]["in_use"] == 4
    assert state.stats["statusTotals"]["in_use"] == 4

    state.update(created["_id"], {"costPerUnit": 1.0})
    assert state.stats["totalCost"] == 10.0

    state.delete(created["_id"])
    assert state.equipment == []
    assert state.stats["totalEquipmentTypes"] == 0


def test_state_filters(state):
    state.create(equipment_payload())
    state.create(equipment_payload(name="Bed", category="Furniture"))

    state.set_filters(category="Furniture")
    assert [item["name"] for item in state.equipment] == ["Bed"]
    # Stats always cover the full collection.
    assert state.stats["totalEquipmentTypes"] == 2

    state.set_filters(category="all", search="forc")
    assert [item["name"] for item in state.equipment] == ["Forceps"]


def test_failed_refresh_clears_state(state):
    state.create(equipment_payload())
    assert state.equipment

    with pytest.raises(ApiError):
        state.set_filters(status="stolen")

    assert state.equipment == []
    assert state.stats is None


def test_failed_mutation_does_not_refresh(state):
    state.create(equipment_payload())
    before = list(state.equipment)

    with pytest.raises(ApiError):
        state.patch_status(before[0]["_id"], "maintenance", -1)

    assert state.equipment == before


@pytest.mark.parametrize(
    "counts, label",
    [
        ({"available": 10, "in_use": 0, "maintenance": 0}, "Excellent"),
        ({"available": 8, "in_use": 2, "maintenance": 0}, "Excellent"),
        ({"available": 6, "in_use": 4, "maintenance": 0}, "Good"),
        ({"available": 3, "in_use": 5, "maintenance": 2}, "Low"),
        ({"available": 2, "in_use": 4, "maintenance": 4}, "Critical"),
        ({"available": 0, "in_use": 0, "maintenance": 0}, "Critical"),
    ],
)
def test_stock_health(counts, label):
    assert stock_health({"statusCounts": counts}) == label


def test_state_health_levels(state):
    created = state.create(equipment_payload())
    state.patch_status(created["_id"], "maintenance", 5)

    assert state.health_levels() == {created["_id"]: "Low"}
