import os

# Point the app at a throwaway SQLite file before anything imports the engine.
os.environ["DATABASE_URL"] = "sqlite:///./test_equipment.db"
os.environ["ENVIRONMENT"] = "development"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from equipment_service.database import Base, engine, get_db
from equipment_service.main import app
from equipment_service.schemas import EquipmentCreate
from equipment_service.store import EquipmentStore

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def equipment_payload(**overrides):
    """Valid create payload (the Forceps example), with optional overrides."""
    payload = {
        "name": "Forceps",
        "category": "Instruments",
        "quantity": 10,
        "costPerUnit": 5.0,
        "statusCounts": {"available": 10, "in_use": 0, "maintenance": 0},
        "notes": "",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def store(db_session):
    return EquipmentStore(db_session)


@pytest.fixture
def make_equipment(store):
    """Factory persisting a record through the store."""
    def _make(**overrides):
        return store.create(EquipmentCreate.model_validate(equipment_payload(**overrides)))
    return _make
