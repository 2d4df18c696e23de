"""
Shared fixtures: in-memory SQLite database and API client.
"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from condo_billing.core.database import get_db, init_db
from condo_billing.models import Unit, UnitType


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unit(db):
    """Residential unit of 34.5 m² without parking."""
    unit = Unit(
        tenant_id="tenant-1",
        unit_number="M2-2F-16",
        floor_level="2F",
        unit_type=UnitType.RESIDENTIAL,
        area=Decimal("34.5"),
        parking_area=Decimal("0"),
        owner_name="Test Owner",
    )
    db.add(unit)
    db.commit()
    return unit
