"""
Shared test fixtures: SQLite test database, test client, reference rows.
"""

import os
import pytest
from datetime import date
from fastapi.testclient import TestClient

# Point the app at the test database before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["VAT_POLICY"] = "fixed_rate"

from healthquote.database import Base, SessionLocal, engine, get_db
from healthquote.ledger import QuoteLedger
from healthquote.main import app
from healthquote import models


TestingSessionLocal = SessionLocal


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def company(db):
    company = models.Company(
        name="Anadolu Metal A.Ş.",
        address="OSB 3. Cadde No:12, Bursa",
        contact_person="Ayşe Demir",
        phone="+90 224 555 0101",
        email="ik@anadolumetal.example",
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def health_test(db):
    test = models.HealthTest(name="Odyometri", code="ODY-001", price=250.0, is_active=True)
    db.add(test)
    db.commit()
    db.refresh(test)
    return test


@pytest.fixture
def new_quote(client, company):
    """Factory: create a quote over the API and return its JSON."""
    def _create(items=None, **overrides):
        body = {
            "companyId": company.id,
            "issueDate": "2026-10-01",
            "validUntilDate": "2026-10-31",
            "items": items or [],
        }
        body.update(overrides)
        resp = client.post("/api/quotes", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def ledger(db):
    return QuoteLedger(db)


@pytest.fixture
def empty_quote(ledger, company):
    """A committed quote with no items, created through the ledger."""
    return ledger.open_quote(company.id, date(2026, 10, 1), date(2026, 10, 31))
