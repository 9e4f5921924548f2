"""Pytest fixtures."""

import math
import os

TEST_DATABASE_URL = "sqlite:///./test.db"
# app startup creates the schema on settings.database_url
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

import pytest  # noqa: E402
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from pharmasos.core.security import create_access_token
from pharmasos.db.base import Base
from pharmasos.db.session import build_engine, get_db
from pharmasos.main import app
from pharmasos.models import Notification, Pharmacy, PharmacyResponse, SosRequest, User  # noqa: F401 - register for create_all

engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(setup_db):
    """Every test starts from empty tables."""
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """Test client with overridden DB."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------- data helpers ----------


def offset_north(lat: float, km: float) -> float:
    """Latitude `km` kilometers due north of `lat` (same meridian)."""
    return lat + math.degrees(km / 6371.0)


def make_user(db, name: str, role: str = "PATIENT") -> User:
    user = User(email=f"{name.lower().replace(' ', '_')}@test.com", full_name=name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_pharmacy(db, name: str, lat=None, lon=None, status: str = "VERIFIED") -> Pharmacy:
    owner = make_user(db, f"{name} Owner", role="PHARMACY")
    pharmacy = Pharmacy(
        user_id=owner.id,
        name=name,
        phone="+977-1-5550000",
        address=f"{name} street",
        latitude=lat,
        longitude=lon,
        verification_status=status,
    )
    db.add(pharmacy)
    db.commit()
    db.refresh(pharmacy)
    return pharmacy


def make_sos(db, patient: User, lat=None, lon=None, medicine: str = "Paracetamol") -> SosRequest:
    sos = SosRequest(
        patient_id=patient.id,
        medicine_name=medicine,
        quantity=1,
        urgency_level="HIGH",
        patient_name=patient.full_name,
        contact_number="9800000000",
        address="Thamel, Kathmandu",
        latitude=lat,
        longitude=lon,
        status="PENDING",
    )
    db.add(sos)
    db.commit()
    db.refresh(sos)
    return sos


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
