from decimal import Decimal
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from artisan_market import crud, schemas
from artisan_market.auth import IdentityProvider
from artisan_market.db import Base, enable_sqlite_foreign_keys
from artisan_market.main import app, get_db


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Create an account plus profile directly, bypassing the HTTP layer."""
    counter = {"n": 0}

    def _make(role="customer", name=None, latitude=None, longitude=None, location="Testville", description=None):
        counter["n"] += 1
        email = f"{role}{counter['n']}@example.com"
        identity = IdentityProvider(db_session).create_account(email, "secret123")
        data = schemas.SignupRequest(
            email=email,
            password="secret123",
            confirm_password="secret123",
            name=name or f"{role.title()} {counter['n']}",
            role=role,
            location=location,
            latitude=latitude,
            longitude=longitude,
            description=description,
        )
        return crud.create_profile(db_session, identity.id, data)

    return _make


@pytest.fixture
def make_product(db_session):
    def _make(artisan, name="Oak Chair", description="Hand-carved", price="120.00"):
        return crud.create_product(
            db_session, artisan, schemas.ProductWrite(name=name, description=description, price=Decimal(price))
        )

    return _make


@pytest.fixture
def signup(client):
    """Sign up through the API and return bearer headers."""
    counter = {"n": 0}

    def _signup(role="customer", **fields):
        counter["n"] += 1
        payload = {
            "email": f"api-{role}{counter['n']}@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
            "name": f"API {role} {counter['n']}",
            "role": role,
            "location": "Brooklyn, NY",
        }
        payload.update(fields)
        r = client.post("/auth/signup", json=payload)
        assert r.status_code == 201, r.text
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _signup
