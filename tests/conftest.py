"""Shared pytest fixtures and configuration."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from faker import Faker

from common.auth import Principal
from common.db import Base, get_db
from common.enums import ClaimStatus, ProviderClaimStatus, UserRole
from main import app
from services.claims.models import Claim, ProviderClaim
from services.claims.service import ClaimMutationService
from services.hmo.models import Hmo, Hospital, User

fake = Faker()


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session with in-memory SQLite."""
    # Use SQLite in-memory for testing
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
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
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def make_user(db_session, role, hmo=None):
    """Persist a user with Faker-generated identity."""
    user = User(
        email=fake.unique.email(),
        full_name=fake.name(),
        role=role.value,
        hmo_id=hmo.id if hmo else None,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def hmo(db_session):
    """HMO owning the claims under test."""
    hmo = Hmo(name=fake.company())
    db_session.add(hmo)
    db_session.commit()
    db_session.refresh(hmo)
    return hmo


@pytest.fixture
def other_hmo(db_session):
    """A second, unrelated HMO."""
    hmo = Hmo(name=fake.company())
    db_session.add(hmo)
    db_session.commit()
    db_session.refresh(hmo)
    return hmo


@pytest.fixture
def hmo_admin(db_session, hmo):
    """Administrator of ``hmo``."""
    admin = make_user(db_session, UserRole.ADMIN, hmo)
    hmo.administrators.append(admin)
    db_session.commit()
    return admin


@pytest.fixture
def other_admin(db_session, other_hmo):
    """Administrator of ``other_hmo`` only."""
    admin = make_user(db_session, UserRole.ADMIN, other_hmo)
    other_hmo.administrators.append(admin)
    db_session.commit()
    return admin


@pytest.fixture
def member(db_session, hmo):
    """Insured member enrolled with ``hmo``."""
    return make_user(db_session, UserRole.MEMBER, hmo)


@pytest.fixture
def hospital(db_session, hmo):
    """Hospital registered with ``hmo``."""
    hospital = Hospital(name=f"{fake.last_name()} General Hospital", hmo_id=hmo.id)
    db_session.add(hospital)
    db_session.commit()
    db_session.refresh(hospital)
    return hospital


@pytest.fixture
def admin_principal(hmo_admin, hmo):
    """Principal acting as an administrator of ``hmo``."""
    return Principal(id=hmo_admin.id, role=UserRole.ADMIN, hmo_id=hmo.id)


@pytest.fixture
def outsider_principal(other_admin, other_hmo):
    """Principal administering ``other_hmo`` only."""
    return Principal(id=other_admin.id, role=UserRole.ADMIN, hmo_id=other_hmo.id)


def headers_for(principal):
    """Forwarded session headers for a principal."""
    return {
        "X-User-Id": str(principal.id),
        "X-User-Role": principal.role.value,
        "X-Hmo-Id": str(principal.hmo_id),
    }


@pytest.fixture
def auth_headers(admin_principal):
    """Forwarded session headers for ``admin_principal``."""
    return headers_for(admin_principal)


@pytest.fixture
def make_claim(db_session, member, hospital):
    """Factory for member claims."""
    def _make_claim(status=ClaimStatus.PENDING, amount="45000.00", **overrides):
        claim = Claim(
            member_id=overrides.pop("member_id", member.id),
            hospital_id=overrides.pop("hospital_id", hospital.id),
            amount=Decimal(amount),
            description=fake.sentence(),
            service_date=date(2024, 1, 15),
            status=status.value,
            **overrides,
        )
        db_session.add(claim)
        db_session.commit()
        db_session.refresh(claim)
        return claim

    return _make_claim


@pytest.fixture
def claim(make_claim):
    """A pending member claim of 45000."""
    return make_claim()


@pytest.fixture
def make_provider_claim(db_session, hmo, hospital):
    """Factory for provider claims."""
    def _make_provider_claim(status=ProviderClaimStatus.PENDING, **overrides):
        provider_claim = ProviderClaim(
            hmo_id=overrides.pop("hmo_id", hmo.id),
            hospital_id=overrides.pop("hospital_id", hospital.id),
            enrollee_no=fake.bothify(text="ENR-######"),
            claim_reference=fake.bothify(text="PCL-####-????", letters="ABCDEFGHIJKLMNOPQRSTUVWXYZ"),
            diagnosis="Acute malaria",
            service_breakdown=[
                {"service": "Consultation", "quantity": 1, "cost": 15000},
                {"service": "Malaria parasite test", "quantity": 1, "cost": 5000},
            ],
            documents=[{"name": "lab-result.pdf", "type": "application/pdf"}],
            status=status.value,
            **overrides,
        )
        db_session.add(provider_claim)
        db_session.commit()
        db_session.refresh(provider_claim)
        return provider_claim

    return _make_provider_claim


@pytest.fixture
def provider_claim(make_provider_claim):
    """A pending provider claim owned by ``hmo``."""
    return make_provider_claim()


@pytest.fixture
def notifier():
    """Stand-in for the notification dispatcher."""
    return MagicMock(return_value=True)


@pytest.fixture
def service(db_session, notifier):
    """Mutation service bound to the test session."""
    return ClaimMutationService(db_session, notifier=notifier)


@pytest.fixture
def snapshot(db_session):
    """Read a row's stored column values, bypassing the identity map."""
    def _snapshot(model, row_id):
        db_session.expire_all()
        row = db_session.get(model, row_id)
        return {attr.key: getattr(row, attr.key) for attr in inspect(model).column_attrs}

    return _snapshot


@pytest.fixture
def outsider_headers(outsider_principal):
    """Forwarded session headers for ``outsider_principal``."""
    return headers_for(outsider_principal)


@pytest.fixture
def member_principal(member, hmo):
    """Insured member of ``hmo`` acting on their own claims."""
    return Principal(id=member.id, role=UserRole.MEMBER, hmo_id=hmo.id)


@pytest.fixture
def member_headers(member_principal):
    """Forwarded session headers for ``member_principal``."""
    return headers_for(member_principal)
