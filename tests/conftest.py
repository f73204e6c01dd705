"""
Pytest Configuration and Shared Fixtures

Every test gets a fresh in-memory SQLite database and a fake Xero client.
"""

import os

# Must be set before app.core.database is imported
os.environ["DATABASE_URL"] = "sqlite://"

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.principal import FALLBACK_USER_ID, Principal
from app.models import Account, XeroConnection
from app.services.xero_oauth_service import XeroOAuthService
from tests.fakes import FakeXeroClient

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
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
def principal():
    return Principal(user_id=uuid.UUID(FALLBACK_USER_ID))


@pytest.fixture
def fake_client():
    return FakeXeroClient()


@pytest.fixture
def oauth_service(fake_client):
    return XeroOAuthService(client=fake_client, clock=lambda: NOW)


@pytest.fixture
def connection(db, principal):
    """Active connection whose access token is good for another hour."""
    connection = XeroConnection(
        user_id=principal.user_id,
        tenant_id="tenant-1",
        tenant_name="Smith Family Trust",
        tenant_type="ORGANISATION",
        access_token="access-0",
        refresh_token="refresh-0",
        token_expires_at=NOW + timedelta(hours=1),
        status="active",
        sync_enabled=True,
        sync_frequency="daily",
    )
    db.add(connection)
    db.commit()
    return connection


@pytest.fixture
def make_account(db, principal):
    """Factory for local accounts owned by the test principal."""
    def _make(name, account_type="bank", account_number=None, user_id=None):
        account = Account(
            user_id=user_id or principal.user_id,
            name=name,
            account_type=account_type,
            account_number=account_number,
            current_balance=0,
            currency="AUD",
            is_active=True,
        )
        db.add(account)
        db.commit()
        return account
    return _make
