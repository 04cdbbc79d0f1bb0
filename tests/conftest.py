"""Shared fixtures: in-memory database, fake Redis and captured audit events."""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.src import openobserve
from app.src import redis as redisStore
from app.src.constants import MAX_TOKEN_VALIDITY
from app.src.db import (
    Account,
    AccountRole,
    AccountToken,
    CompanySetting,
    ORMbase,
    sessionMaker,
)
from app.src.enums import AccountStatus, Role


@pytest.fixture(autouse=True)
def database():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sessionMaker.configure(bind=engine)
    ORMbase.metadata.create_all(engine)
    yield engine
    ORMbase.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def redis_client(monkeypatch):
    fake = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redisStore, "redisClient", fake)
    return fake


@pytest.fixture(autouse=True)
def events(monkeypatch):
    shipped = []
    monkeypatch.setattr(openobserve, "logEvent", shipped.append)
    return shipped


shipEvent = openobserve.logEvent


@pytest.fixture
def openobserve_down(monkeypatch):
    """Ship events for real against an OpenObserve that refuses connections."""
    attempts = []

    def refuse(url, **kwargs):
        attempts.append(url)
        raise requests.ConnectionError("Connection refused")

    monkeypatch.setattr(openobserve, "logEvent", shipEvent)
    monkeypatch.setattr(openobserve.requests, "post", refuse)
    return attempts


@pytest.fixture
def session(database):
    with sessionMaker() as session:
        yield session


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def company(session):
    setting = CompanySetting(company_name="Raize Chemicals", state_code="36")
    session.add(setting)
    session.commit()
    return setting


@pytest.fixture
def make_account(session):
    """Create an account with roles and return `(account, bearer headers)`."""

    def make(email, roles, status=AccountStatus.ACTIVE, expired=False):
        account = Account(
            email=email, full_name=email.split("@")[0], password="x", status=status
        )
        session.add(account)
        session.flush()
        session.add_all(
            [AccountRole(account_id=account.id, role=role.value) for role in roles]
        )
        expiresAt = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
        if expired:
            expiresAt = datetime.now(timezone.utc) - timedelta(minutes=1)
        token = AccountToken(
            account_id=account.id,
            expires_in=MAX_TOKEN_VALIDITY,
            expires_at=expiresAt,
        )
        session.add(token)
        session.commit()
        return account, {"Authorization": f"Bearer {token.access_token}"}

    return make


@pytest.fixture
def admin(make_account):
    return make_account("admin@raizechem.in", [Role.ADMIN])


@pytest.fixture
def sales(make_account):
    return make_account("sales@raizechem.in", [Role.SALES])


@pytest.fixture
def warehouse(make_account):
    return make_account("store@raizechem.in", [Role.WAREHOUSE])
