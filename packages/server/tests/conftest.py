"""
Shared fixtures: fake org members and a TestClient with the DB session and
authentication dependencies overridden. Services are patched per test.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.auth import AuthenticatedUser, get_authenticated_user, get_current_profile
from app.core.database import get_session
from app.main import app
from fizz_shared.schemas.common import Role

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def make_profile(**overrides) -> SimpleNamespace:
    data = {
        "id": uuid.uuid4(),
        "email": "dana@example.com",
        "name": "dana",
        "avatar_url": None,
        "github_username": None,
        "org_id": None,
        "role": Role.CONTRIBUTOR,
        "last_active_at": None,
        "created_at": NOW,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


def make_auth(role: Role | str = Role.CONTRIBUTOR, **profile_overrides) -> AuthenticatedUser:
    org = SimpleNamespace(
        id=uuid.uuid4(),
        name="Acme",
        slug="acme",
        description=None,
        owner_user_id=uuid.uuid4(),
        created_at=NOW,
        updated_at=NOW,
        deleted_at=None,
    )
    profile = make_profile(org_id=org.id, **profile_overrides)
    membership = SimpleNamespace(role=Role(role), user_id=profile.id, org_id=org.id, created_at=NOW)
    return AuthenticatedUser(profile=profile, org=org, membership=membership)


def query_result(value=None, rows=()) -> MagicMock:
    """Stand-in for an executed statement's Result."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    result.scalar.return_value = value
    result.first.return_value = value
    result.all.return_value = list(rows)
    result.scalars.return_value.all.return_value = list(rows)
    result.__iter__.return_value = iter(list(rows))
    return result


@pytest.fixture
def db_session():
    session = MagicMock()
    session.execute = AsyncMock(return_value=query_result())
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock(return_value=None)
    return session


@pytest.fixture
def api(db_session):
    """Build a client acting as ``auth`` (or anonymous when None)."""

    def _client(auth: AuthenticatedUser | None = None) -> TestClient:
        async def _session():
            yield db_session

        app.dependency_overrides[get_session] = _session
        if auth is not None:
            app.dependency_overrides[get_authenticated_user] = lambda: auth
            app.dependency_overrides[get_current_profile] = lambda: auth.profile
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
