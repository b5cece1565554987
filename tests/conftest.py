import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_user():
    """Factory for MagicMocks that quack like a User ORM instance."""

    def _make(
        role: str = "buyer",
        user_id: uuid.UUID | None = None,
        display_name: str = "Test User",
        email: str = "test@example.com",
    ) -> MagicMock:
        user = MagicMock()
        user.user_id = user_id or uuid.uuid4()
        user.email = email
        user.display_name = display_name
        user.role = role
        user.is_artist = role == "artist"
        user.is_active = True
        user.token_version = 0
        user.created_at = datetime.now(timezone.utc)
        return user

    return _make


@pytest.fixture
def mock_db():
    """An AsyncSession stand-in; queue results on ``execute.side_effect``."""
    db = AsyncMock()
    db.add = MagicMock()
    db.begin_nested = MagicMock()
    db.begin_nested.return_value.__aexit__.return_value = False
    return db


@pytest.fixture
async def client(mock_db):
    """Unauthenticated client whose requests use *mock_db*."""

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Make every authenticated route see *user* as the caller."""

    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user

    return _login
