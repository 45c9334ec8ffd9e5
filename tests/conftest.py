"""Shared fixtures: every test gets its own snapshot file under tmp_path."""

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from config import Settings
from main import create_app


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "database.json"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return Settings(database_path=str(db_path), lock_timeout_seconds=0.2)


@pytest.fixture
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as ac:
        yield ac
