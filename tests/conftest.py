"""Shared fixtures for the commerce bot tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_JWT_SECRET_KEY", "test_secret_key")

from typing import Any, Generator  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from commerce_bot.core import models  # noqa: E402,F401
from commerce_bot.core.database import Base  # noqa: E402
from commerce_bot.core.store import SqlCredentialStore, SqlInstallationStore  # noqa: E402
from support import FakeAuthClient  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def session_factory(tmp_path: Any) -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh SQLite file database."""
    engine = create_engine(f"sqlite:///{tmp_path / 'commerce_bot.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def credential_store(session_factory: sessionmaker) -> SqlCredentialStore:
    return SqlCredentialStore(session_factory)


@pytest.fixture
def installation_store(session_factory: sessionmaker) -> SqlInstallationStore:
    return SqlInstallationStore(session_factory)


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()
