"""
Writegy Backend - Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   A fresh in-memory SQLite database (aiosqlite) per test, with the
       application's tables created from the ORM metadata.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── db_engine: async engine on a private in-memory database
    ├── db_session: AsyncSession bound to db_engine
    ├── owner / other_user: persisted users
    ├── temp_storage: temporary directory for LocalStorage
    ├── stub_llm: scripted LLMService (no network)
    ├── storage_provider: counting storage factory over temp_storage
    └── test_client: HTTPX AsyncClient against a fresh app with
                     database, storage, grammar and identity overridden
"""

import os
import tempfile
import time
from typing import Optional

# Override settings for testing BEFORE any app imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LLM_API_KEY"] = ""
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="writegy_test_")
os.environ["DEMO_USER_ENABLED"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db_session
from app.dependencies import (
    get_grammar_service,
    get_identity_verifier,
    get_storage_factory,
    get_user_resolver,
)
from app.models.document import Document  # noqa: F401
from app.models.user import User, UserRole
from app.services.grammar_service import GrammarService
from app.services.identity_service import IdentityVerifier
from app.services.llm_base import LLMService
from app.services.storage_service import LocalStorage
from app.services.user_service import UserResolver

TEST_JWT_SECRET = "test-secret-with-enough-length-for-hs256"
TEST_AUDIENCE = "authenticated"
AI_REPLY = '{"corrected": "Hello world.", "suggestions": []}'


def make_token(
    email: Optional[str] = "jane@example.com",
    secret: str = TEST_JWT_SECRET,
    audience: str = TEST_AUDIENCE,
    expires_in: int = 3600,
    **claims,
) -> str:
    """HS256 token shaped like the identity provider's access tokens."""
    now = int(time.time())
    payload = {
        "sub": claims.pop("sub", "user-123"),
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


class StorageProvider:
    """Storage factory double: returns `storage` or raises `error`, counting calls."""

    def __init__(self, storage, error: Optional[Exception] = None):
        self.storage = storage
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.storage


class StubLLM(LLMService):
    """LLMService double: returns `reply` or raises `error`, counting calls."""

    def __init__(self, reply: str = AI_REPLY, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls = 0
        self.prompts = []

    async def complete(self, prompt, *, model=None, temperature=None, max_tokens=None):
        self.calls += 1
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return self.error is None


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    Async engine on a private in-memory database.

    StaticPool keeps the single connection alive for the whole test. The
    connect/begin hooks hand transaction control to SQLAlchemy so that
    SAVEPOINTs (used by the user resolver) behave as on PostgreSQL.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def owner(db_session):
    user = User(
        external_id="owner-sub",
        email="owner@example.com",
        name="Owner",
        role=UserRole.FREE,
        email_verified=True,
    )
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def other_user(db_session):
    user = User(
        external_id="other-sub",
        email="other@example.com",
        name="Other",
        role=UserRole.FREE,
    )
    db_session.add(user)
    await db_session.flush()
    return user


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """Fresh directory for LocalStorage, cleaned up by pytest."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def stub_llm():
    return StubLLM()


@pytest.fixture
def storage_provider(temp_storage):
    return StorageProvider(LocalStorage(temp_storage))


@pytest.fixture
def identity_verifier():
    return IdentityVerifier(jwt_secret=TEST_JWT_SECRET, jwks_url="", audience=TEST_AUDIENCE)


@pytest_asyncio.fixture
async def test_client(db_engine, storage_provider, stub_llm, identity_verifier):
    """
    HTTPX AsyncClient wired to a fresh app instance.

    Each request gets its own session on the test engine, committed on
    success like the production dependency. Anonymous requests act as the
    demo user.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from app.main import create_app

    app = create_app()
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_db_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    grammar = GrammarService(llm=stub_llm, cache_size=10, timeout_seconds=1)
    resolver = UserResolver(demo_enabled=True, production=False)

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_storage_factory] = lambda: storage_provider
    app.dependency_overrides[get_grammar_service] = lambda: grammar
    app.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    app.dependency_overrides[get_user_resolver] = lambda: resolver

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
