"""Shared test fixtures for backend tests."""

import fnmatch
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.auth.csrf import generate_csrf_token
from app.auth.jwt import create_access_token
from app.config import settings
from app.database import Base
from app.main import app
from app.models.user import User
from app.seed.permissions import seed_permissions
from app.services.cache import CacheClient


# ── In-memory Redis stand-in ─────────────────────────────────────────────────

class FakeRedis:
    """
    The subset of redis.asyncio.Redis the cache layer uses, backed by a dict.

    Set `down = True` to make every call raise ConnectionError, and advance
    `now` to expire keys.
    """

    def __init__(self):
        self.store: dict[str, tuple[str, float | None]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.down = False
        self.now = 0.0
        self.calls = 0

    def _check(self):
        self.calls += 1
        if self.down:
            raise RedisConnectionError("Connection refused")

    def _live(self, key: str) -> bool:
        entry = self.store.get(key)
        if entry is None:
            return False
        _, expires = entry
        if expires is not None and expires <= self.now:
            del self.store[key]
            return False
        return True

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store[key][0] if self._live(key) else None

    async def setex(self, key, ttl, value):
        self._check()
        self.store[key] = (value, self.now + ttl)
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match="*", count=None):
        self._check()
        for key in list(self.store):
            if self._live(key) and fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        return None

    def pipeline(self) -> "_FakePipeline":
        return _FakePipeline(self)

    # Sorted sets, reached only through pipeline() (rate limiter)
    def _zremrangebyscore(self, key, low, high):
        zset = self.zsets.setdefault(key, {})
        stale = [m for m, score in zset.items() if low <= score <= high]
        for member in stale:
            del zset[member]
        return len(stale)

    def _zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def _zcard(self, key):
        return len(self.zsets.get(key, {}))

    def _expire(self, key, seconds):
        return True

    def ttl_of(self, key) -> float | None:
        entry = self.store.get(key)
        return None if entry is None or entry[1] is None else entry[1] - self.now


class _FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.ops: list[tuple[str, tuple]] = []

    def zremrangebyscore(self, *args):
        self.ops.append(("_zremrangebyscore", args))

    def zadd(self, *args):
        self.ops.append(("_zadd", args))

    def zcard(self, *args):
        self.ops.append(("_zcard", args))

    def expire(self, *args):
        self.ops.append(("_expire", args))

    async def execute(self):
        self.redis._check()
        return [getattr(self.redis, name)(*args) for name, args in self.ops]


# ── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory SQLite schema per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        app.dependency_overrides[get_db] = _override_db(session)
        yield session
        app.dependency_overrides.pop(get_db, None)

    await engine.dispose()


def _override_db(session: AsyncSession):
    """Create a dependency override for get_db."""
    async def _get_db():
        yield session
    return _get_db


@pytest.fixture
def write_order(db_session: AsyncSession, cache: CacheClient, monkeypatch) -> list[str]:
    """
    Serve requests through a get_db that commits after the handler, as the
    real one does, and record "commit" and "invalidate" events in order.
    """
    order: list[str] = []

    async def _committing_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    def _on_commit(session):
        order.append("commit")

    for name in ("delete", "delete_pattern"):
        async def _spy(key, _original=getattr(cache, name)):
            order.append("invalidate")
            return await _original(key)
        monkeypatch.setattr(cache, name, _spy)

    app.dependency_overrides[get_db] = _committing_db
    event.listen(db_session.sync_session, "after_commit", _on_commit)
    yield order
    event.remove(db_session.sync_session, "after_commit", _on_commit)


# ── Cache ────────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> CacheClient:
    return CacheClient(fake_redis, max_retries=3, backoff_step=0)


# ── App wiring ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _wire_app(monkeypatch, cache: CacheClient):
    """Point the app at the test cache and disable rate limiting."""
    monkeypatch.setattr(settings, "rate_limit_per_minute", 0)
    monkeypatch.setattr(app.state, "cache", cache)
    yield
    app.dependency_overrides.clear()


# ── Seed data ────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> SimpleNamespace:
    """
    Permission catalogue plus a small organisation:

        manager
          tl  -> agent, agent2
          tl2 -> agent3
        admin
    """
    await seed_permissions(db_session)

    def _user(email, role, name, **kw) -> User:
        u = User(email=email, role=role, name=name, is_active=True, **kw)
        db_session.add(u)
        return u

    admin = _user("admin@example.com", "ADMIN", "Ada Admin")
    manager = _user("manager@example.com", "MANAGER", "Max Manager")
    await db_session.flush()
    tl = _user("tl@example.com", "TEAM_LEADER", "Tess Leader", managed_by=manager.id)
    tl2 = _user("tl2@example.com", "TEAM_LEADER", "Theo Leader", managed_by=manager.id)
    await db_session.flush()
    agent = _user("agent@example.com", "AGENT", "Alice Agent", team_leader_id=tl.id, employee_id="E-001")
    agent2 = _user("agent2@example.com", "AGENT", "Bob Agent", team_leader_id=tl.id, employee_id="E-002")
    agent3 = _user("agent3@example.com", "AGENT", "Cara Agent", team_leader_id=tl2.id, employee_id="E-003")
    await db_session.flush()

    org = SimpleNamespace(
        admin=admin, manager=manager, tl=tl, tl2=tl2,
        agent=agent, agent2=agent2, agent3=agent3,
    )
    # Load server-side defaults (created_at) so no lazy load happens later
    for u in vars(org).values():
        await db_session.refresh(u)
    return org


# ── HTTP clients ─────────────────────────────────────────────────────────────

def _make_auth_header(user_id: int, email: str, role: str) -> dict:
    """Create an Authorization header with a valid JWT."""
    token = create_access_token(user_id, email, role)
    return {"Authorization": f"Bearer {token}"}


def _csrf_headers() -> dict:
    """Matching CSRF cookie + header pair."""
    token = generate_csrf_token()
    return {
        "Cookie": f"{settings.csrf_cookie_name}={token}",
        settings.csrf_header_name: token,
    }


@pytest_asyncio.fixture
async def client_for(db_session: AsyncSession):
    """Factory: `await client_for(user)` -> AsyncClient authenticated as that user."""
    clients: list[AsyncClient] = []

    async def _make(user: User | None = None, *, csrf: bool = True) -> AsyncClient:
        headers = {}
        if user is not None:
            headers.update(_make_auth_header(user.id, user.email, user.role))
        if csrf:
            headers.update(_csrf_headers())
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


@pytest_asyncio.fixture
async def anon_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with no authentication and no CSRF token."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
