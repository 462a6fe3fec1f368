"""
Test infrastructure for the group messaging core.

Strategy
--------
- SQLite in-memory via aiosqlite with StaticPool, so every session in a
  test shares one connection and therefore one database.
- Tables are created before and dropped after each test.
- Service tests call the service functions with a ``SqlStore`` over the
  ``db_session`` fixture; endpoint tests go through httpx's
  ``ASGITransport`` with ``get_db`` overridden.
- Asset storage writes into ``tmp_path``; the message fan-out is
  replaced by ``RecordingFanOut`` so no background task touches the
  shared connection.  ``test_fanout.py`` exercises the real fan-out
  against its own file-backed database.
- Redis is disabled (``cache._redis = None``); the cache degrades to
  misses and skipped writes.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from groupchat.cache import cache
from groupchat.database import Base, get_db
from groupchat.dependencies import get_assets, get_fanout
from groupchat.main import app
from groupchat.middleware import install_query_counter
from groupchat.models import Group, User
from groupchat.security import create_access_token
from groupchat.storage import LocalAssetStorage
from groupchat.store import SqlStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


class RecordingFanOut:
    """Stands in for ``MessageFanOut``; records what would have been fanned out."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    @property
    def pending(self) -> int:
        return 0

    def message_added(self, *, author, group, message) -> None:
        self.calls.append(
            {
                "author_id": author.id,
                "group_id": group.id,
                "message_id": message.id,
                "text": message.text,
            }
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> SqlStore:
    return SqlStore(db_session)


@pytest.fixture
def assets(tmp_path) -> LocalAssetStorage:
    return LocalAssetStorage(root=tmp_path / "media", base_url="/assets", secret="test-secret")


@pytest.fixture
def fanout() -> RecordingFanOut:
    return RecordingFanOut()


@pytest.fixture
def make_user(store: SqlStore):
    async def _make(username: str, registration_id: str | None = None, **extra) -> User:
        return await store.create(
            User,
            username=username,
            email=f"{username}@example.com",
            registration_id=registration_id,
            **extra,
        )

    return _make


@pytest.fixture
def make_group(store: SqlStore):
    async def _make(name: str, members: list[User], icon: str | None = None) -> Group:
        group = await store.create(Group, name=name, icon=icon)
        await store.add_users(group, members)
        return group

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest_asyncio.fixture
async def async_client(assets, fanout) -> AsyncClient:
    app.dependency_overrides[get_assets] = lambda: assets
    app.dependency_overrides[get_fanout] = lambda: fanout
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_assets, None)
    app.dependency_overrides.pop(get_fanout, None)
