import pytest

from tests.fakes import FakeEventResolver, FakeRemoteStore
from wishlist_sync.storage.kv import InMemoryKeyValueStorage
from wishlist_sync.sync.engine import WishlistSyncEngine
from wishlist_sync.sync.event_context import EventContext
from wishlist_sync.sync.notifications import NoticeBuffer


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure the remote store settings never point at a real project."""
    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "test-anon-key")
    monkeypatch.delenv("GUEST_ID", raising=False)
    monkeypatch.delenv("ACTIVE_EVENT_ID", raising=False)


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def resolver() -> FakeEventResolver:
    return FakeEventResolver()


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def notices() -> NoticeBuffer:
    return NoticeBuffer()


@pytest.fixture
def engine(remote, resolver, storage, notices) -> WishlistSyncEngine:
    """Engine wired to in-memory fakes; no guest loaded yet."""
    return WishlistSyncEngine(remote, EventContext(resolver), storage, notices)
