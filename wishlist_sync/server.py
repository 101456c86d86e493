import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP

from wishlist_sync.clients.supabase import SupabaseEventResolver, SupabaseWishlistStore
from wishlist_sync.storage.kv import SQLiteKeyValueStorage
from wishlist_sync.sync.engine import WishlistSyncEngine
from wishlist_sync.sync.event_context import EventContext
from wishlist_sync.sync.notifications import NoticeBuffer, logging_sink

logger = logging.getLogger(__name__)

_engine: WishlistSyncEngine | None = None
_notices: NoticeBuffer | None = None


def get_engine() -> WishlistSyncEngine:
    """Get the current WishlistSyncEngine. Raises if not initialized."""
    if _engine is None:
        raise RuntimeError("Wishlist engine not initialized. Server lifespan has not started.")
    return _engine


def get_notices() -> NoticeBuffer:
    """Get the buffer collecting engine notices for tool responses."""
    if _notices is None:
        raise RuntimeError("Wishlist engine not initialized. Server lifespan has not started.")
    return _notices


def _reset_engine() -> None:
    """Clear the module-level engine references. Used in tests."""
    global _engine, _notices  # noqa: PLW0603
    _engine = None
    _notices = None


def build_engine(
    storage: SQLiteKeyValueStorage, notices: NoticeBuffer
) -> WishlistSyncEngine:
    """Assemble the engine against the configured Supabase project."""
    from wishlist_sync.config import get_settings

    settings = get_settings()
    if not settings.has_remote:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; remote calls will fail")

    remote = SupabaseWishlistStore(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout=settings.request_timeout_seconds,
    )
    resolver = SupabaseEventResolver(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout=settings.request_timeout_seconds,
        breaker=remote.breaker,
    )
    return WishlistSyncEngine(
        remote,
        EventContext(resolver, settings.active_event_id),
        storage,
        notices,
        logging_sink,
        wishlist_key=settings.wishlist_storage_key,
        last_sync_key=settings.last_sync_storage_key,
    )


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Manage the local storage and engine for the server lifecycle."""
    global _engine, _notices  # noqa: PLW0603
    from wishlist_sync.config import get_settings

    settings = get_settings()
    storage = SQLiteKeyValueStorage(settings.db_path)
    await storage.initialize()

    _notices = NoticeBuffer()
    _engine = build_engine(storage, _notices)
    await _engine.restore_cached()
    if settings.guest_id:
        await _engine.load(settings.guest_id)
    logger.info("Wishlist engine initialized")

    try:
        yield {"engine": _engine}
    finally:
        await _engine.cache.flush()
        _engine = None
        _notices = None
        await storage.close()
        logger.info("Local storage closed")


mcp = FastMCP("wishlist-sync", lifespan=app_lifespan)


def setup_logging(log_level: str, data_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        data_dir: Base data directory. Logs go to data_dir/logs/server.log.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check avoids matching subclasses (FileHandler, etc.)
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize() -> FastMCP:
    """Set up directories, logging, and register tools. Returns the MCP server."""
    from wishlist_sync.config import get_settings

    settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / "logs").mkdir(exist_ok=True)

    setup_logging(settings.log_level, settings.data_dir)

    from wishlist_sync.tools.wishlist import register_wishlist_tools

    register_wishlist_tools(mcp)

    logger.info("Wishlist sync server initialized")
    return mcp
