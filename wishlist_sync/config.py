from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    ``SUPABASE_URL`` and ``SUPABASE_ANON_KEY`` point at the remote store.
    ``ACTIVE_EVENT_ID`` pins the event identity for the session; when unset
    the most recently created event is looked up on first use.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote store
    supabase_url: str = ""
    supabase_anon_key: str = ""
    request_timeout_seconds: float = 10.0

    # Session
    active_event_id: str | None = None
    guest_id: str | None = None

    # Local cache keys
    wishlist_storage_key: str = "second-story-wishlist"
    last_sync_storage_key: str = "second-story-last-sync"

    # MCP transport
    mcp_transport: str = "stdio"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000

    # Paths & logging. Default is <project_root>/data, independent of
    # the process working directory.
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def db_path(self) -> Path:
        return self.data_dir / "wishlist.db"

    @property
    def has_remote(self) -> bool:
        """Return True when the remote store is configured."""
        return bool(self.supabase_url and self.supabase_anon_key)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
