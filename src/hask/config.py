from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_database_url() -> str:
    db_path = Path.home() / ".hask" / "hask.db"
    return f"sqlite+aiosqlite:///{db_path}"


class Settings(BaseSettings):
    cohere_api_key: SecretStr = SecretStr("")
    cohere_base_url: str = "https://api.cohere.ai/v1"

    embedding_model: str = "embed-english-v3.0"
    rerank_model: str = "rerank-english-v3.0"
    summarize_model: str = "command"

    database_url: str = _default_database_url()

    # Chunking
    chunk_size: int = 800
    chunk_overlap: int = 100

    # Retrieval
    embed_batch_size: int = 96
    search_candidates: int = 20
    summary_top_m: int = 3
    summary_fallback_chars: int = 300

    # Provider calls
    provider_timeout: float = 30.0
    provider_max_attempts: int = 3
    provider_backoff_base: float = 0.5
    provider_backoff_max: float = 8.0

    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 1777

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HASK_",
        extra="ignore"
    )

    @property
    def sqlite_path(self) -> Path | None:
        """Filesystem path of the database when it is a SQLite file."""
        prefix = "sqlite+aiosqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        raw = self.database_url[len(prefix):]
        if not raw or raw == ":memory:":
            return None
        return Path(raw).expanduser()

settings = Settings()
