import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Keys that may be changed at runtime from the settings screen
RUNTIME_KEYS = ("greenhouse_api_key", "greenhouse_user_id", "anthropic_api_key")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    port: int = 3333
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Greenhouse Harvest API
    greenhouse_api_key: str = ""
    greenhouse_user_id: str = ""
    greenhouse_base_url: str = "https://harvest.greenhouse.io/v1"
    greenhouse_app_url: str = "https://app4.greenhouse.io"
    greenhouse_timeout_seconds: float = 30.0

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_timeout_seconds: float = 300.0
    screening_model: str = "claude-sonnet-4-20250514"
    ranking_model: str = "claude-opus-4-5-20251101"
    validation_model: str = "claude-3-haiku-20240307"
    calibration_limit: int = 20

    # Resume/cover letter downloads
    document_timeout_seconds: float = 60.0

    # Embedding provider: "local", "openai" or "mock"
    embedding_provider: str = "local"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    openai_api_key: str = ""

    # Local persistence (embedding indexes, saved settings)
    data_directory: str = "./data"

    @property
    def embeddings_directory(self) -> Path:
        return Path(self.data_directory) / "embeddings"

    @property
    def settings_file(self) -> Path:
        return Path(self.data_directory) / "settings.json"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a new snapshot with non-empty overrides applied."""
        update = {k: v for k, v in overrides.items() if v}
        if not update:
            return self
        return self.model_copy(update=update)

    def missing_credentials(self) -> List[str]:
        return [key.upper() for key in RUNTIME_KEYS if not getattr(self, key)]


@lru_cache
def get_settings() -> Settings:
    return Settings()


def validate_settings(settings: Settings) -> bool:
    missing = settings.missing_credentials()
    if missing:
        logger.warning(f"Missing settings: {', '.join(missing)}")
        logger.warning("Configure them in Settings or create a .env file")
    return not missing


class SettingsStore:
    """
    Holds the current settings snapshot and the saved API credentials.

    Saved credentials live in a JSON file under the data directory and are
    layered over the environment-derived settings. ``update`` persists the
    new values and swaps in a fresh snapshot; snapshots already handed to
    services are never mutated.
    """

    def __init__(self, base: Settings, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else base.settings_file
        self._base = base
        self._current = base.with_overrides(**self.load())

    @property
    def current(self) -> Settings:
        return self._current

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading settings from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: str(v) for k, v in data.items() if k in RUNTIME_KEYS and v}

    def save(self, values: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values, indent=2), encoding="utf-8")

    def update(self, **values: Optional[str]) -> Settings:
        saved = self.load()
        saved.update({k: v for k, v in values.items() if k in RUNTIME_KEYS and v})
        self.save(saved)
        self._current = self._base.with_overrides(**saved)
        logger.info("Applied updated API settings")
        return self._current


_store: Optional[SettingsStore] = None


def get_settings_store() -> SettingsStore:
    global _store
    if _store is None:
        _store = SettingsStore(get_settings())
    return _store
