"""
Runtime settings, resolved from environment variables.

    CONCEPTMAP_DATA_DIR       where documents are stored (default ~/.conceptmap)
    CONCEPTMAP_HOST / _PORT   API bind address (default 127.0.0.1:8765)
    CONCEPTMAP_AUTOSAVE_MS    autosave debounce window (default 800)
    CONCEPTMAP_THROTTLE_MS    minimum spacing between saves (default 1200)
    CONCEPTMAP_HISTORY_LIMIT  undo depth (default 120)
    CONCEPTMAP_LOG_LEVEL      logging level (default INFO)
    CONCEPTMAP_CORS_ORIGINS   comma-separated origins for the web client
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class Settings:
    data_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("CONCEPTMAP_DATA_DIR", str(Path.home() / ".conceptmap"))
        ).expanduser()
    )
    host: str = field(default_factory=lambda: os.environ.get("CONCEPTMAP_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("CONCEPTMAP_PORT", 8765))
    autosave_ms: int = field(default_factory=lambda: _env_int("CONCEPTMAP_AUTOSAVE_MS", 800))
    throttle_ms: int = field(default_factory=lambda: _env_int("CONCEPTMAP_THROTTLE_MS", 1200))
    history_limit: int = field(default_factory=lambda: _env_int("CONCEPTMAP_HISTORY_LIMIT", 120))
    log_level: str = field(default_factory=lambda: os.environ.get("CONCEPTMAP_LOG_LEVEL", "INFO"))
    cors_origins: list[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.environ.get("CONCEPTMAP_CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ]
    )

    @property
    def documents_dir(self) -> Path:
        """Directory holding one JSON file per document."""
        return self.data_dir / "maps"

    @property
    def last_document_path(self) -> Path:
        """File remembering the last opened document id."""
        return self.data_dir / "last-doc"


def configure_logging(level: str = "INFO"):
    """Basic console logging for the server and CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
