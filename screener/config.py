from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field


def _resolve_project_root() -> Path:
    override = os.getenv("SCREENER_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parent


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw).expanduser() if raw else default


class Settings(BaseModel):
    project_root: Path = Field(default_factory=_resolve_project_root)
    data_dir: Path = Field(default_factory=lambda: _resolve_project_root() / "data")
    database_path: Path = Field(
        default_factory=lambda: _env_path("SCREENER_DB_PATH", _resolve_project_root() / "data" / "screener.db")
    )
    uploads_dir: Path = Field(
        default_factory=lambda: _env_path("SCREENER_UPLOADS_DIR", _resolve_project_root() / "data" / "uploads")
    )

    anthropic_api_key: str | None = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    default_model: str = Field(
        default_factory=lambda: os.getenv("SCREENER_DEFAULT_MODEL", "claude-haiku-4-5-20251001")
    )

    # Per-call transport limits, separate from the overload backoff below
    request_timeout_seconds: float = Field(default_factory=lambda: _env_float("SCREENER_REQUEST_TIMEOUT", 120.0))
    connect_timeout_seconds: float = Field(default_factory=lambda: _env_float("SCREENER_CONNECT_TIMEOUT", 10.0))

    retry_max_attempts: int = Field(default_factory=lambda: _env_int("SCREENER_RETRY_MAX_ATTEMPTS", 5))
    retry_initial_delay_seconds: float = Field(
        default_factory=lambda: _env_float("SCREENER_RETRY_INITIAL_DELAY", 3.0)
    )

    # Base64 length above which a document is split into page-text chunks
    pdf_size_threshold: int = Field(
        default_factory=lambda: _env_int("SCREENER_PDF_SIZE_THRESHOLD", 5 * 1024 * 1024)
    )
    pages_per_chunk: int = Field(default_factory=lambda: _env_int("SCREENER_PAGES_PER_CHUNK", 12))
    pdf_text_timeout_seconds: float = Field(default_factory=lambda: _env_float("SCREENER_PDF_TIMEOUT", 30.0))
    extraction_timeout_seconds: float = Field(
        default_factory=lambda: _env_float("SCREENER_EXTRACTION_TIMEOUT", 90.0)
    )

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_directories()
    return settings
