"""
docengine configuration — all environment variables in one place.

Read from environment at import time. Every value has a working default so the
engine runs embedded (in tests, scripts) without any environment set up.
"""

from __future__ import annotations

import os


class Settings:
    """Engine settings from environment variables."""

    # Database (PostgresStore only)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    POSTGRES_TABLE: str = os.environ.get("DOCENGINE_POSTGRES_TABLE", "documents")

    # Version history
    MAX_VERSIONS: int = int(os.environ.get("DOCENGINE_MAX_VERSIONS", "50"))
    DEFAULT_KEEP_VERSIONS: int = int(os.environ.get("DOCENGINE_KEEP_VERSIONS", "10"))

    # Version statistics
    STATS_WINDOW_DAYS: int = int(os.environ.get("DOCENGINE_STATS_WINDOW_DAYS", "30"))
    STATS_TOP_N: int = int(os.environ.get("DOCENGINE_STATS_TOP_N", "5"))

    # Rendering
    DOCUMENT_LANG: str = os.environ.get("DOCENGINE_DOCUMENT_LANG", "tr")
    DOCUMENT_TITLE: str = os.environ.get("DOCENGINE_DOCUMENT_TITLE", "Şablon Önizleme")


settings = Settings()
