"""Runtime configuration loaded from environment variables."""

import logging
import os
from pathlib import Path


# Analysis / chat service
API_BASE_URL: str = os.getenv("CINDA_API_BASE_URL", "http://localhost:3000")
API_TIMEOUT_SECONDS: float = float(os.getenv("CINDA_API_TIMEOUT", "30"))

# Durable storage: "memory", "file" or "postgres"
STORAGE_BACKEND: str = os.getenv("CINDA_STORAGE_BACKEND", "file")
STORAGE_DIR: Path = Path(
    os.getenv("CINDA_STORAGE_DIR", str(Path.home() / ".cinda"))
)
DATABASE_URL: str = os.getenv("DATABASE_URL", "")

# Optional curated catalogue CSV (falls back to the built-in list)
CATALOG_PATH: str = os.getenv("CINDA_CATALOG_PATH", "")

LOG_LEVEL: str = os.getenv("CINDA_LOG_LEVEL", "INFO")


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging for scripts and the HTTP wrapper."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
