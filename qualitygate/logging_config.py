from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once from ``QUALITYGATE_LOG_LEVEL`` (default INFO)."""
    resolved = (level or os.getenv("QUALITYGATE_LOG_LEVEL") or "INFO").upper()
    numeric = logging.getLevelName(resolved)
    if not isinstance(numeric, int):
        raise RuntimeError(f"Unknown log level: {resolved}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger("qualitygate").setLevel(numeric)
