from __future__ import annotations

import logging

from wardrobe.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once for the API process and the CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
