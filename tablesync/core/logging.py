from __future__ import annotations

import logging


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    # Scripts call this once; library modules only ever use getLogger(__name__).
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # Engine echo is noisy at INFO; keep SQL logging opt-in.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
