"""Logging setup.

Levels come from settings so the SQLAlchemy engine and uvicorn access logs can
be quietened without touching application loggers.
"""

import logging
import sys

from packhouse.config import settings

_CATEGORY_MAP: dict[str, list[str]] = {
    'log_level_sql': ['sqlalchemy.engine', 'sqlalchemy.pool'],
    'log_level_uvicorn': ['uvicorn', 'uvicorn.access', 'uvicorn.error'],
}


def _parse_level(raw: str) -> int:
    level = logging.getLevelName(str(raw).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    root = logging.getLogger()
    root.setLevel(_parse_level(settings.log_level))

    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-8s %(name)s: %(message)s'))
        root.addHandler(handler)

    for settings_field, logger_names in _CATEGORY_MAP.items():
        level = _parse_level(getattr(settings, settings_field, 'INFO'))
        for name in logger_names:
            logging.getLogger(name).setLevel(level)
