from __future__ import annotations

import logging

from nameledger.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Configure the root logger once; later calls only adjust the level.
    resolved = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    root.setLevel(resolved)
    # SQL echo stays off unless explicitly requested through LOG_LEVEL=DEBUG.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if resolved == "DEBUG" else logging.WARNING
    )
