"""Process-wide logging setup for the bot and the migration CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Libraries that log every update, pool check or parse attempt at INFO/DEBUG.
NOISY_LOGGERS: tuple[str, ...] = ("aiogram.event", "psycopg.pool", "dateparser", "tzlocal")


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once and apply `level`.

    Calling it again only changes the level. Pipeline logs are key=value diagnostics and are
    never relayed to the chat.
    """

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
