"""Logging setup shared by the API and scripts."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if level == "DEBUG":
        # botocore logs every request at DEBUG
        logging.getLogger("botocore").setLevel(logging.INFO)
