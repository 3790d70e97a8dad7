from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_FORMAT)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    # boto noise at DEBUG is unreadable
    logging.getLogger("botocore").setLevel(logging.WARNING)
