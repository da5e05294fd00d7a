from __future__ import annotations

import logging

from minrisk.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_configured = False


def configure_logging() -> None:
    # Configure the root logger once; repeated app factories reuse it.
    global _configured
    if _configured:
        return
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # httpx logs every request line at INFO, including provider URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
