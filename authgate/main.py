#!/usr/bin/env python3
"""
authgate - credential lifecycle service entry point

Run with ``authgate`` (console script) or ``uvicorn authgate.main:app``.
"""

import os

import uvicorn
from dotenv import load_dotenv

# Load environment before importing modules that read it at import time
load_dotenv()

from authgate.core.app import create_app  # noqa: E402
from authgate.core.config import get_settings, is_production  # noqa: E402
from authgate.logging_config import configure_logging, get_logger  # noqa: E402

configure_logging()
logger = get_logger(__name__)


def _worker_count(backend: str) -> int:
    # Blacklist and refresh state are only shared between workers through Redis
    requested = int(os.getenv("WORKERS", "0") or 0)
    if requested > 0:
        return requested
    return 4 if backend == "redis" else 1


def main():
    settings = get_settings()
    options = {"host": settings.host, "port": settings.port}
    if is_production():
        options.update(
            workers=_worker_count(settings.session_store_backend),
            log_level="info",
            server_header=False,
        )
    else:
        options.update(reload=True, log_level="debug")

    logger.info("Launching uvicorn", production=is_production(), **options)
    uvicorn.run("authgate.main:app", **options)


app = create_app()

if __name__ == "__main__":
    main()
