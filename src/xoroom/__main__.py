"""Entry point for running the room server via ``python -m xoroom``."""

from __future__ import annotations

import uvicorn

from .config import Settings
from .logging_config import get_logger, setup_logging


def main() -> None:
    """Start the FastAPI-powered room server."""

    settings = Settings.from_env()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    get_logger(__name__).info(f"Starting xoroom on {settings.host}:{settings.port}")
    uvicorn.run(
        "xoroom.server:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
