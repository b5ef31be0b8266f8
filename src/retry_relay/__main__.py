"""Entry point: ``python -m retry_relay``."""

from __future__ import annotations

import asyncio
import logging
import sys

from .app import RetryRelayService, configure_logging
from .exceptions import RetryRelayError
from .settings import load_settings

logger = logging.getLogger("retry_relay")


def main() -> int:
    try:
        settings = load_settings()
    except RetryRelayError as e:
        configure_logging()
        logger.critical("%s", e)
        return 2
    configure_logging(settings.log_level)
    service = RetryRelayService.from_settings(settings)
    try:
        asyncio.run(service.run())
    except RetryRelayError as e:
        logger.critical("Retry relay failed to start: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
