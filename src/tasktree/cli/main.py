# src/tasktree/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, paints the bulk-loaded tree immediately,
then feeds realtime events from stdin until EOF or /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_feed
from ..core.errors import SyncError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        try:
            # First paint bypasses the debounce window.
            await state.resync(immediate=True)
        except SyncError as e:
            logger.error("Initial load failed: %s", e)

        await run_console_feed(state)
    finally:
        await state.aclose()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")

    logger.info("Bye.")


if __name__ == "__main__":
    main()
