"""Command line entry point: ``python -m hue_bridge_emulator``."""
from __future__ import annotations

import asyncio
from contextlib import suppress
import logging
import signal
import sys

from . import async_start_bridge
from .config_schema import ConfigError
from .settings import Settings, load_settings

_LOGGER = logging.getLogger(__name__)


async def async_run(settings: Settings) -> None:
    """Run the bridge until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform; KeyboardInterrupt still applies
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    bridge = await async_start_bridge(settings)
    try:
        await stop.wait()
    finally:
        await bridge.async_stop()


def main() -> int:
    """Read the environment, configure logging and run the bridge."""
    try:
        settings = load_settings()
    except ConfigError as err:
        logging.basicConfig(level=logging.ERROR)
        _LOGGER.error("%s", err)
        return 2

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        asyncio.run(async_run(settings))
    except KeyboardInterrupt:
        pass
    except (ConfigError, OSError) as err:
        _LOGGER.error("Hue bridge emulator stopped: %s", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
