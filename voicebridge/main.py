"""
Process entrypoint: load config, configure logging, validate, serve until
SIGINT/SIGTERM.
"""

import asyncio
import signal

import structlog

from voicebridge.config import load_config, validate_config
from voicebridge.logging_config import configure_logging
from voicebridge.server import create_server

logger = structlog.get_logger(__name__)


async def run() -> None:
    config = load_config()
    configure_logging(log_level=config.logging.level.upper())

    errors, warnings = validate_config(config)
    if errors:
        logger.error("Configuration validation failed", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    server = create_server(config)
    await server.start()
    logger.info("Waiting for incoming calls", tools=server.tools.list_tool_names())

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await shutdown_event.wait()
    logger.info("Shutdown requested", active_sessions=len(server.registry))
    await server.stop()


def main() -> None:
    try:
        asyncio.run(run())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("voicebridge has shut down.")


if __name__ == "__main__":
    main()
