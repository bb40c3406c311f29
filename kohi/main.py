"""Main entry point for Kohi.

Initializes logging in two phases (defaults then config-driven),
creates the KohiBot, serves the webhook with aiohttp and shuts down
gracefully on SIGTERM/SIGINT.

Key functions:
    main: Async entry point -- sets up logging, config, bot, web
        server and signal handlers, then waits for shutdown.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import signal
import sys

import structlog
from aiohttp import web

from . import __version__
from .exceptions import ConfigError
from .logging_config import setup_logging


async def main():
    """Main async entry point."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("kohi.bot")

    logger.info("kohi_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .bot import KohiBot
    from .config import get_config

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    bot = KohiBot(config)
    try:
        await bot.start()
    except ConfigError as e:
        logger.critical("startup_failed", error=e.message, **e.context)
        sys.exit(1)

    runner = web.AppRunner(bot.webhook.make_app(), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)

    # Setup graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported.
            # Fall back to signal.signal for SIGINT (Ctrl+C).
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    try:
        await site.start()
        logger.info("server_listening", host=config.host, port=config.port)
        await shutdown_event.wait()
    except Exception as e:
        logger.error("server_error", error=str(e))
        raise
    finally:
        # Stop accepting deliveries before draining in-flight events
        await runner.cleanup()
        await bot.stop()
        logger.info("kohi_stopped")


def run():
    """Synchronous entry point for the ``kohi`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except SystemExit as e:
        sys.exit(e.code)


if __name__ == "__main__":
    run()
