"""
Faucet entry point

    python -m faucet_engine --config faucet_config.yaml

Loads the config, sets up logging, runs startup balancing, then serves
the HTTP front and the faucet activities until interrupted.
"""

import argparse
import asyncio
import logging
import sys

from loguru import logger

from .config import ConfigError, FaucetConfig
from .faucet import Faucet
from .web import create_app, serve


class InterceptHandler(logging.Handler):
    """Intercept standard logging (uvicorn, web3) and redirect to loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO"):
    """Configure loguru and route stdlib logging through it."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


async def run(config: FaucetConfig, log_level: str = "info"):
    request_queue: asyncio.Queue = asyncio.Queue()

    faucet = await Faucet.create(config, request_queue)
    activities = faucet.start()

    app = create_app(request_queue, faucet)
    await asyncio.gather(activities, serve(app, config.port, log_level=log_level))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Multi-account EVM faucet")
    parser.add_argument('--config', default="faucet_config.yaml", help="YAML config file (default: faucet_config.yaml)")
    parser.add_argument('--log-level', default="INFO", help="Log level (default: INFO)")
    args = parser.parse_args(argv)

    setup_logging(args.log_level.upper())

    try:
        config = FaucetConfig.load(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(f"Faucet config: {config.describe()}")

    try:
        asyncio.run(run(config, log_level=args.log_level.lower()))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
