"""Command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from gitdub.app import create_app
from gitdub.config import ConfigError, settings
from gitdub.services.watcher import ConfigWatcher

logger = logging.getLogger("gitdub")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitdub",
        description="Mirror GitHub repositories on push and send commit mails.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=settings.config_path,
        help="YAML configuration file (default: %(default)s, env GITDUB_CONFIG)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="logging level (default: %(default)s, env LOG_LEVEL)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        watcher = ConfigWatcher.from_file(args.config)
    except ConfigError as exc:
        logger.error("cannot load configuration: %s", exc)
        return 1

    config = watcher.current()
    options = {}
    if config.ssl.enable:
        options = {"ssl_certfile": config.ssl.cert, "ssl_keyfile": config.ssl.key}

    logger.info(
        "listening on %s:%s, mirrors in %s",
        config.listen_address,
        config.listen_port,
        config.directory,
    )
    uvicorn.run(
        create_app(watcher),
        host=config.listen_address,
        port=config.listen_port,
        log_config=None,
        **options,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
