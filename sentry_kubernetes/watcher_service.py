"""Standalone entrypoint for the sentry-kubernetes watcher."""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from .config import ConfigurationError, Settings
from .service import run_watcher

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Report crashed, OOM-killed and failed Kubernetes containers to Sentry.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--namespace",
        "-n",
        default=None,
        help="Namespace to watch (default: from env, or all namespaces)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    overrides = {}
    if args.debug:
        overrides["debug"] = True
    if args.namespace is not None:
        overrides["namespace"] = args.namespace
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        cfg = Settings(**overrides)
    except ValidationError as exc:
        logger.error(f"invalid configuration: {exc}")
        return 1
    if cfg.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        run_watcher(cfg)
    except ConfigurationError as exc:
        logger.error(str(exc))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
