#!/usr/bin/env python3
"""
Disk usage collector - main entry point.

Runs one collection over the configured hosts and updates the cache.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .collector import DiskUsageCollector
from .config import Config
from ..data.persistence import CacheUnavailableError

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

EXIT_OK = 0
EXIT_CACHE_UNAVAILABLE = 2


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure logging for a run and return the collector's logger."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("diskusage")


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Collect disk usage over SNMP into a local cache",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="Path to config YAML file")
    parser.add_argument("--cache-file", type=str, help="Override the cache file path")
    parser.add_argument(
        "--host",
        dest="hosts",
        action="append",
        default=None,
        help="Host to collect from (repeatable, replaces configured hosts)",
    )
    parser.add_argument("--log-level", type=str, help="Override the configured log level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the diskusage-collect command."""
    args = parse_args(argv)
    config = Config.load(args.config)
    if args.cache_file:
        config.cache_file = args.cache_file
    if args.hosts:
        config.hosts = args.hosts
    if args.log_level:
        config.log_level = args.log_level

    log = setup_logging(config.log_level, config.log_file)
    collector = DiskUsageCollector.from_config(config, logger=log)

    try:
        summary = collector.run(config.hosts)
    except CacheUnavailableError as e:
        log.error("fatal: %s", e)
        return EXIT_CACHE_UNAVAILABLE
    finally:
        collector.cache.close()

    for outcome in summary.hosts.values():
        line = f"{outcome.hostname}: {outcome.status.value} ({outcome.host_type.value}, {len(outcome.records)} rows)"
        if outcome.error:
            line += f" - {outcome.error}"
        print(line)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
