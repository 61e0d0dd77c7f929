#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys

from .config import LOG_LEVELS, ConfigError, ConfigManager
from .controller import FanController
from .logging_utils import setup_logging

EXIT_CONFIG_ERROR = 2


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="idrac-fan-controller",
        description="Drive iDRAC fan speed from the hottest temperature sensor.",
    )
    parser.add_argument("--config", help="TOML config file (env IDRAC_FAN_CONFIG)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="override LOG_LEVEL")
    parser.add_argument("--check-interval", type=int, help="override CHECK_INTERVAL (seconds)")
    parser.add_argument("--once", action="store_true", help="run a single control cycle and exit")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    args = parse_args(list(sys.argv[1:] if argv is None else argv))
    logger = setup_logging(args.log_level or "info")
    try:
        cfg_mgr = ConfigManager(
            args.config,
            overrides={"log_level": args.log_level, "check_interval": args.check_interval},
        )
        cfg_mgr.load()
        config = cfg_mgr.validate(logger)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    logger = setup_logging(config.log_level, config.log_file)
    try:
        FanController(config, logger=logger).run(once=args.once)
    except Exception as e:
        logger.error(f"Fan controller stopped: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
