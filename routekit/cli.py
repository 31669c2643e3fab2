#!/usr/bin/env python
import sys
import argparse
import logging

from routekit.constants import LOG_LEVEL
from routekit.library.config_utils import deep_merge, drop_none, load_yaml_file
from routekit.logging_setup import setup_logging
from routekit.settings import get_settings
from routekit.web.app import create_server

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Serve a directory of routekit handlers")

    parser.add_argument("-r", "--routes", type=str, default=None,
                        help="Directory (or glob) holding handler modules")

    parser.add_argument("-c", "--config", type=str, default=None,
                        help="Path to server configuration yaml file")

    parser.add_argument("--conf", type=str, default=None,
                        help="Path to route list yaml file")

    parser.add_argument("-p", "--port", type=int, default=None,
                        help="Port to listen on")

    parser.add_argument("--host", type=str, default=None,
                        help="Interface to bind")

    parser.add_argument("--prod", action="store_true", default=None,
                        help="Cache handler modules and compiled templates")

    parser.add_argument(
        "-l", "--log_level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging output level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    return parser.parse_args(argv)


def build_options(args) -> dict:
    """Merge command line flags over the optional yaml configuration file."""
    options = {}
    if args.config:
        options = load_yaml_file(args.config)

    overrides = drop_none({
        "is_prod": args.prod,
        "routes": {
            "include": args.routes,
            "conf": args.conf,
        },
    })
    if isinstance(options.get("routes"), str) and "routes" in overrides:
        options["routes"] = {"include": options["routes"]}
    return deep_merge(options, overrides)


def main(argv=None):
    args = parse_args(argv)
    settings = get_settings()

    log_level = args.log_level or settings.log_level or LOG_LEVEL
    setup_logging(log_level)
    logger.info(f"Logging set to: {log_level}")

    try:
        options = build_options(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not read configuration: {e}")
        return 1

    server = create_server(options)
    host = args.host or settings.host
    port = args.port or settings.port
    server.listen(port, host, lambda: logger.warning(f"Listening on http://{host}:{port}"))
    return 0


if __name__ == '__main__':
    sys.exit(main())
