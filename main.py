#!/usr/bin/env python3
"""
GeoShare - share your location with XMPP contacts

Main entry point for the application.
"""

import sys
import os
import argparse
import asyncio


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='GeoShare - share your location with XMPP contacts'
    )
    parser.add_argument(
        '--config',
        help='Config file (default: geoshare.yaml in the profile config dir)'
    )
    parser.add_argument(
        '--profile',
        default='default',
        help='Profile name (default: default)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Log level (default: from config, else INFO)'
    )
    paths_group = parser.add_mutually_exclusive_group()
    paths_group.add_argument(
        '--xdg',
        action='store_true',
        help='Use XDG Base Directory paths (~/.config, ~/.local/share)'
    )
    paths_group.add_argument(
        '--dot-data-dir',
        action='store_true',
        help='Use ~/.geoshare directory for all data'
    )
    parser.add_argument(
        '--discover-only',
        action='store_true',
        help='Only run XEP-0156 endpoint discovery for the account domain and exit'
    )
    return parser.parse_args(argv)


async def run(config, discover_only: bool = False) -> int:
    from geoloc_xmpp.host_meta import discover_endpoint, guess_websocket_endpoint
    from geoshare.console import run_console
    from geoshare.core import ConsoleView, GeoShareController

    if discover_only:
        domain = config.xmpp.domain
        endpoint = await discover_endpoint(domain)
        if endpoint:
            print(f"{domain}: {endpoint.url} ({endpoint.scheme.value})")
            return 0
        guess = guess_websocket_endpoint(domain)
        print(f"{domain}: no endpoint advertised" + (f", try {guess.url}" if guess else ""))
        return 1

    view = ConsoleView()
    controller = GeoShareController(config, view=view)
    await controller.connect()
    await run_console(controller, view)
    return 0


def main(argv=None):
    """Main application entry point."""
    args = parse_args(argv)

    # Path mode must be set before anything asks for paths
    if args.dot_data_dir:
        os.environ['GEOSHARE_PATH_MODE'] = 'dot'
    elif args.xdg:
        os.environ['GEOSHARE_PATH_MODE'] = 'xdg'

    from geoshare.core.config import ConfigError, load_config
    from geoshare.utils import cleanup_old_logs, get_paths, setup_main_logger, setup_xml_logger
    from geoshare.version import SUPPORTED_XEPS, get_version_string

    paths = get_paths(args.profile)
    config_path = args.config or paths.config_path

    try:
        config = load_config(config_path)
    except ConfigError as e:
        # Can't log yet, just print to console
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    log_config = config.logging
    log_level = args.log_level or log_config.level
    log_path = None
    if log_config.file_enabled:
        log_path = log_config.file_path or paths.main_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
    logger = setup_main_logger(log_level, console=log_config.console, log_path=log_path)

    logger.info("=" * 60)
    logger.info(f"{get_version_string()} starting...")
    logger.info(f"XEPs: {', '.join(number for number, _ in SUPPORTED_XEPS)}")
    logger.info("=" * 60)
    logger.info(f"Profile: {args.profile}")
    logger.info(f"Config: {config_path}")
    logger.info(f"Account: {config.xmpp.jid}")

    if log_config.xml_enabled:
        xml_log_path = log_config.xml_path or paths.xml_log_path()
        xml_log_path.parent.mkdir(parents=True, exist_ok=True)
        setup_xml_logger(xml_log_path)
        logger.debug(f"XML protocol logging enabled: {xml_log_path}")

    cleanup_old_logs(log_config.retention_days, paths.log_dir)

    try:
        return asyncio.run(run(config, discover_only=args.discover_only))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
