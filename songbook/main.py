#!/usr/bin/env python3
"""Songbook application entry point.

This module provides a unified entry point for all interfaces:
- CLI: Command-line interface
- Web: RESTful HTTP API

Usage:
    python -m songbook.main                       # Default interface from config (web)
    python -m songbook.main cli list-songs        # Use CLI
    python -m songbook.main web [--port 8080]     # Start web server
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

INTERFACES = ("web", "cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the unified argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Songbook - catalog of songs with their recordings, sheet music and lyrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m songbook.main                          Start the default interface
  python -m songbook.main cli list-songs           List all songs via CLI
  python -m songbook.main cli upload 1 Recordings take.mp3 --album "Live Takes"
  python -m songbook.main web --port 8080          Start web server on port 8080
""",
    )

    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/songbook/)"
    )

    subparsers = parser.add_subparsers(dest="interface", help="Interface to use")

    from songbook.cli import add_cli_subparser
    add_cli_subparser(subparsers)

    from songbook.web import add_web_subparser
    add_web_subparser(subparsers)

    return parser


def get_default_interface(config_dir: Optional[Path]) -> str:
    """Get default interface from the config file.

    Args:
        config_dir: Custom configuration directory or None for default

    Returns:
        Interface name: "web" or "cli"
    """
    from songbook.core.config import Config
    config = Config(config_dir=config_dir)

    configured = config.get("default_interface")
    if configured in INTERFACES:
        return configured
    if configured:
        logger.warning(f"Ignoring unknown default_interface '{configured}'")
    return "web"


def _insert_interface(argv: List[str], interface: str) -> List[str]:
    """Insert an interface name after the global options of argv."""
    insert_pos = 0
    skip_next = False
    for i, arg in enumerate(argv):
        if skip_next:
            skip_next = False
            insert_pos = i + 1
            continue
        if arg in ("-d", "--config-dir"):
            skip_next = True
            insert_pos = i + 1
        elif arg.startswith("-"):
            insert_pos = i + 1
        else:
            break
    return argv[:insert_pos] + [interface] + argv[insert_pos:]


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Main entry point for Songbook.

    Parses arguments and dispatches to the appropriate interface.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = create_parser()
    args = parser.parse_args(argv)

    # If no interface specified, use default from config
    if not args.interface:
        default_interface = get_default_interface(args.config_dir)
        logger.info(f"No interface specified, using default: {default_interface}")
        args = parser.parse_args(_insert_interface(argv, default_interface))

    if args.interface == "cli":
        from songbook.cli import run as run_cli
        exit_code = run_cli(args.config_dir, args)
    elif args.interface == "web":
        from songbook.web import run as run_web
        exit_code = run_web(args.config_dir, args)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
