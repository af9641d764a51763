"""Reverse subcommand - maps a code address back to source."""

import json
import argparse
import logging

from . import add_common_options, config_from_args
from ..exceptions import ProbeFinderError
from ..reverse_lookup import find_probe_point

logger = logging.getLogger(__name__)


def _address(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid address: {text}") from e


def add_reverse_parser(subparsers) -> argparse.ArgumentParser:
    """Add 'reverse' subcommand parser."""
    parser = subparsers.add_parser(
        'reverse',
        help='Find the source line and function of an address',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  probefinder reverse vmlinux 0xffffffff81234560
        """
    )

    add_common_options(parser)
    parser.add_argument('address', type=_address, help='Code address (decimal or 0x hex)')

    return parser


def run_reverse(args) -> int:
    """
    Execute the reverse subcommand.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    config = config_from_args(args)

    try:
        result = find_probe_point(args.elf_path, args.address, config=config)
    except ProbeFinderError as e:
        logger.error("Failed to resolve address: %s", e)
        return 1

    if not result.found:
        logger.warning("No source position found for 0x%x.", args.address)
    print(json.dumps(result.to_dict(), indent=2))
    return 0
