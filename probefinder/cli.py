#!/usr/bin/env python3
"""Command line entry point for probefinder."""

import sys
import argparse
import logging

from .commands.probe import add_probe_parser, run_probe
from .commands.lines import add_lines_parser, run_lines
from .commands.reverse import add_reverse_parser, run_reverse

logger = logging.getLogger(__name__)

COMMANDS = {
    'probe': run_probe,
    'lines': run_lines,
    'reverse': run_reverse,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the top level parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog='probefinder',
        description='Resolve source level probe requests against DWARF debug information',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug output',
    )

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True
    add_probe_parser(subparsers)
    add_lines_parser(subparsers)
    add_reverse_parser(subparsers)
    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
