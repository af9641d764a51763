"""Lines subcommand - lists probeable source lines."""

import json
import argparse
import logging

from . import add_common_options, config_from_args
from ..exceptions import ProbeFinderError
from ..line_finder import find_line_range
from ..request_parser import parse_line_range

logger = logging.getLogger(__name__)


def add_lines_parser(subparsers) -> argparse.ArgumentParser:
    """Add 'lines' subcommand parser."""
    parser = subparsers.add_parser(
        'lines',
        help='List source lines where probes can be placed',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  # Whole function
  probefinder lines vmlinux schedule

  # Ten lines starting at the fifth line of a function
  probefinder lines vmlinux 'schedule:5+10'

  # Absolute window of a file
  probefinder lines vmlinux 'kernel/sched.c:3500-3600'
        """
    )

    add_common_options(parser)
    parser.add_argument(
        'range',
        help='FUNC[@FILE][:START[-END|+COUNT]] or FILE:START[-END|+COUNT]')
    parser.add_argument(
        '--show-source',
        action='store_true',
        help='Print the source text of each line instead of JSON')

    return parser


def _print_source(result) -> None:
    with open(result.path, encoding='utf-8', errors='replace') as f:
        for lineno, text in enumerate(f, start=1):
            if lineno < result.start:
                continue
            if lineno > result.end:
                break
            marker = f"{lineno - result.offset:>7}" if lineno in result.lines else " " * 7
            print(f"{marker}  {text.rstrip()}")


def run_lines(args) -> int:
    """
    Execute the lines subcommand.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    config = config_from_args(args)

    try:
        query = parse_line_range(args.range)
        result = find_line_range(args.elf_path, query, config=config)
    except ProbeFinderError as e:
        logger.error("Failed to find line range: %s", e)
        return 1

    if not result.found:
        logger.warning("Source lines are not found for '%s'.", args.range)

    if args.show_source and result.found:
        try:
            _print_source(result)
        except OSError as e:
            logger.error("Failed to read %s: %s", result.path, e)
            return 1
    else:
        print(json.dumps(result.to_dict(), indent=2))
    return 0
