"""Probe subcommand - resolves a probe point into trace events."""

import json
import argparse
import logging

from . import add_common_options, config_from_args
from ..exceptions import ProbeFinderError
from ..probe_finder import find_trace_events
from ..request_parser import parse_probe_request
from ..trace_format import default_event_name, synthesize_trace_event

logger = logging.getLogger(__name__)


def add_probe_parser(subparsers) -> argparse.ArgumentParser:
    """
    Add 'probe' subcommand parser.

    Args:
        subparsers: Subparsers object from argparse

    Returns:
        The probe parser
    """
    parser = subparsers.add_parser(
        'probe',
        help='Find probe addresses and argument locations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  # Entry of a function, fetching two arguments
  probefinder probe vmlinux do_sys_open filename flags

  # Third line of a function, fetching a structure member
  probefinder probe vmlinux 'schedule:3' 'prev->pid'

  # Every line of a file matching a lazy pattern
  probefinder probe vmlinux 'fs/open.c;*file = get_empty_filp()'

  # kprobe_events definitions instead of JSON
  probefinder probe vmlinux do_sys_open mode --kprobe --group myprobes
        """
    )

    add_common_options(parser)
    parser.add_argument(
        'point',
        help='FUNC[@FILE][:RLINE|+OFFS|;PATTERN], FILE:LINE or FILE;PATTERN')
    parser.add_argument(
        'args', nargs='*',
        help='Arguments to fetch: [NAME=]VAR{->FIELD|.FIELD|[INDEX]}*[:TYPE]')
    parser.add_argument(
        '--max-probes',
        type=int,
        help='Maximum number of probe points (default: 128)')

    output_group = parser.add_argument_group('output options')
    output_group.add_argument(
        '--kprobe',
        action='store_true',
        help='Print kprobe_events definitions instead of JSON')
    output_group.add_argument(
        '--group',
        default='probe',
        help='Event group for --kprobe output (default: probe)')
    output_group.add_argument(
        '--event',
        help='Event name for --kprobe output (default: the probed symbol)')

    return parser


def run_probe(args) -> int:
    """
    Execute the probe subcommand.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    config = config_from_args(args)

    try:
        request = parse_probe_request(args.point, args.args)
        events = find_trace_events(args.elf_path, request, config=config)
    except ProbeFinderError as e:
        logger.error("Failed to find probe points: %s", e)
        return 1

    if not events:
        logger.warning("Probe point '%s' not found.", args.point)

    if args.kprobe:
        for index, event in enumerate(events):
            if args.event:
                name = args.event if index == 0 else f"{args.event}_{index}"
            else:
                name = default_event_name(event, index)
            print(synthesize_trace_event(event, name, args.group))
    else:
        print(json.dumps([event.to_dict() for event in events], indent=2))
    return 0
