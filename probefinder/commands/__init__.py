"""Subcommands of the probefinder command line tool."""

import argparse

from ..config import ProbeFinderConfig


def add_common_options(parser: argparse.ArgumentParser) -> None:
    """Options shared by every subcommand that opens an ELF file."""
    parser.add_argument('elf_path', help='Path to ELF file with DWARF debug information')
    parser.add_argument(
        '--source-prefix',
        metavar='DIR',
        help='Directory prepended to source paths recorded in the debug information',
    )
    parser.add_argument(
        '--arch',
        help='Architecture used for register names (default: from the ELF header)',
    )


def config_from_args(args) -> ProbeFinderConfig:
    """Environment configuration overridden by command line flags."""
    config = ProbeFinderConfig.from_env()
    if getattr(args, 'source_prefix', None):
        config.source_prefix = args.source_prefix
    if getattr(args, 'arch', None):
        config.architecture = args.arch
    if getattr(args, 'max_probes', None) is not None:
        config.max_probes = args.max_probes
    return config
