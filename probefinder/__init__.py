#!/usr/bin/env python3
"""
DWARF probe point finder.

This package resolves source level probe requests (functions, file lines and
lazy line patterns) against the DWARF debug information of an ELF file and
produces kprobe trace event descriptors, probeable line ranges and reverse
address lookups.
"""

from .config import ProbeFinderConfig
from .exceptions import ProbeFinderError
from .line_finder import find_line_range
from .probe_finder import find_trace_events
from .reverse_lookup import find_probe_point
