#!/usr/bin/env python3
"""
Reverse address resolution: code address to source line and function.
"""

import logging
from typing import Optional

from elftools.common.exceptions import DWARFError, ELFError

from .config import ProbeFinderConfig
from .debuginfo import DebugInfoSession, die_name
from .exceptions import DebugInfoError, InvalidRequestError
from .models import ReverseLookupResult
from .navigator import find_enclosing_subprogram, find_inline_instance

logger = logging.getLogger(__name__)


def resolve_address(session, address: int) -> ReverseLookupResult:
    """Map an address to its source line and enclosing function.

    The line is reported only when address is exactly a line table boundary.
    With a line, the function position is a line relative to the declaration
    of the outermost inlined instance (or of the function); without one it
    is a byte offset from the function entry.

    Args:
        session: Open DebugInfoSession
        address: Code address

    Returns:
        ReverseLookupResult; found is False if neither lookup succeeded

    Raises:
        InvalidRequestError: If no compilation unit covers the address
    """
    unit = session.unit_for_address(address)
    if unit is None:
        logger.warning(f"No compilation unit covers 0x{address:x}")
        raise InvalidRequestError(f"No compilation unit covers 0x{address:x}")

    result = ReverseLookupResult()

    row = unit.find_line_at(address)
    if row is not None and row.file:
        result.file = row.file
        result.line = row.line

    sp_die = find_enclosing_subprogram(unit, address)
    if sp_die is None:
        return result

    function = die_name(sp_die)
    entry = unit.entry_pc(sp_die)
    if not function or entry is None:
        return result

    if result.line is not None:
        decl_line: Optional[int]
        in_die = find_inline_instance(unit, sp_die, address)
        if in_die is not None:
            # Address in an inline function
            function = die_name(in_die)
            if not function:
                return result
            decl_line = unit.decl_line(in_die)
        elif entry == address:
            decl_line = result.line
        else:
            decl_line = unit.decl_line(sp_die)

        if decl_line is not None:
            result.function = function
            result.relative_line = result.line - decl_line
            return result

    # No line number, use the offset instead
    result.function = function
    result.offset = address - entry
    return result


def find_probe_point(source, address: int,
                     config: Optional[ProbeFinderConfig] = None) -> ReverseLookupResult:
    """Open an ELF file and resolve an address to a source position.

    Args:
        source: Path to the ELF file or an open binary stream
        address: Code address
        config: Finder configuration

    Returns:
        ReverseLookupResult
    """
    with DebugInfoSession(source, config) as session:
        try:
            return resolve_address(session, address)
        except (ELFError, DWARFError) as e:
            logger.error(f"Failed to decode debug information of {session.display_name}: {e}")
            raise DebugInfoError(
                f"Failed to decode debug information of {session.display_name}: {e}") from e
