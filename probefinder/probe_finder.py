#!/usr/bin/env python3
"""
Probe point locator.

Resolves a ProbeRequest against every compilation unit of an ELF file and
collects one TraceEvent per resolved code address.
"""

import logging
from typing import List, Optional

from elftools.common.exceptions import DWARFError, ELFError

from .config import ProbeFinderConfig
from .debuginfo import CompileUnitView, DebugInfoSession, die_name, die_own_name
from .exceptions import (
    DebugInfoError,
    InvalidRequestError,
    NotFoundError,
    ProbeFinderError,
    ResourceExhaustedError,
)
from .line_set import LineSet
from .location_resolver import FrameBase, convert_variable
from .models import (
    ArgumentRequest,
    ByAbsoluteLine,
    ByFunction,
    ByLazyPattern,
    ProbeRequest,
    TraceArgument,
    TraceEvent,
)
from .navigator import (
    find_enclosing_subprogram,
    find_inline_instance,
    find_scope_variable,
    find_variable,
)
from .request_parser import is_c_varname
from .source_text import find_lazy_match_lines, get_real_path, tail_matches
from .trace_format import synthesize_argument_name

logger = logging.getLogger(__name__)


class ProbeFinder:
    """Collects trace events for one probe request.

    The finder keeps the per-request state: the events found so far, bounded
    by max_events, and the lines matching a lazy pattern, computed on first
    use and shared by every compilation unit.
    """

    def __init__(self, session, request: ProbeRequest, max_events: int,
                 config: Optional[ProbeFinderConfig] = None):
        """Initialize the finder.

        Args:
            session: Open DebugInfoSession (or any object providing iter_units)
            request: What to probe and which arguments to fetch
            max_events: Capacity of the output; exceeding it is an error
            config: Finder configuration (source path prefix)
        """
        self.session = session
        self.request = request
        self.max_events = max_events
        self.config = config or ProbeFinderConfig()
        self.events: List[TraceEvent] = []
        self._lazy_lines: Optional[LineSet] = None
        self._fname: Optional[str] = None

    def find(self) -> List[TraceEvent]:
        """Search every compilation unit.

        Each call starts from an empty event list, so repeating a search
        yields the same events.

        Returns:
            The trace events found, in discovery order

        Raises:
            ProbeFinderError: On the first fatal failure; events completed
                before it remain available in self.events
        """
        self.events = []
        point = self.request.point
        if isinstance(point, ByLazyPattern) and not point.file and not point.function:
            logger.error("Semantic error: lazy pattern needs a file or a function")
            raise InvalidRequestError("Lazy pattern needs a file or a function")

        for unit in self.session.iter_units():
            if point.file:
                self._fname = unit.find_realpath(point.file)
                if self._fname is None:
                    continue
            else:
                self._fname = None
            logger.debug(f"Searching compilation unit {unit.name}")

            if isinstance(point, ByFunction):
                self._find_by_function(unit, point.function)
            elif isinstance(point, ByLazyPattern):
                if point.function:
                    self._find_by_function(unit, point.function)
                else:
                    self._find_lazy(unit, None)
            elif isinstance(point, ByAbsoluteLine):
                self._find_by_line(unit, point.line)
            else:
                raise InvalidRequestError(f"Unknown probe point {point!r}")

        return self.events

    def _find_by_function(self, unit: CompileUnitView, function: str) -> None:
        point = self.request.point
        lazy = isinstance(point, ByLazyPattern)
        relative_line = getattr(point, 'relative_line', 0)
        offset = getattr(point, 'offset', 0)

        for sp_die in unit.iter_functions():
            if die_own_name(sp_die) != function:
                continue

            self._fname = unit.decl_file(sp_die)
            if relative_line:
                decl_line = unit.decl_line(sp_die)
                if decl_line is None:
                    raise NotFoundError(f"Failed to get the declared line of {function}")
                self._find_by_line(unit, decl_line + relative_line)
            elif not unit.is_inline_function(sp_die):
                if lazy:
                    self._find_lazy(unit, sp_die)
                else:
                    entry = self._entry_pc(unit, sp_die)
                    if offset and not unit.has_pc(sp_die, entry + offset):
                        logger.error(f"Offset 0x{offset:x} is beyond the end of {function}")
                        raise InvalidRequestError(f"Offset 0x{offset:x} is beyond the end of {function}")
                    self.convert_probe_point(unit, sp_die, entry + offset)
            else:
                for in_die in unit.iter_inline_instances(sp_die):
                    if lazy:
                        self._find_lazy(unit, in_die)
                    else:
                        address = self._entry_pc(unit, in_die) + offset
                        logger.debug(f"found inline addr: 0x{address:x}")
                        self.convert_probe_point(unit, in_die, address)
            # No same symbol in this CU
            return

    @staticmethod
    def _entry_pc(unit: CompileUnitView, die) -> int:
        entry = unit.entry_pc(die)
        if entry is None:
            logger.warning(f"Failed to get entry pc of {die_name(die)}.")
            raise NotFoundError(f"Failed to get entry pc of {die_name(die)}")
        return entry

    def _find_by_line(self, unit: CompileUnitView, lineno: int) -> None:
        """Probe every address of lineno in the current file.

        A row that fails with NotFoundError is skipped, since the same line
        may be inlined elsewhere; the error is raised only if no row produced
        an event.
        """
        seen = set()
        produced = False
        last_error: Optional[NotFoundError] = None

        for index, row in enumerate(unit.line_rows()):
            if row.line != lineno or not tail_matches(row.file, self._fname):
                continue
            if row.address in seen:
                continue
            seen.add(row.address)

            logger.debug(f"Probe line found: line[{index}]:{lineno} addr:0x{row.address:x}")
            try:
                self.convert_probe_point(unit, None, row.address)
                produced = True
            except NotFoundError as e:
                logger.debug(f"Skipping 0x{row.address:x}: {e}")
                last_error = e

        if not produced and last_error is not None:
            raise last_error

    def _lazy_match_lines(self) -> LineSet:
        if self._lazy_lines is None:
            path = get_real_path(self._fname, self.config.source_prefix)
            self._lazy_lines = find_lazy_match_lines(path, self.request.point.pattern)
        return self._lazy_lines

    def _find_lazy(self, unit: CompileUnitView, scope_die) -> None:
        if not self._fname:
            raise NotFoundError("No source file to match the lazy pattern against")

        lines = self._lazy_match_lines()
        if not lines:
            return

        seen = set()
        for index, row in enumerate(unit.line_rows()):
            if row.line not in lines or not tail_matches(row.file, self._fname):
                continue
            if row.address in seen:
                continue
            if scope_die is not None:
                if not unit.has_pc(scope_die, row.address):
                    continue
                # Leave addresses of nested inlined code to their own instance
                if find_inline_instance(unit, scope_die, row.address) is not None:
                    continue
            seen.add(row.address)

            logger.debug(f"Probe line found: line[{index}]:{row.line} addr:0x{row.address:x}")
            self.convert_probe_point(unit, scope_die, row.address)

    def convert_probe_point(self, unit: CompileUnitView, sp_die, address: int) -> TraceEvent:
        """Build the trace event for one address.

        Args:
            unit: Compilation unit containing the address
            sp_die: Subprogram or inlined instance being probed, or None
            address: Probe address

        Returns:
            The event, already appended to self.events

        Raises:
            ResourceExhaustedError: If max_events events were already found
        """
        if len(self.events) >= self.max_events:
            logger.warning(f"Too many( > {self.max_events}) probe point found.")
            raise ResourceExhaustedError(f"Too many (> {self.max_events}) probe points found")

        # If no real subprogram, find a real one
        if sp_die is None or sp_die.tag != 'DW_TAG_subprogram':
            sp_die = find_enclosing_subprogram(unit, address)
            if sp_die is None:
                logger.warning("Failed to find probe point in any functions.")
                raise NotFoundError(f"Failed to find 0x{address:x} in any functions")

        name = die_name(sp_die)
        if name:
            symbol = name
            offset = address - self._entry_pc(unit, sp_die)
        else:
            # This function has no name
            symbol = None
            offset = address
        logger.debug(f"Probe point found: {symbol}+{offset}")

        frame_base = FrameBase(unit, sp_die, address)
        args = [self._find_variable(unit, sp_die, arg, address, frame_base)
                for arg in self.request.args]

        event = TraceEvent(symbol=symbol, offset=offset, address=address, args=args)
        self.events.append(event)
        return event

    def _find_variable(self, unit: CompileUnitView, sp_die, arg: ArgumentRequest,
                       address: int, frame_base: FrameBase) -> TraceArgument:
        if arg.name:
            name = arg.name
        else:
            # Change type separator to _
            name = synthesize_argument_name(arg).replace(':', '_', 1)
        trace_arg = TraceArgument(name=name)

        if not is_c_varname(arg.var):
            # Copy raw parameters
            trace_arg.value = arg.var
            trace_arg.type = arg.type
            return trace_arg

        logger.debug(f"Searching '{arg.var}' variable in context.")
        var_die = find_variable(sp_die, arg.var)
        if var_die is None and sp_die.get_parent() is not None:
            # Search upper class
            var_die = find_scope_variable(sp_die.get_parent(), arg.var)
        if var_die is None:
            logger.warning(f"Failed to find '{arg.var}' in this function.")
            raise NotFoundError(f"Failed to find '{arg.var}' in this function")

        try:
            return convert_variable(unit, var_die, arg, address, frame_base, trace_arg)
        except ProbeFinderError:
            logger.warning(f"Failed to find '{arg.var}' in this function.")
            raise


def find_trace_events(source, request: ProbeRequest, max_events: Optional[int] = None,
                      config: Optional[ProbeFinderConfig] = None) -> List[TraceEvent]:
    """Resolve a probe request against the debug information of an ELF file.

    Args:
        source: Path to the ELF file or an open binary stream
        request: Probe point and arguments
        max_events: Output capacity, defaults to config.max_probes
        config: Finder configuration

    Returns:
        List of trace events; empty when the request matched nothing

    Raises:
        BackendUnavailableError: If the file has no usable debug information
        ProbeFinderError: If resolution fails
    """
    config = config or ProbeFinderConfig()
    capacity = max_events if max_events is not None else config.max_probes

    with DebugInfoSession(source, config) as session:
        finder = ProbeFinder(session, request, capacity, config)
        try:
            return finder.find()
        except (ELFError, DWARFError) as e:
            logger.error(f"Failed to decode debug information of {session.display_name}: {e}")
            raise DebugInfoError(
                f"Failed to decode debug information of {session.display_name}: {e}") from e
