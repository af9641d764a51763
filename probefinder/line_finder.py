#!/usr/bin/env python3
"""
Line range finder.

Discovers which source lines within a function or an absolute line window
have code generated for them, i.e. where a probe could be placed.
"""

import logging
from typing import Optional

from elftools.common.exceptions import DWARFError, ELFError

from .config import ProbeFinderConfig
from .debuginfo import CompileUnitView, DebugInfoSession, die_own_name
from .exceptions import DebugInfoError, InvalidRequestError
from .models import MAX_LINE, LineRangeQuery, LineRangeResult
from .navigator import find_inline_instance
from .source_text import get_real_path, tail_matches

logger = logging.getLogger(__name__)


def _clamp_line(line: int) -> int:
    return line if 0 <= line <= MAX_LINE else MAX_LINE


class LineFinder:
    """Collects probeable lines for one LineRangeQuery."""

    def __init__(self, session, query: LineRangeQuery,
                 config: Optional[ProbeFinderConfig] = None):
        self.session = session
        self.query = query
        self.config = config or ProbeFinderConfig()
        self.result = LineRangeResult(function=query.function, start=query.start,
                                      end=query.end)
        self._fname: Optional[str] = None
        self._line_start = query.start
        self._line_end = query.end

    def find(self) -> LineRangeResult:
        """Search compilation units until one yields lines.

        Raises:
            InvalidRequestError: If neither a file nor a function was given
        """
        if not self.query.file and not self.query.function:
            logger.error("Semantic error: line range needs a file or a function")
            raise InvalidRequestError("Line range needs a file or a function")

        for unit in self.session.iter_units():
            if self.result.found:
                break
            if self.query.file:
                self._fname = unit.find_realpath(self.query.file)
                if self._fname is None:
                    continue
            else:
                self._fname = None

            if self.query.function:
                self._find_by_function(unit)
            else:
                self._line_start = self.query.start
                self._line_end = self.query.end
                self._find_by_line(unit, None)

        logger.debug(f"path: {self.result.path}")
        return self.result

    def _find_by_function(self, unit: CompileUnitView) -> None:
        for sp_die in unit.iter_functions():
            if die_own_name(sp_die) != self.query.function:
                continue

            self._fname = unit.decl_file(sp_die)
            decl_line = unit.decl_line(sp_die) or 0
            self.result.offset = decl_line
            logger.debug(f"fname: {self._fname}, lineno:{decl_line}")

            self._line_start = _clamp_line(decl_line + self.query.start)
            self._line_end = _clamp_line(decl_line + self.query.end)
            logger.debug(f"New line range: {self._line_start} to {self._line_end}")
            self.result.start = self._line_start
            self.result.end = self._line_end

            if unit.is_inline_function(sp_die):
                # No need to look at other instances
                for in_die in unit.iter_inline_instances(sp_die):
                    self._find_by_line(unit, in_die)
                    break
            else:
                self._find_by_line(unit, sp_die)
            return

    def _in_range(self, line: Optional[int]) -> bool:
        return line is not None and self._line_start <= line <= self._line_end

    def _add_line(self, src: str, line: int) -> None:
        if self.result.path is None:
            self.result.path = get_real_path(src, self.config.source_prefix)
        self.result.lines.insert(line)

    def _find_by_line(self, unit: CompileUnitView, scope_die) -> None:
        self.result.lines.clear()
        rows = unit.line_rows()
        if not rows:
            logger.warning("No source lines found in this CU.")

        for row in rows:
            if not self._in_range(row.line):
                continue
            if scope_die is not None:
                if not unit.has_pc(scope_die, row.address):
                    continue
                if find_inline_instance(unit, scope_die, row.address) is not None:
                    continue
            if not tail_matches(row.file, self._fname):
                continue
            self._add_line(row.file, row.line)

        # Line tables don't include function declarations
        if scope_die is not None:
            src = unit.decl_file(scope_die)
            line = unit.decl_line(scope_die)
            if src and self._in_range(line):
                self._add_line(src, line)
        else:
            self._find_function_decl_lines(unit)

        if self.result.lines:
            self.result.found = True

    def _find_function_decl_lines(self, unit: CompileUnitView) -> None:
        for sp_die in unit.iter_functions():
            src = unit.decl_file(sp_die)
            if not src or not tail_matches(src, self._fname):
                continue
            line = unit.decl_line(sp_die)
            if not self._in_range(line):
                continue
            self._add_line(src, line)


def find_line_range(source, query: LineRangeQuery,
                    config: Optional[ProbeFinderConfig] = None) -> LineRangeResult:
    """Find the probeable lines of a function or a file line window.

    Args:
        source: Path to the ELF file or an open binary stream
        query: Function or file plus start/end lines
        config: Finder configuration (source path prefix)

    Returns:
        LineRangeResult; found is False when no line matched
    """
    config = config or ProbeFinderConfig()
    with DebugInfoSession(source, config) as session:
        finder = LineFinder(session, query, config)
        try:
            return finder.find()
        except (ELFError, DWARFError) as e:
            logger.error(f"Failed to decode debug information of {session.display_name}: {e}")
            raise DebugInfoError(
                f"Failed to decode debug information of {session.display_name}: {e}") from e
