"""Ordered, deduplicated set of source line numbers."""

import bisect
import logging
from typing import Iterator, List

logger = logging.getLogger(__name__)


class LineSet:
    """Ascending list of unique line numbers.

    Lines are usually discovered in ascending order, so insertion searches
    from the tail.
    """

    def __init__(self, lines=None):
        self._lines: List[int] = []
        for line in lines or ():
            self.insert(line)

    def insert(self, line: int) -> bool:
        """Insert a line number.

        Returns:
            True if the line was added, False if it was already present
        """
        if self._lines and self._lines[-1] < line:
            self._lines.append(line)
        else:
            idx = bisect.bisect_left(self._lines, line)
            if idx < len(self._lines) and self._lines[idx] == line:
                return False
            self._lines.insert(idx, line)
        logger.debug("line list: add a line %d", line)
        return True

    def contains(self, line: int) -> bool:
        """Check if the line is in the set."""
        idx = bisect.bisect_left(self._lines, line)
        return idx < len(self._lines) and self._lines[idx] == line

    def clear(self) -> None:
        """Remove every line."""
        self._lines.clear()

    def to_list(self) -> List[int]:
        """Return a copy of the lines in ascending order."""
        return list(self._lines)

    def __contains__(self, line) -> bool:
        return self.contains(line)

    def __iter__(self) -> Iterator[int]:
        return iter(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __bool__(self) -> bool:
        return bool(self._lines)

    def __eq__(self, other) -> bool:
        if isinstance(other, LineSet):
            return self._lines == other._lines
        return NotImplemented

    def __repr__(self) -> str:
        return f"LineSet({self._lines!r})"
