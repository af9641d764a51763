#!/usr/bin/env python3
"""
Source file helpers: path resolution, tail matching and lazy line matching.

Lazy patterns are shell-style globs applied to whole source lines with all
whitespace ignored, so ``"rq=*"`` matches ``"    rq = cpu_rq(cpu);"``.
"""

import fnmatch
import os
import re
import logging
from functools import lru_cache
from typing import Optional

from .exceptions import NotFoundError
from .line_set import LineSet

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


def tail_matches(path: Optional[str], tail: Optional[str]) -> bool:
    """Return True if either string is a suffix of the other."""
    if path is None or tail is None:
        return False
    return path.endswith(tail) or tail.endswith(path)


@lru_cache(maxsize=64)
def _compile_lazy_pattern(pattern: str):
    """Translate a whitespace-insensitive glob into a compiled regex.

    A backslash escapes the next character; fnmatch has no escape syntax, so
    escaped metacharacters become one-character classes.
    """
    pat = _WHITESPACE.sub("", pattern)
    pat = _ESCAPE.sub(lambda m: f"[{m.group(1)}]" if m.group(1) in '*?[' else m.group(1), pat)
    return re.compile(fnmatch.translate(pat))


def lazy_match(text: str, pattern: str) -> bool:
    """Glob-match a whole line against a pattern, ignoring whitespace in both."""
    return _compile_lazy_pattern(pattern).match(_WHITESPACE.sub("", text)) is not None


def find_lazy_match_lines(path: str, pattern: str) -> LineSet:
    """Scan a source file and collect the line numbers matching a lazy pattern.

    Args:
        path: Readable source file
        pattern: Lazy pattern

    Returns:
        LineSet of 1-based line numbers, empty when nothing matched

    Raises:
        NotFoundError: If the file cannot be read
    """
    lines = LineSet()
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for lineno, text in enumerate(f, 1):
                if lazy_match(text.rstrip('\n'), pattern):
                    lines.insert(lineno)
    except (IOError, OSError) as e:
        logger.warning(f"Failed to open {path}: {e}")
        raise NotFoundError(f"Failed to open {path}: {e}") from e

    if not lines:
        logger.debug(f"No matched lines found in {path}.")
    return lines


def get_real_path(raw_path: str, source_prefix: Optional[str] = None) -> str:
    """Find a readable source file for a path recorded in the debug information.

    Without a prefix the recorded path itself must be readable. With a prefix,
    ``prefix/raw_path`` is tried first, then leading directories of raw_path
    are chopped off one at a time until a readable file is found.

    Raises:
        NotFoundError: If no readable candidate exists
    """
    if not source_prefix:
        if os.access(raw_path, os.R_OK):
            return raw_path
        raise NotFoundError(f"Source file {raw_path} is not readable")

    prefix = source_prefix.rstrip('/')
    remaining = raw_path
    while True:
        candidate = f"{prefix}/{remaining.lstrip('/')}"
        if os.access(candidate, os.R_OK):
            return candidate

        slash = remaining.find('/', 1)
        if slash < 0:
            raise NotFoundError(
                f"Source file {raw_path} not found under {source_prefix}")
        remaining = remaining[slash:]
