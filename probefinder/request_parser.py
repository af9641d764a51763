#!/usr/bin/env python3
"""
Parser for perf-probe style request syntax.

Probe point:  FUNC[@FILE][:RLINE|+OFFS|;PATTERN]  |  FILE:LINE  |  FILE;PATTERN
Argument:     [NAME=]VAR{->FIELD|.FIELD|[INDEX]}*[:TYPE]
Line range:   FUNC[@FILE][:START[-END|+COUNT]]  |  FILE:START[-END|+COUNT]
"""

import logging
import re
from typing import List, Optional, Tuple

from .exceptions import InvalidRequestError
from .models import (
    MAX_LINE,
    ArgumentRequest,
    ByAbsoluteLine,
    ByFunction,
    ByLazyPattern,
    DerefKind,
    FieldAccess,
    LineRangeQuery,
    ProbePoint,
    ProbeRequest,
)

logger = logging.getLogger(__name__)

_C_VARNAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_FIELD_TOKEN = re.compile(r'(->|\.)([A-Za-z_][A-Za-z0-9_]*)|\[(\d+)\]')
_POINT_SUFFIX = re.compile(r'^(?P<name>[^:+]+)(?:(?P<sep>[:+])(?P<num>\d+))?$')
_RANGE = re.compile(r'^(?P<start>\d+)(?:(?P<sep>[-+])(?P<end>\d*))?$')


def is_c_varname(name: str) -> bool:
    """Check whether name is a plain C identifier."""
    return bool(_C_VARNAME.match(name))


def _is_file_token(token: str) -> bool:
    return '.' in token or '/' in token


def _invalid(message: str) -> InvalidRequestError:
    logger.error(f"Semantic error: {message}")
    return InvalidRequestError(message)


def parse_probe_point(text: str) -> ProbePoint:
    """Parse a probe point specification.

    Raises:
        InvalidRequestError: If the syntax is malformed
    """
    text = text.strip()
    if not text:
        raise _invalid("Empty probe point")

    pattern = None
    if ';' in text:
        text, pattern = text.split(';', 1)
        if not pattern:
            raise _invalid("Empty lazy pattern")

    # The line or offset suffix trails the file in FUNC@FILE:N
    function = None
    if '@' in text:
        function, text = text.split('@', 1)
        if not function or _is_file_token(function):
            raise _invalid("'@' must follow a function name")

    match = _POINT_SUFFIX.match(text)
    if not match:
        raise _invalid(f"Failed to parse probe point '{text}'")
    name, sep, num = match.group('name'), match.group('sep'), match.group('num')

    file = None
    if function is not None:
        name, file = function, name

    if _is_file_token(name):
        if sep == '+':
            raise _invalid(f"Offset can't be used with file '{name}'")
        if pattern is not None:
            if sep:
                raise _invalid("Line number and lazy pattern can't be used together")
            return ByLazyPattern(pattern=pattern, file=name)
        if sep != ':':
            raise _invalid(f"File '{name}' needs a line number or a lazy pattern")
        return ByAbsoluteLine(file=name, line=int(num))

    if not is_c_varname(name):
        raise _invalid(f"'{name}' is not a valid function name")
    if pattern is not None:
        if sep:
            raise _invalid("Line number or offset can't be used with a lazy pattern")
        return ByLazyPattern(pattern=pattern, file=file, function=name)
    if sep == ':':
        return ByFunction(function=name, relative_line=int(num), file=file)
    if sep == '+':
        return ByFunction(function=name, offset=int(num), file=file)
    return ByFunction(function=name, file=file)


def _parse_fields(text: str) -> Optional[FieldAccess]:
    steps = []
    pos = 0
    while pos < len(text):
        match = _FIELD_TOKEN.match(text, pos)
        if not match:
            raise _invalid(f"Failed to parse field access '{text[pos:]}'")
        if match.group(3) is not None:
            steps.append(FieldAccess.subscript(int(match.group(3))))
        else:
            kind = DerefKind.POINTER if match.group(1) == '->' else DerefKind.MEMBER
            steps.append(FieldAccess(name=match.group(2), kind=kind))
        pos = match.end()
    return FieldAccess.chain(*steps)


def parse_argument(text: str) -> ArgumentRequest:
    """Parse one argument specification.

    A variable that is not a C identifier (a register such as '%ax' or a raw
    fetch-arg such as '+8(%sp)') is kept verbatim.
    """
    text = text.strip()
    name = None
    if '=' in text:
        name, text = text.split('=', 1)
        if not name:
            raise _invalid("Empty argument name")

    arg_type = None
    if ':' in text:
        text, arg_type = text.split(':', 1)
        if not arg_type:
            raise _invalid("Empty argument type")
    if not text:
        raise _invalid("Empty argument")

    match = re.match(r'[A-Za-z_][A-Za-z0-9_]*', text)
    if match is None or match.end() == len(text) or text[match.end()] not in '-.[':
        return ArgumentRequest(var=text, name=name, type=arg_type)

    var = match.group(0)
    return ArgumentRequest(var=var, name=name, type=arg_type,
                           field=_parse_fields(text[match.end():]))


def parse_probe_request(point: str, args: Optional[List[str]] = None) -> ProbeRequest:
    """Parse a probe point and its arguments."""
    return ProbeRequest(point=parse_probe_point(point),
                        args=[parse_argument(a) for a in args or []])


def _parse_range(text: str) -> Tuple[int, int]:
    match = _RANGE.match(text)
    if not match:
        raise _invalid(f"Failed to parse line range '{text}'")
    start = int(match.group('start'))
    sep, end_text = match.group('sep'), match.group('end')
    if sep is None or not end_text:
        end = MAX_LINE
    elif sep == '+':
        end = start + int(end_text) - 1
    else:
        end = int(end_text)
    if start > end:
        raise _invalid("Start line must be smaller than end line")
    return start, end


def parse_line_range(text: str) -> LineRangeQuery:
    """Parse a line range specification.

    Raises:
        InvalidRequestError: If the syntax is malformed
    """
    text = text.strip()
    start, end = 0, MAX_LINE
    if ':' in text:
        text, range_text = text.split(':', 1)
        start, end = _parse_range(range_text)

    file = None
    if '@' in text:
        text, file = text.split('@', 1)
        if not file:
            raise _invalid("Empty file name after '@'")

    if not text:
        raise _invalid("Empty line range target")
    if _is_file_token(text):
        if file is not None:
            raise _invalid("'@' must follow a function name")
        return LineRangeQuery(file=text, start=start, end=end)
    if not is_c_varname(text):
        raise _invalid(f"'{text}' is not a valid function name")
    return LineRangeQuery(function=text, file=file, start=start, end=end)
