#!/usr/bin/env python3
"""
Data structures for probe requests and the trace descriptors they resolve to.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .line_set import LineSet

# Line numbers are signed 32-bit in the line tables we consume
MAX_LINE = 0x7FFFFFFF


class DerefKind(Enum):
    """How a field is reached from the value before it"""
    MEMBER = "."
    POINTER = "->"
    SUBSCRIPT = "[]"


@dataclass
class FieldAccess:
    """One step of a field access chain (``.name``, ``->name`` or ``[index]``)"""
    name: str
    kind: DerefKind = DerefKind.MEMBER
    index: int = 0
    next: Optional['FieldAccess'] = None

    @property
    def is_subscript(self) -> bool:
        """True for ``[i]`` steps"""
        return self.name.startswith('[')

    @property
    def is_pointer_access(self) -> bool:
        """True when the step was written with ``->``"""
        return self.kind is DerefKind.POINTER

    @classmethod
    def subscript(cls, index: int) -> 'FieldAccess':
        """Build an ``[index]`` step"""
        return cls(name=f"[{index}]", kind=DerefKind.SUBSCRIPT, index=index)

    @classmethod
    def chain(cls, *steps: 'FieldAccess') -> Optional['FieldAccess']:
        """Link steps in order and return the head"""
        head = None
        for step in reversed(steps):
            step.next = head
            head = step
        return head

    def __iter__(self):
        node = self
        while node is not None:
            yield node
            node = node.next


@dataclass
class ArgumentRequest:
    """A requested variable, optionally with a field chain and explicit type"""
    var: str
    name: Optional[str] = None
    type: Optional[str] = None
    field: Optional[FieldAccess] = None


@dataclass
class ByFunction:
    """Probe a function entry, a byte offset into it or a line relative to it"""
    function: str
    relative_line: int = 0
    offset: int = 0
    file: Optional[str] = None


@dataclass
class ByAbsoluteLine:
    """Probe every address generated for ``file:line``"""
    file: str
    line: int


@dataclass
class ByLazyPattern:
    """Probe every line whose text matches a lazy pattern"""
    pattern: str
    file: Optional[str] = None
    function: Optional[str] = None


ProbePoint = Union[ByFunction, ByAbsoluteLine, ByLazyPattern]


@dataclass
class ProbeRequest:
    """A probe point plus the arguments to fetch there"""
    point: ProbePoint
    args: List[ArgumentRequest] = field(default_factory=list)


@dataclass(frozen=True)
class GlobalSymbol:
    """Variable lives at a fixed symbol address"""
    name: str


@dataclass(frozen=True)
class Register:
    """Variable value is held in a register"""
    regno: int


@dataclass(frozen=True)
class RegisterPlusOffset:
    """Variable lives in memory at register + offset"""
    regno: int
    offset: int


@dataclass(frozen=True)
class FrameRelative:
    """Variable lives in memory at frame base + offset"""
    offset: int


ResolvedLocation = Union[GlobalSymbol, Register, RegisterPlusOffset, FrameRelative]

# Offsets of successive memory indirections, innermost first
ReferenceChain = Tuple[int, ...]


@dataclass
class TraceArgument:
    """Where and how to fetch one argument at the probe address"""
    name: str
    value: str = ""
    refs: ReferenceChain = ()
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization"""
        return {
            'name': self.name,
            'value': self.value,
            'refs': list(self.refs),
            'type': self.type,
        }


@dataclass
class TraceEvent:
    """A resolved probe address and the arguments to fetch there"""
    symbol: Optional[str]
    offset: int
    address: int
    args: List[TraceArgument] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization"""
        return {
            'symbol': self.symbol,
            'offset': self.offset,
            'address': self.address,
            'args': [arg.to_dict() for arg in self.args],
        }


@dataclass
class LineRangeQuery:
    """Lines to look for, absolute or relative to a function's declaration"""
    file: Optional[str] = None
    function: Optional[str] = None
    start: int = 0
    end: int = MAX_LINE


@dataclass
class LineRangeResult:  # pylint: disable=too-many-instance-attributes
    """Probeable lines discovered for a LineRangeQuery"""
    function: Optional[str] = None
    path: Optional[str] = None
    start: int = 0
    end: int = MAX_LINE
    offset: int = 0
    lines: LineSet = field(default_factory=LineSet)
    found: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization"""
        return {
            'function': self.function,
            'path': self.path,
            'start': self.start,
            'end': self.end,
            'offset': self.offset,
            'lines': self.lines.to_list(),
            'found': self.found,
        }


@dataclass
class ReverseLookupResult:
    """Source position of a code address"""
    file: Optional[str] = None
    line: Optional[int] = None
    function: Optional[str] = None
    relative_line: Optional[int] = None
    offset: Optional[int] = None

    @property
    def found(self) -> bool:
        """True if either the line or the function was resolved"""
        return self.line is not None or self.function is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization"""
        return {
            'file': self.file,
            'line': self.line,
            'function': self.function,
            'relative_line': self.relative_line,
            'offset': self.offset,
            'found': self.found,
        }
