#!/usr/bin/env python3
"""
Exception hierarchy for probe point resolution.

Every error raised by the finder derives from ProbeFinderError. Callers that
only need a pass/fail answer catch the base class.
"""


class ProbeFinderError(Exception):
    """Base exception for probe finder errors"""


class NotFoundError(ProbeFinderError):
    """Requested entity is absent (optimized out, no line, no function, no type)"""


class UnsupportedError(ProbeFinderError):
    """Recognized but unhandled encoding in the debug information"""


class InvalidRequestError(ProbeFinderError):
    """Request does not match the debug information (wrong syntax, missing member)"""


class OutOfRangeError(ProbeFinderError):
    """Value outside of a supported range"""


class ResourceExhaustedError(OutOfRangeError):
    """Output capacity reached"""


class RegisterMappingError(OutOfRangeError):
    """DWARF register number has no mapping on this architecture"""


class BackendUnavailableError(ProbeFinderError):
    """Debug information could not be opened"""


class DebugInfoError(ProbeFinderError):
    """Debug information is malformed and could not be decoded"""
