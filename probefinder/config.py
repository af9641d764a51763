"""Configuration for probe finding."""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Default number of trace events a single request may produce
DEFAULT_MAX_PROBES = 128


@dataclass
class ProbeFinderConfig:
    """Settings shared by the finder entry points.

    Attributes:
        source_prefix: Directory prepended to source paths recorded in the
            debug information when reading source files
        max_probes: Output capacity used when the caller does not give one
        architecture: Architecture name overriding the ELF machine type for
            register naming (e.g. 'x86_64', 'aarch64')
    """
    source_prefix: Optional[str] = None
    max_probes: int = DEFAULT_MAX_PROBES
    architecture: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'ProbeFinderConfig':
        """Build a configuration from PROBEFINDER_* environment variables."""
        max_probes = DEFAULT_MAX_PROBES
        raw_max = os.environ.get('PROBEFINDER_MAX_PROBES')
        if raw_max:
            try:
                max_probes = int(raw_max)
            except ValueError:
                logger.warning("Ignoring invalid PROBEFINDER_MAX_PROBES value: %s", raw_max)

        return cls(
            source_prefix=os.environ.get('PROBEFINDER_SOURCE_PREFIX') or None,
            max_probes=max_probes,
            architecture=os.environ.get('PROBEFINDER_ARCH') or None,
        )
