#!/usr/bin/env python3
"""Tests for configuration and register naming."""

import os
import unittest
from unittest.mock import patch

from probefinder.config import DEFAULT_MAX_PROBES, ProbeFinderConfig
from probefinder.registers import (
    Architecture,
    architecture_from_machine,
    architecture_from_name,
    register_name,
)


class TestProbeFinderConfig(unittest.TestCase):
    """Environment driven configuration"""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ProbeFinderConfig.from_env()

        self.assertEqual(config, ProbeFinderConfig())
        self.assertEqual(config.max_probes, DEFAULT_MAX_PROBES)

    def test_environment(self):
        env = {
            'PROBEFINDER_SOURCE_PREFIX': '/usr/src/linux',
            'PROBEFINDER_MAX_PROBES': '8',
            'PROBEFINDER_ARCH': 'aarch64',
        }
        with patch.dict(os.environ, env, clear=True):
            config = ProbeFinderConfig.from_env()

        self.assertEqual(config.source_prefix, '/usr/src/linux')
        self.assertEqual(config.max_probes, 8)
        self.assertEqual(config.architecture, 'aarch64')

    def test_invalid_max_probes_is_ignored(self):
        with patch.dict(os.environ, {'PROBEFINDER_MAX_PROBES': 'lots'}, clear=True):
            with self.assertLogs('probefinder.config', level='WARNING'):
                config = ProbeFinderConfig.from_env()

        self.assertEqual(config.max_probes, DEFAULT_MAX_PROBES)


class TestRegisters(unittest.TestCase):
    """DWARF register number mapping"""

    def test_x86_64(self):
        self.assertEqual(register_name(Architecture.X86_64, 0), '%ax')
        self.assertEqual(register_name(Architecture.X86_64, 5), '%di')
        self.assertEqual(register_name(Architecture.X86_64, 7), '%sp')
        self.assertIsNone(register_name(Architecture.X86_64, 16))
        self.assertIsNone(register_name(Architecture.X86_64, -1))

    def test_unknown_architecture(self):
        self.assertIsNone(register_name(Architecture.UNKNOWN, 0))

    def test_machine_and_alias(self):
        self.assertIs(architecture_from_machine('EM_X86_64'), Architecture.X86_64)
        self.assertIs(architecture_from_machine('EM_SPARC'), Architecture.UNKNOWN)
        self.assertIs(architecture_from_name('ARM64'), Architecture.AARCH64)
        with self.assertLogs('probefinder.registers', level='WARNING'):
            self.assertIs(architecture_from_name('vax'), Architecture.UNKNOWN)


if __name__ == '__main__':
    unittest.main()
