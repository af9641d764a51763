#!/usr/bin/env python3
"""Tests for the probefinder command line tool."""

import io
import json
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from probefinder.cli import build_parser, main
from probefinder.exceptions import BackendUnavailableError
from probefinder.models import LineRangeResult, ReverseLookupResult, TraceArgument, TraceEvent


def _run(argv):
    out = io.StringIO()
    with redirect_stdout(out):
        code = main(argv)
    return code, out.getvalue()


class TestProbeCommand(unittest.TestCase):
    """probefinder probe"""

    def setUp(self):
        self.events = [
            TraceEvent('foo', 0, 0x1100, [TraceArgument('ctx', '%di', (8,), 'u32')]),
            TraceEvent('foo', 16, 0x1110),
        ]

    @patch('probefinder.commands.probe.find_trace_events')
    def test_json_output(self, mock_find):
        mock_find.return_value = self.events

        code, out = _run(['probe', 'vmlinux', 'foo', 'ctx->flags'])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)[0]['args'][0]['refs'], [8])
        request = mock_find.call_args[0][1]
        self.assertEqual(request.point.function, 'foo')
        self.assertEqual(request.args[0].var, 'ctx')

    @patch('probefinder.commands.probe.find_trace_events')
    def test_kprobe_output(self, mock_find):
        mock_find.return_value = self.events

        code, out = _run(['probe', 'vmlinux', 'foo', '--kprobe', '--event', 'ev'])

        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), [
            'p:probe/ev foo+0 ctx=+8(%di):u32',
            'p:probe/ev_1 foo+16',
        ])

    @patch('probefinder.commands.probe.find_trace_events')
    def test_max_probes_flag(self, mock_find):
        mock_find.return_value = []

        _run(['probe', 'vmlinux', 'foo', '--max-probes', '4', '--source-prefix', '/src'])

        config = mock_find.call_args[1]['config']
        self.assertEqual((config.max_probes, config.source_prefix), (4, '/src'))

    def test_invalid_point(self):
        code, out = _run(['probe', 'vmlinux', 'a.c+4'])

        self.assertEqual(code, 1)
        self.assertEqual(out, '')

    @patch('probefinder.commands.probe.find_trace_events')
    def test_backend_error(self, mock_find):
        mock_find.side_effect = BackendUnavailableError("No dwarf info found")

        code, _ = _run(['probe', 'vmlinux', 'foo'])

        self.assertEqual(code, 1)


class TestOtherCommands(unittest.TestCase):
    """probefinder lines and reverse"""

    @patch('probefinder.commands.lines.find_line_range')
    def test_lines(self, mock_find):
        mock_find.return_value = LineRangeResult(function='foo', found=True)

        code, out = _run(['lines', 'vmlinux', 'foo:1-3'])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)['function'], 'foo')
        query = mock_find.call_args[0][1]
        self.assertEqual((query.function, query.start, query.end), ('foo', 1, 3))

    @patch('probefinder.commands.reverse.find_probe_point')
    def test_reverse(self, mock_find):
        mock_find.return_value = ReverseLookupResult(function='foo', offset=4)

        code, out = _run(['reverse', 'vmlinux', '0x1104'])

        self.assertEqual(code, 0)
        self.assertEqual(mock_find.call_args[0][1], 0x1104)
        self.assertEqual(json.loads(out)['offset'], 4)

    def test_reverse_rejects_bad_address(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args(['reverse', 'vmlinux', 'nowhere'])

    def test_command_required(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])


if __name__ == '__main__':
    unittest.main()
