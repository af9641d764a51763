#!/usr/bin/env python3
"""End to end tests against a binary compiled by gcc.

These tests need gcc and an x86-64 host; they are skipped otherwise.
"""

import os
import platform
import shutil
import subprocess
import tempfile
import unittest

from probefinder.exceptions import BackendUnavailableError
from probefinder.line_finder import find_line_range
from probefinder.models import ByAbsoluteLine, ByLazyPattern, LineRangeQuery, ProbeRequest
from probefinder.probe_finder import find_trace_events
from probefinder.request_parser import parse_argument, parse_probe_request
from probefinder.reverse_lookup import find_probe_point

SOURCE = """\
struct point {
    int x;
    int y;
};

int add_values(int a, int b)
{
    int sum = a + b;
    return sum;
}

int point_y(struct point *p)
{
    return p->y;
}

int main(void)
{
    struct point pt = { 1, 2 };
    return add_values(pt.x, point_y(&pt));
}
"""


class TestGccBinary(unittest.TestCase):
    """Probe resolution over real gcc output"""

    @classmethod
    def setUpClass(cls):
        """Compile the target with and without debug information"""
        if shutil.which('gcc') is None:
            raise unittest.SkipTest("gcc not found")
        if platform.machine() not in ('x86_64', 'AMD64'):
            raise unittest.SkipTest(f"x86-64 host required, got {platform.machine()}")

        cls.workdir = tempfile.mkdtemp()
        cls.source = os.path.join(cls.workdir, 'probe_target.c')
        with open(cls.source, 'w', encoding='utf-8') as f:
            f.write(SOURCE)
        cls.binary = os.path.join(cls.workdir, 'probe_target')
        cls.stripped = os.path.join(cls.workdir, 'probe_target_nodebug')
        subprocess.run(['gcc', '-g', '-O0', '-fno-inline', '-o', cls.binary, cls.source],
                       check=True, capture_output=True)
        subprocess.run(['gcc', '-O0', '-o', cls.stripped, cls.source],
                       check=True, capture_output=True)

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.workdir, ignore_errors=True)

    def test_function_entry_arguments(self):
        events = find_trace_events(self.binary, parse_probe_request('add_values', ['a', 'b']))

        self.assertEqual(len(events), 1)
        self.assertEqual((events[0].symbol, events[0].offset), ('add_values', 0))
        for arg in events[0].args:
            self.assertEqual(arg.value, '%sp')
            self.assertEqual(len(arg.refs), 1)
            self.assertEqual(arg.type, 's32')

    def test_pointer_member(self):
        events = find_trace_events(self.binary, parse_probe_request('point_y', ['p->y']))

        arg = events[0].args[0]
        self.assertEqual(arg.value, '%sp')
        self.assertEqual(len(arg.refs), 2)
        self.assertEqual(arg.refs[-1], 4)
        self.assertEqual(arg.type, 's32')

    def test_absolute_line(self):
        events = find_trace_events(self.binary,
                                   ProbeRequest(ByAbsoluteLine('probe_target.c', 8)))

        self.assertTrue(events)
        self.assertTrue(all(e.symbol == 'add_values' for e in events))
        self.assertTrue(all(e.offset > 0 for e in events))

    def test_lazy_pattern(self):
        request = ProbeRequest(ByLazyPattern('int sum = a+b;', file='probe_target.c'),
                               [parse_argument('sum')])
        events = find_trace_events(self.binary, request)

        self.assertTrue(events)
        self.assertEqual(events[0].symbol, 'add_values')
        self.assertEqual(events[0].args[0].type, 's32')

    def test_line_range(self):
        result = find_line_range(self.binary, LineRangeQuery(function='add_values'))

        self.assertTrue(result.found)
        self.assertEqual(result.offset, 6)
        self.assertIn(6, result.lines)
        self.assertIn(8, result.lines)
        self.assertNotIn(14, result.lines)
        self.assertEqual(os.path.basename(result.path), 'probe_target.c')

    def test_reverse_lookup_of_entry(self):
        events = find_trace_events(self.binary, parse_probe_request('point_y'))

        result = find_probe_point(self.binary, events[0].address)

        self.assertEqual(result.function, 'point_y')
        self.assertEqual(result.relative_line, 0)
        self.assertTrue(result.file.endswith('probe_target.c'))

    def test_binary_without_debug_info(self):
        with self.assertRaises(BackendUnavailableError):
            find_trace_events(self.stripped, parse_probe_request('add_values'))

    def test_missing_binary(self):
        with self.assertRaises(BackendUnavailableError):
            find_trace_events(os.path.join(self.workdir, 'nope'), parse_probe_request('main'))


if __name__ == '__main__':
    unittest.main()
