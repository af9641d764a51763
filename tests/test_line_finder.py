#!/usr/bin/env python3
"""Tests for probeable line discovery."""

import os
import shutil
import tempfile
import unittest

from probefinder.config import ProbeFinderConfig
from probefinder.exceptions import InvalidRequestError, NotFoundError
from probefinder.line_finder import LineFinder
from probefinder.models import MAX_LINE, LineRangeQuery

from dwarf_fakes import SampleProgram


class TestLineFinder(unittest.TestCase):
    """Function relative and absolute line ranges"""

    def setUp(self):
        self.prog = SampleProgram()
        self.src_dir = tempfile.mkdtemp()
        for name in ('main.c', 'util.h'):
            with open(os.path.join(self.src_dir, name), 'w', encoding='utf-8') as f:
                f.write("\n" * 50)
        self.config = ProbeFinderConfig(source_prefix=self.src_dir)

    def tearDown(self):
        shutil.rmtree(self.src_dir, ignore_errors=True)

    def find(self, query):
        return LineFinder(self.prog.session, query, self.config).find()

    def test_whole_function(self):
        result = self.find(LineRangeQuery(function='foo'))

        self.assertTrue(result.found)
        self.assertEqual(result.lines.to_list(), [10, 11, 12, 13])
        self.assertEqual(result.offset, 10)
        self.assertEqual(result.start, 10)
        self.assertEqual(result.path, os.path.join(self.src_dir, 'main.c'))

    def test_end_offset_overflow_is_clamped(self):
        result = self.find(LineRangeQuery(function='foo', start=1, end=MAX_LINE))

        self.assertEqual(result.start, 11)
        self.assertEqual(result.end, MAX_LINE)
        self.assertEqual(result.lines.to_list(), [11, 12, 13])

    def test_function_window(self):
        result = self.find(LineRangeQuery(function='foo', start=1, end=2))

        self.assertEqual(result.lines.to_list(), [11, 12])
        self.assertEqual((result.start, result.end), (11, 12))

    def test_nested_inline_lines_are_excluded(self):
        result = self.find(LineRangeQuery(function='bar'))

        self.assertEqual(result.lines.to_list(), [30, 31, 32])

    def test_inline_function_uses_first_instance(self):
        result = self.find(LineRangeQuery(function='helper'))

        self.assertEqual(result.lines.to_list(), [5, 6, 7])
        self.assertEqual(result.path, os.path.join(self.src_dir, 'util.h'))

    def test_absolute_range_adds_declarations(self):
        result = self.find(LineRangeQuery(file='main.c', start=30, end=41))

        self.assertEqual(result.lines.to_list(), [30, 31, 32, 40, 41])
        self.assertIsNone(result.function)

    def test_empty_range_is_not_an_error(self):
        result = self.find(LineRangeQuery(file='main.c', start=100, end=200))

        self.assertFalse(result.found)
        self.assertEqual(len(result.lines), 0)
        self.assertIsNone(result.path)

    def test_unknown_file(self):
        result = self.find(LineRangeQuery(file='other.c', start=1, end=10))

        self.assertFalse(result.found)

    def test_needs_file_or_function(self):
        with self.assertRaises(InvalidRequestError):
            self.find(LineRangeQuery(start=1, end=10))

    def test_unreadable_source(self):
        self.config.source_prefix = None

        with self.assertRaises(NotFoundError):
            self.find(LineRangeQuery(function='foo'))

    def test_to_dict(self):
        data = self.find(LineRangeQuery(function='foo', start=0, end=1)).to_dict()

        self.assertEqual(data['function'], 'foo')
        self.assertEqual(data['lines'], [10, 11])
        self.assertTrue(data['found'])


if __name__ == '__main__':
    unittest.main()
