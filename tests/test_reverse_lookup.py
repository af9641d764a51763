#!/usr/bin/env python3
"""Tests for address to source resolution."""

import unittest

from probefinder.exceptions import InvalidRequestError
from probefinder.reverse_lookup import resolve_address

from dwarf_fakes import MAIN_C, UTIL_H, SampleProgram


class TestReverseLookup(unittest.TestCase):
    """resolve_address over the sample program"""

    def setUp(self):
        self.prog = SampleProgram()
        self.session = self.prog.session

    def test_function_entry(self):
        result = resolve_address(self.session, 0x1100)

        self.assertEqual((result.file, result.line), (MAIN_C, 10))
        self.assertEqual((result.function, result.relative_line), ('foo', 0))
        self.assertIsNone(result.offset)
        self.assertTrue(result.found)

    def test_line_relative_to_declaration(self):
        result = resolve_address(self.session, 0x1110)

        self.assertEqual(result.line, 12)
        self.assertEqual((result.function, result.relative_line), ('foo', 2))

    def test_inlined_code_reports_inline_function(self):
        result = resolve_address(self.session, 0x1220)

        self.assertEqual((result.file, result.line), (UTIL_H, 6))
        self.assertEqual((result.function, result.relative_line), ('helper', 1))

    def test_inexact_address_uses_offset(self):
        result = resolve_address(self.session, 0x1104)

        self.assertIsNone(result.line)
        self.assertEqual((result.function, result.offset), ('foo', 4))
        self.assertTrue(result.found)

    def test_nothing_found(self):
        result = resolve_address(self.session, 0x1500)

        self.assertFalse(result.found)
        self.assertEqual(result.to_dict()['found'], False)

    def test_address_outside_units(self):
        with self.assertRaises(InvalidRequestError):
            resolve_address(self.session, 0x5000)


if __name__ == '__main__':
    unittest.main()
