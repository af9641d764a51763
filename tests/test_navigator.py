#!/usr/bin/env python3
"""Tests for DIE tree searches."""

import unittest

from probefinder.navigator import (
    SearchControl,
    find_descendant,
    find_enclosing_subprogram,
    find_inline_instance,
    find_member,
    find_scope_variable,
    find_variable,
    resolve_real_type,
)

from dwarf_fakes import FakeDIE, SampleProgram, function


def _tagged(tag):
    return FakeDIE(tag)


class TestFindDescendant(unittest.TestCase):
    """Four-way search control"""

    def setUp(self):
        self.nested = _tagged('DW_TAG_variable')
        self.first = FakeDIE('DW_TAG_lexical_block', self.nested)
        self.second = _tagged('DW_TAG_variable')
        self.root = FakeDIE('DW_TAG_subprogram', self.first, self.second)
        self.visited = []

    def _search(self, control_for):
        def predicate(die):
            self.visited.append(die)
            return control_for(die)
        return find_descendant(self.root, predicate)

    def test_continue_visits_depth_first(self):
        found = self._search(lambda die: SearchControl.CONTINUE)

        self.assertIsNone(found)
        self.assertEqual(self.visited, [self.first, self.nested, self.second])

    def test_siblings_only_skips_children(self):
        self._search(lambda die: SearchControl.SIBLINGS)

        self.assertEqual(self.visited, [self.first, self.second])

    def test_children_only_stops_at_siblings(self):
        self._search(lambda die: SearchControl.CHILDREN)

        self.assertEqual(self.visited, [self.first, self.nested])

    def test_found_stops_search(self):
        found = self._search(
            lambda die: SearchControl.FOUND if die is self.nested else SearchControl.CONTINUE)

        self.assertIs(found, self.nested)
        self.assertEqual(self.visited, [self.first, self.nested])

    def test_leaf_root(self):
        self.assertIsNone(find_descendant(_tagged('DW_TAG_base_type'),
                                          lambda die: SearchControl.FOUND))


class TestNavigatorSearches(unittest.TestCase):
    """Function, inline instance, variable and member lookup"""

    def setUp(self):
        self.prog = SampleProgram()
        self.unit = self.prog.unit

    def test_enclosing_subprogram(self):
        self.assertIs(find_enclosing_subprogram(self.unit, 0x1100), self.prog.foo)
        self.assertIs(find_enclosing_subprogram(self.unit, 0x123f), self.prog.bar)
        self.assertIsNone(find_enclosing_subprogram(self.unit, 0x1140))

    def test_inline_instance(self):
        self.assertIs(find_inline_instance(self.unit, self.prog.bar, 0x1224),
                      self.prog.bar_inline)
        self.assertIsNone(find_inline_instance(self.unit, self.prog.bar, 0x1230))

    def test_nested_inline_returns_outermost(self):
        inner = FakeDIE('DW_TAG_inlined_subroutine', low_pc=0x1508, high_pc=0x4)
        outer = FakeDIE('DW_TAG_inlined_subroutine', inner, low_pc=0x1504, high_pc=0x10)
        sp_die = function('nested', 0x1500, 0x20, outer)

        self.assertIs(find_inline_instance(self.unit, sp_die, 0x1509), outer)

    def test_variable_in_nested_block(self):
        self.assertIs(find_variable(self.prog.foo, 'inner'), self.prog.inner)
        self.assertIs(find_variable(self.prog.foo, 'ctx'), self.prog.ctx)
        self.assertIsNone(find_variable(self.prog.foo, 'arr'))

    def test_inlined_variable_found_by_abstract_name(self):
        found = find_variable(self.prog.bar, 'x')
        self.assertIs(found, self.prog.bar_inline.children[0])

    def test_scope_variable_reaches_globals(self):
        self.assertIs(find_scope_variable(self.prog.top, 'arr'), self.prog.arr)
        # Locals of other functions are not visible from the CU scope
        self.assertIsNone(find_scope_variable(self.prog.top, 'inner'))

    def test_member_is_children_only(self):
        self.assertEqual(find_member(self.prog.struct_s, 'flags').attributes[
            'DW_AT_data_member_location'].value, 8)
        self.assertIsNone(find_member(self.prog.struct_s, 'missing'))

    def test_resolve_real_type_strips_qualifiers(self):
        self.assertIs(resolve_real_type(self.prog.count), self.prog.int_t)
        self.assertIs(resolve_real_type(self.prog.ctx), self.prog.ptr_s)
        self.assertIsNone(resolve_real_type(self.prog.int_t))

    def test_resolve_real_type_through_abstract_origin(self):
        concrete = self.prog.bar_inline.children[0]
        self.assertIs(resolve_real_type(concrete), self.prog.int_t)


if __name__ == '__main__':
    unittest.main()
