#!/usr/bin/env python3
"""
Debug information tree navigation.

Searches over the DIE tree are driven by a predicate that decides, for each
visited DIE, whether the search stops there and whether it continues into
the DIE's children, its following siblings, or both.
"""

import logging
from enum import Enum
from typing import Callable

from .debuginfo import CompileUnitView, attr_owner, die_has_name

logger = logging.getLogger(__name__)

# Tags skipped when looking for the concrete type of a value
TYPE_WRAPPER_TAGS = frozenset({
    'DW_TAG_const_type',
    'DW_TAG_restrict_type',
    'DW_TAG_volatile_type',
    'DW_TAG_shared_type',
    'DW_TAG_atomic_type',
    'DW_TAG_typedef',
})

VARIABLE_TAGS = frozenset({'DW_TAG_formal_parameter', 'DW_TAG_variable'})


class SearchControl(Enum):
    """Result of a search predicate"""
    FOUND = 0       # Stop, this is the DIE
    CHILDREN = 1    # Search only this DIE's children
    SIBLINGS = 2    # Search only the following siblings
    CONTINUE = 3    # Search children, then siblings

    @property
    def descends(self) -> bool:
        """Whether the search enters the children"""
        return self in (SearchControl.CHILDREN, SearchControl.CONTINUE)

    @property
    def advances(self) -> bool:
        """Whether the search moves on to the next sibling"""
        return self in (SearchControl.SIBLINGS, SearchControl.CONTINUE)


def find_descendant(root, predicate: Callable[[object], SearchControl]):
    """Depth-first search below root.

    Args:
        root: DIE whose children are searched
        predicate: Called for each visited DIE

    Returns:
        The first DIE for which predicate returned FOUND, or None
    """
    for die in root.iter_children():
        control = predicate(die)
        if control is SearchControl.FOUND:
            return die
        if control.descends:
            found = find_descendant(die, predicate)
            if found is not None:
                return found
        if not control.advances:
            return None
    return None


def find_enclosing_subprogram(unit: CompileUnitView, address: int):
    """Find the CU-level function whose address ranges contain address."""
    for sp_die in unit.iter_functions():
        if unit.has_pc(sp_die, address):
            return sp_die
    return None


def find_inline_instance(unit: CompileUnitView, sp_die, address: int):
    """Find an inlined instance below sp_die that covers address."""
    def _covers(die) -> SearchControl:
        if die.tag == 'DW_TAG_inlined_subroutine' and unit.has_pc(die, address):
            return SearchControl.FOUND
        return SearchControl.CONTINUE

    return find_descendant(sp_die, _covers)


def find_variable(scope_die, name: str):
    """Find a formal parameter or variable called name anywhere below scope_die."""
    def _matches(die) -> SearchControl:
        if die.tag in VARIABLE_TAGS and die_has_name(die, name):
            return SearchControl.FOUND
        return SearchControl.CONTINUE

    return find_descendant(scope_die, _matches)


def find_scope_variable(scope_die, name: str):
    """Find a variable visible from scope_die by walking out through enclosing scopes.

    Only direct children of each enclosing scope are considered, ending with
    the compilation unit's globals.
    """
    def _matches(die) -> SearchControl:
        if die.tag in VARIABLE_TAGS and die_has_name(die, name):
            return SearchControl.FOUND
        return SearchControl.SIBLINGS

    scope = scope_die
    while scope is not None:
        found = find_descendant(scope, _matches)
        if found is not None:
            return found
        scope = scope.get_parent()
    return None


def find_member(struct_die, name: str):
    """Find the member called name among the direct children of a structure type."""
    def _matches(die) -> SearchControl:
        if die.tag == 'DW_TAG_member' and die_has_name(die, name):
            return SearchControl.FOUND
        return SearchControl.SIBLINGS

    return find_descendant(struct_die, _matches)


def resolve_real_type(die):
    """Follow DW_AT_type through qualifiers and typedefs.

    The first link may come from an abstract origin, since concrete inlined
    variables carry only their location.

    Returns:
        The concrete type DIE, or None if a type link is missing
    """
    current = die
    while True:
        owner = attr_owner(current, 'DW_AT_type')
        if owner is None:
            return None
        current = owner.get_DIE_from_attribute('DW_AT_type')
        if current.tag not in TYPE_WRAPPER_TAGS:
            return current
