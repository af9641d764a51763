#!/usr/bin/env python3
"""
Variable location and type resolution.

Turns a variable DIE plus a probe address into a trace argument: the register
or symbol the value is fetched from, the chain of memory indirections through
pointers, arrays and structure members, and the fetch type.
"""

import logging
import re
from typing import List, Optional, Tuple

from elftools.dwarf import constants as dwarf_constants

from .debuginfo import CompileUnitView, LocationOp, die_name, die_udata
from .exceptions import (
    InvalidRequestError,
    NotFoundError,
    RegisterMappingError,
    UnsupportedError,
)
from .models import (
    ArgumentRequest,
    FieldAccess,
    FrameRelative,
    GlobalSymbol,
    ReferenceChain,
    Register,
    RegisterPlusOffset,
    ResolvedLocation,
    TraceArgument,
)
from .navigator import find_member, resolve_real_type

logger = logging.getLogger(__name__)

# Kprobe tracer basic type is up to u64
MAX_BASIC_TYPE_BITS = 64

SIGNED_ENCODINGS = frozenset({
    dwarf_constants.DW_ATE_signed,
    dwarf_constants.DW_ATE_signed_char,
    dwarf_constants.DW_ATE_signed_fixed,
})

_REG_OP = re.compile(r'^DW_OP_reg(\d+)$')
_BREG_OP = re.compile(r'^DW_OP_breg(\d+)$')


def decode_location_op(op: LocationOp, var_name: Optional[str] = None) -> ResolvedLocation:
    """Classify a single location operation.

    Raises:
        UnsupportedError: For operations other than addr/fbreg/reg/breg
    """
    if op.op_name == 'DW_OP_addr':
        return GlobalSymbol(var_name or '')
    if op.op_name == 'DW_OP_fbreg':
        return FrameRelative(op.args[0])
    if op.op_name == 'DW_OP_bregx':
        return RegisterPlusOffset(op.args[0], op.args[1])
    if op.op_name == 'DW_OP_regx':
        return Register(op.args[0])

    match = _BREG_OP.match(op.op_name)
    if match:
        return RegisterPlusOffset(int(match.group(1)), op.args[0])
    match = _REG_OP.match(op.op_name)
    if match:
        return Register(int(match.group(1)))

    logger.warning(f"{op.op_name} is not supported.")
    raise UnsupportedError(f"{op.op_name} is not supported")


class FrameBase:
    """Frame base of the function being probed, resolved lazily per address.

    The frame base expression is decoded on first use and cached; a failure
    is cached as well so every argument reports it.
    """

    def __init__(self, unit: CompileUnitView, sp_die, address: int):
        self.unit = unit
        self.sp_die = sp_die
        self.address = address
        self._resolved = False
        self._location: Optional[ResolvedLocation] = None
        self._error: Optional[Exception] = None

    def resolve(self) -> Optional[ResolvedLocation]:
        """Return the frame base as a register-based location, or None if absent.

        Raises:
            NotFoundError: If the frame base is the CFA and no call frame
                information covers the address
            UnsupportedError: If the frame base operation is not register based
        """
        if not self._resolved:
            self._resolved = True
            try:
                self._location = self._decode()
            except (NotFoundError, UnsupportedError) as e:
                self._error = e
        if self._error is not None:
            raise self._error
        return self._location

    def _decode(self) -> Optional[ResolvedLocation]:
        ops = self.unit.location_ops(self.sp_die, 'DW_AT_frame_base', self.address)
        if not ops:
            return None

        if len(ops) == 1 and ops[0].op_name == 'DW_OP_call_frame_cfa':
            ops = self.unit.cfa_ops(self.address)
            if not ops:
                logger.warning(f"Failed to get CFA on 0x{self.address:x}")
                raise NotFoundError(f"Failed to get CFA on 0x{self.address:x}")

        location = decode_location_op(ops[0])
        if not isinstance(location, (Register, RegisterPlusOffset)):
            logger.warning(f"Frame base {ops[0].op_name} is not supported.")
            raise UnsupportedError(f"Frame base {ops[0].op_name} is not supported")
        return location


def convert_variable_location(unit: CompileUnitView, var_die, address: int,
                              frame_base: FrameBase, var_name: str) -> Tuple[str, ReferenceChain]:
    """Find where a variable lives at address.

    Returns:
        Tuple of (value, refs) where value is '@symbol' or a register token
        and refs is the initial reference chain (empty for register values)
    """
    ops = unit.location_ops(var_die, 'DW_AT_location', address)
    if not ops:
        logger.error(f"Failed to find the location of {var_name} at this address. "
                     "Perhaps, it has been optimized out.")
        raise NotFoundError(f"Failed to find the location of {var_name} at 0x{address:x}, "
                            "perhaps it has been optimized out")
    logger.debug(f"Location of {var_name}: {location_summary(ops)}")
    if len(ops) > 1:
        logger.warning(f"Location of {var_name} is a {len(ops)} operation expression.")
        raise UnsupportedError(f"Location of {var_name} needs {len(ops)} operations")

    location = decode_location_op(ops[0], die_name(var_die))
    if isinstance(location, GlobalSymbol):
        # Static variables on memory (not stack), make @varname
        return f"@{location.name}", (0,)

    offset = 0
    is_reference = False
    if isinstance(location, FrameRelative):
        base = frame_base.resolve()
        if base is None:
            logger.warning("The attribute of frame base is not supported.")
            raise UnsupportedError(f"No frame base to locate {var_name}")
        offset = location.offset
        is_reference = True
        location = base

    if isinstance(location, RegisterPlusOffset):
        offset += location.offset
        is_reference = True

    regname = unit.session.register_name(location.regno)
    if regname is None:
        logger.warning(f"Mapping for DWARF register number {location.regno} "
                       "missing on this architecture.")
        raise RegisterMappingError(
            f"Mapping for DWARF register number {location.regno} missing on this architecture")

    return regname, ((offset,) if is_reference else ())


def convert_variable_type(type_source_die) -> Optional[str]:
    """Build the fetch type ('s32', 'u8', ...) from a DIE's type.

    Returns:
        Type string, or None when the type has no byte size

    Raises:
        NotFoundError: If the DIE has no type
    """
    type_die = resolve_real_type(type_source_die)
    if type_die is None:
        logger.warning(f"Failed to get a type information of {die_name(type_source_die)}.")
        raise NotFoundError(f"Failed to get a type information of {die_name(type_source_die)}")

    logger.debug(f"{die_name(type_source_die)} type is {die_name(type_die)}.")
    bits = (die_udata(type_die, 'DW_AT_byte_size') or 0) * 8
    if not bits:
        return None

    if bits > MAX_BASIC_TYPE_BITS:
        logger.info(f"{die_name(type_die)} exceeds max-bitwidth. "
                    f"Cut down to {MAX_BASIC_TYPE_BITS} bits.")
        bits = MAX_BASIC_TYPE_BITS

    sign = 's' if die_udata(type_die, 'DW_AT_encoding') in SIGNED_ENCODINGS else 'u'
    return f"{sign}{bits}"


def data_member_offset(unit: CompileUnitView, member_die) -> int:
    """Byte offset of a structure member.

    Raises:
        NotFoundError: If the member has no location
        UnsupportedError: If the location is not a constant or DW_OP_plus_uconst
    """
    attr = member_die.attributes.get('DW_AT_data_member_location')
    if attr is None:
        raise NotFoundError(f"{die_name(member_die)} has no member location")
    if isinstance(attr.value, int):
        return attr.value

    ops = unit.decode_expression(attr.value)
    if not ops:
        raise NotFoundError(f"{die_name(member_die)} has an empty member location")
    if len(ops) != 1 or ops[0].op_name != 'DW_OP_plus_uconst':
        logger.debug(f"Unable to get offset:Unexpected OP {ops[0].op_name} ({len(ops)})")
        raise UnsupportedError(
            f"Unexpected member location {ops[0].op_name} ({len(ops)} operations)")
    return ops[0].args[0]


def _add_to_last(refs: ReferenceChain, offset: int) -> ReferenceChain:
    return refs[:-1] + (refs[-1] + offset,)


def resolve_field_chain(unit: CompileUnitView, var_die, var_name: str,
                        field: FieldAccess, refs: ReferenceChain) -> Tuple[ReferenceChain, object]:
    """Walk a field access chain, accumulating memory indirections.

    Args:
        unit: Compilation unit holding the DIEs
        var_die: DIE whose type the first field applies to
        var_name: Name used in messages
        field: Head of the remaining chain
        refs: Reference chain built so far

    Returns:
        Tuple of (refs, type_source_die) where type_source_die is the DIE
        whose type gives the fetch type of the final value
    """
    # pylint: disable=too-many-branches
    logger.debug(f"converting {field.name} in {var_name}")
    type_die = resolve_real_type(var_die)
    if type_die is None:
        logger.warning(f"Failed to get the type of {var_name}.")
        raise NotFoundError(f"Failed to get the type of {var_name}")
    tag = type_die.tag

    if field.is_subscript and tag in ('DW_TAG_array_type', 'DW_TAG_pointer_type'):
        elem_die = resolve_real_type(type_die)
        if elem_die is None:
            logger.warning(f"Failed to get the type of {var_name}.")
            raise NotFoundError(f"Failed to get the type of {var_name}")

        offset = (die_udata(elem_die, 'DW_AT_byte_size') or 0) * field.index
        if tag == 'DW_TAG_pointer_type':
            refs = refs + (offset,)
        elif refs:
            refs = _add_to_last(refs, offset)
        else:
            logger.warning("Array on a register is not supported yet.")
            raise UnsupportedError(f"Array {var_name} on a register is not supported")
        # The element type is reached through the array or pointer type DIE
        next_die = type_die if field.next is not None else var_die
    else:
        if tag == 'DW_TAG_pointer_type':
            if not field.is_pointer_access:
                logger.error(f"Semantic error: {field.name} must be referred by '->'")
                raise InvalidRequestError(f"{field.name} must be referred by '->'")
            type_die = resolve_real_type(type_die)
            if type_die is None:
                logger.warning(f"Failed to get the type of {var_name}.")
                raise NotFoundError(f"Failed to get the type of {var_name}")
            if type_die.tag != 'DW_TAG_structure_type':
                logger.warning(f"{var_name} is not a data structure.")
                raise InvalidRequestError(f"{var_name} is not a data structure")
            refs = refs + (0,)
        else:
            if tag != 'DW_TAG_structure_type':
                logger.warning(f"{var_name} is not a data structure.")
                raise InvalidRequestError(f"{var_name} is not a data structure")
            if field.is_subscript:
                logger.error(f"Semantic error: {var_name} is not a pointer nor array.")
                raise InvalidRequestError(f"{var_name} is not a pointer nor array")
            if field.is_pointer_access:
                logger.error(f"Semantic error: {field.name} must be referred by '.'")
                raise InvalidRequestError(f"{field.name} must be referred by '.'")
            if not refs:
                logger.warning("Structure on a register is not supported yet.")
                raise UnsupportedError(f"Structure {var_name} on a register is not supported")

        member_die = find_member(type_die, field.name)
        if member_die is None:
            logger.warning(f"{var_name}(type:{die_name(type_die)}) has no member {field.name}.")
            raise InvalidRequestError(f"{var_name} has no member {field.name}")
        refs = _add_to_last(refs, data_member_offset(unit, member_die))
        next_die = member_die

    if field.next is not None:
        return resolve_field_chain(unit, next_die, field.name, field.next, refs)
    return refs, next_die


def convert_variable(unit: CompileUnitView, var_die, arg: ArgumentRequest,
                     address: int, frame_base: FrameBase, trace_arg: TraceArgument) -> TraceArgument:
    """Fill trace_arg with the location, references and type of a variable."""
    logger.debug(f"Converting variable {die_name(var_die)} into trace event.")
    value, refs = convert_variable_location(unit, var_die, address, frame_base, arg.var)

    type_source = var_die
    if arg.field is not None:
        refs, type_source = resolve_field_chain(unit, var_die, arg.var, arg.field, refs)

    trace_arg.value = value
    trace_arg.refs = refs
    trace_arg.type = arg.type if arg.type else convert_variable_type(type_source)
    return trace_arg


def location_summary(ops: List[LocationOp]) -> str:
    """Short printable form of a location expression for debug output."""
    return '; '.join(f"{op.op_name} {' '.join(str(a) for a in op.args)}".strip() for op in ops)
