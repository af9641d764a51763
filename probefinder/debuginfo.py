#!/usr/bin/env python3
"""
DWARF debug information access for probe finding.

This module wraps pyelftools behind the small interface the finder needs:
compilation units with their file and line tables, address ranges of DIEs,
location expressions decoded at a given address, and call frame information
for resolving the canonical frame address.
"""

import os
import logging
from collections import namedtuple
from typing import Dict, Iterator, List, Optional, Tuple

from elftools.elf.elffile import ELFFile
from elftools.common.exceptions import ELFError, DWARFError
from elftools.dwarf import constants as dwarf_constants
from elftools.dwarf.callframe import FDE
from elftools.dwarf.descriptions import describe_form_class
from elftools.dwarf.dwarf_expr import DWARFExprParser
from elftools.dwarf.locationlists import (
    BaseAddressEntry as LocationBaseAddressEntry,
    LocationEntry,
    LocationExpr,
    LocationParser,
)
from elftools.dwarf.ranges import BaseAddressEntry as RangeBaseAddressEntry, RangeEntry

from .config import ProbeFinderConfig
from .exceptions import BackendUnavailableError
from .registers import (
    Architecture,
    architecture_from_machine,
    architecture_from_name,
    register_name,
)
from .source_text import tail_matches

logger = logging.getLogger(__name__)

# A decoded location expression operation, e.g. ('DW_OP_breg7', [8])
LocationOp = namedtuple('LocationOp', 'op_name args')

# One row of a CU line table
LineRow = namedtuple('LineRow', 'address line file')

# Location expression valid for [low, high); low is None when valid everywhere
LocationRange = Tuple[Optional[int], Optional[int], List[LocationOp]]

# Attributes that may be inherited from an abstract origin or a declaration
INTEGRATE_LINKS = ('DW_AT_abstract_origin', 'DW_AT_specification')
MAX_INTEGRATE_DEPTH = 8

INLINED_VALUES = frozenset({
    dwarf_constants.DW_INL_inlined,
    dwarf_constants.DW_INL_declared_inlined,
})


def string_value(value) -> Optional[str]:
    """Extract string value from DWARF attribute.

    Args:
        value: DWARF attribute value (can be bytes, str, or other)

    Returns:
        String value or None if there is no value
    """
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='ignore')
    if isinstance(value, str):
        return value
    return str(value)


def attr_owner(die, name: str):
    """Return the DIE carrying attribute `name` for die.

    Follows abstract origins and specifications, so a concrete inlined
    instance resolves to its abstract declaration.
    """
    current = die
    for _ in range(MAX_INTEGRATE_DEPTH):
        if name in current.attributes:
            return current
        for link in INTEGRATE_LINKS:
            if link in current.attributes:
                current = current.get_DIE_from_attribute(link)
                break
        else:
            return None
    return None


def attr_integrate(die, name: str):
    """Return attribute `name` of die, following abstract origins and specifications."""
    owner = attr_owner(die, name)
    return owner.attributes[name] if owner is not None else None


def die_own_name(die) -> Optional[str]:
    """Return the DW_AT_name carried by the DIE itself, without inheritance."""
    attr = die.attributes.get('DW_AT_name')
    return string_value(attr.value) if attr is not None else None


def die_name(die) -> Optional[str]:
    """Return the name of a DIE, including names inherited by concrete instances."""
    attr = attr_integrate(die, 'DW_AT_name')
    return string_value(attr.value) if attr is not None else None


def die_udata(die, name: str) -> Optional[int]:
    """Return an integer attribute of die itself, or None."""
    attr = die.attributes.get(name)
    if attr is None or not isinstance(attr.value, int):
        return None
    return attr.value


def die_has_name(die, name: str) -> bool:
    """Compare a DIE's name with name."""
    return die_name(die) == name


class CompileUnitView:  # pylint: disable=too-many-public-methods
    """One compilation unit: its DIE tree, file table, line table and locations."""

    def __init__(self, session: 'DebugInfoSession', cu):
        self.session = session
        self.cu = cu
        self.top_die = cu.get_top_DIE()
        self._files: Optional[Dict[int, str]] = None
        self._rows: Optional[List[LineRow]] = None
        self._expr_parser = None

    @property
    def cu_offset(self) -> int:
        """Offset of this CU in .debug_info"""
        return self.cu.cu_offset

    @property
    def name(self) -> Optional[str]:
        """Primary source file name of the CU"""
        attr = self.top_die.attributes.get('DW_AT_name')
        return string_value(attr.value) if attr is not None else None

    @property
    def comp_dir(self) -> Optional[str]:
        """Compilation directory of the CU"""
        attr = self.top_die.attributes.get('DW_AT_comp_dir')
        return string_value(attr.value) if attr is not None else None

    @property
    def base_address(self) -> int:
        """Base address for CU-relative range and location list entries"""
        return die_udata(self.top_die, 'DW_AT_low_pc') or 0

    @property
    def version(self) -> int:
        """DWARF version of the CU"""
        return self.cu['version']

    # File and line tables

    def file_name(self, index: Optional[int]) -> Optional[str]:
        """Full path of a file table entry."""
        if index is None:
            return None
        return self._file_table().get(index)

    def source_files(self) -> List[str]:
        """Every distinct source path named by this CU."""
        return list(dict.fromkeys(self._file_table().values()))

    def find_realpath(self, fname: Optional[str]) -> Optional[str]:
        """Return the CU source path whose tail matches fname, or None."""
        if not fname:
            return None
        for src in self.source_files():
            if tail_matches(src, fname):
                return src
        return None

    def line_rows(self) -> List[LineRow]:
        """Rows of the line table, excluding end-of-sequence markers."""
        if self._rows is None:
            self._rows = self._read_line_rows()
        return self._rows

    def find_line_at(self, address: int) -> Optional[LineRow]:
        """Return the line row starting exactly at address, or None."""
        found = None
        for row in self.line_rows():
            if row.address == address:
                found = row
        return found

    def _file_table(self) -> Dict[int, str]:
        if self._files is None:
            self._files = self._read_file_table()
        return self._files

    def _line_program(self):
        return self.session.dwarfinfo.line_program_for_CU(self.cu)

    def _read_file_table(self) -> Dict[int, str]:
        """Build index -> full path for the line program file table.

        DWARF 5 file and directory indices are zero-based and directory 0 is
        the compilation directory; earlier versions are one-based with
        directory 0 standing for the compilation directory.
        """
        line_program = self._line_program()
        if line_program is None:
            return {}

        header = line_program.header
        version = header['version']
        comp_dir = self.comp_dir or ''
        directories = [string_value(d) for d in header['include_directory']]

        files = {}
        for i, file_entry in enumerate(header['file_entry']):
            filename = string_value(file_entry.name)
            if not filename:
                continue
            dir_index = file_entry.dir_index
            if version >= 5:
                directory = directories[dir_index] if dir_index < len(directories) else comp_dir
                index = i
            else:
                directory = comp_dir if dir_index == 0 else directories[dir_index - 1]
                index = i + 1

            if not os.path.isabs(filename):
                if directory and not os.path.isabs(directory) and comp_dir:
                    directory = os.path.join(comp_dir, directory)
                filename = os.path.join(directory or '', filename)
            files[index] = filename
        return files

    def _read_line_rows(self) -> List[LineRow]:
        line_program = self._line_program()
        if line_program is None:
            return []

        rows = []
        for entry in line_program.get_entries():
            state = entry.state
            if state is None or state.end_sequence:
                continue
            rows.append(LineRow(state.address, state.line, self.file_name(state.file)))
        return rows

    # Address ranges

    def address_ranges(self, die) -> List[Tuple[int, int]]:
        """Address ranges [low, high) covered by a DIE.

        Note:
            In DWARF 4+, high_pc can be an offset from low_pc, indicated by a
            constant form.
        """
        attrs = die.attributes
        low_attr = attrs.get('DW_AT_low_pc')
        if low_attr is not None:
            low = low_attr.value
            high_attr = attrs.get('DW_AT_high_pc')
            if high_attr is None:
                return [(low, low + 1)]
            if describe_form_class(high_attr.form) == 'constant':
                return [(low, low + high_attr.value)]
            return [(low, high_attr.value)]

        ranges_attr = attrs.get('DW_AT_ranges')
        if ranges_attr is not None:
            return self._range_list(ranges_attr)
        return []

    def _range_list(self, attr) -> List[Tuple[int, int]]:
        if attr.form == 'DW_FORM_rnglistx':
            logger.warning(f"Indexed range lists are not supported (CU at offset {self.cu_offset})")
            return []

        rangelists = self.session.dwarfinfo.range_lists()
        if rangelists is None:
            return []

        ranges = []
        base = self.base_address
        for entry in rangelists.get_range_list_at_offset(attr.value, self.cu):
            if isinstance(entry, RangeBaseAddressEntry):
                base = entry.base_address
            elif isinstance(entry, RangeEntry):
                if getattr(entry, 'is_absolute', False):
                    ranges.append((entry.begin_offset, entry.end_offset))
                else:
                    ranges.append((base + entry.begin_offset, base + entry.end_offset))
        return ranges

    def has_pc(self, die, address: int) -> bool:
        """Check whether a DIE's address ranges cover address."""
        return any(low <= address < high for low, high in self.address_ranges(die))

    def entry_pc(self, die) -> Optional[int]:
        """Entry address of a subprogram or inlined instance."""
        ranges = self.address_ranges(die)
        base = min((low for low, _ in ranges), default=None)

        entry_attr = die.attributes.get('DW_AT_entry_pc')
        if entry_attr is not None:
            if describe_form_class(entry_attr.form) == 'constant':
                return None if base is None else base + entry_attr.value
            return entry_attr.value

        low_pc = die_udata(die, 'DW_AT_low_pc')
        if low_pc is not None:
            return low_pc
        return base

    # Declarations

    def decl_file(self, die) -> Optional[str]:
        """Source path a DIE was declared in."""
        attr = attr_integrate(die, 'DW_AT_decl_file')
        if attr is None:
            return None
        return self.file_name(attr.value)

    def decl_line(self, die) -> Optional[int]:
        """Source line a DIE was declared on."""
        attr = attr_integrate(die, 'DW_AT_decl_line')
        return attr.value if attr is not None else None

    # Functions

    def iter_functions(self) -> Iterator:
        """Yield the subprogram DIEs defined directly in this CU."""
        for die in self.top_die.iter_children():
            if die.tag == 'DW_TAG_subprogram' and 'DW_AT_declaration' not in die.attributes:
                yield die

    @staticmethod
    def is_inline_function(die) -> bool:
        """True for abstract instances of inlined functions."""
        return die_udata(die, 'DW_AT_inline') in INLINED_VALUES

    def iter_inline_instances(self, sp_die) -> Iterator:
        """Yield every inlined instance of sp_die in this CU, in DIE order."""
        stack = list(reversed(list(self.top_die.iter_children())))
        while stack:
            die = stack.pop()
            if (die.tag == 'DW_TAG_inlined_subroutine'
                    and 'DW_AT_abstract_origin' in die.attributes
                    and die.get_DIE_from_attribute('DW_AT_abstract_origin').offset == sp_die.offset):
                yield die
            stack.extend(reversed(list(die.iter_children())))

    # Location expressions

    def location_ops(self, die, attr_name: str, address: int) -> Optional[List[LocationOp]]:
        """Decode the location expression of die valid at address.

        Returns:
            List of operations, or None if the DIE has no location there
        """
        attr = die.attributes.get(attr_name)
        if attr is None:
            return None
        for low, high, ops in self._location_ranges(attr, die):
            if low is None or low <= address < high:
                return ops
        return None

    def _location_ranges(self, attr, die) -> List[LocationRange]:
        version = self.version
        if not LocationParser.attribute_has_location(attr, version):
            return []

        parsed = self.session.location_parser.parse_from_attribute(attr, version, die=die)
        if isinstance(parsed, LocationExpr):
            return [(None, None, self.decode_expression(parsed.loc_expr))]

        ranges = []
        base = self.base_address
        for entry in parsed:
            if isinstance(entry, LocationBaseAddressEntry):
                base = entry.base_address
            elif isinstance(entry, LocationEntry):
                if getattr(entry, 'is_absolute', False):
                    low, high = entry.begin_offset, entry.end_offset
                else:
                    low, high = base + entry.begin_offset, base + entry.end_offset
                ranges.append((low, high, self.decode_expression(entry.loc_expr)))
        return ranges

    def decode_expression(self, expr) -> List[LocationOp]:
        """Decode raw DWARF expression bytes into operations."""
        if self._expr_parser is None:
            self._expr_parser = DWARFExprParser(self.cu.structs)
        return [LocationOp(op.op_name, list(op.args)) for op in self._expr_parser.parse_expr(expr)]

    def cfa_ops(self, address: int) -> Optional[List[LocationOp]]:
        """Canonical frame address rule at address, as location operations."""
        return self.session.cfa_ops(address)


class DebugInfoSession:
    """An open ELF file with DWARF debug information.

    Use as a context manager; the file is closed on exit even when the
    finder raises.
    """

    def __init__(self, source, config: Optional[ProbeFinderConfig] = None):
        """Initialize the session.

        Args:
            source: Path to the ELF file, or an open binary stream
            config: Finder configuration (architecture override)
        """
        self.source = source
        self.config = config or ProbeFinderConfig()
        self.elffile = None
        self.dwarfinfo = None
        self.location_parser = None
        self._stream = None
        self._owns_stream = False
        self._units: Optional[List[CompileUnitView]] = None
        self._unit_ranges: Optional[List[Tuple[int, int, CompileUnitView]]] = None
        self._frame_entries: Optional[List[Tuple[int, int, object]]] = None
        self._architecture: Optional[Architecture] = None

    def __enter__(self) -> 'DebugInfoSession':
        return self.open()

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @property
    def display_name(self) -> str:
        """Name of the ELF file for messages"""
        if isinstance(self.source, (str, os.PathLike)):
            return os.fspath(self.source)
        return getattr(self.source, 'name', '<stream>')

    def open(self) -> 'DebugInfoSession':
        """Open the ELF file and its DWARF information.

        Raises:
            BackendUnavailableError: If the file cannot be read or has no debug info
        """
        try:
            if isinstance(self.source, (str, os.PathLike)):
                self._stream = open(self.source, 'rb')
                self._owns_stream = True
            else:
                self._stream = self.source
            self.elffile = ELFFile(self._stream)

            has_debug_info = (self.elffile.get_section_by_name('.debug_info') is not None
                              or self.elffile.get_section_by_name('.zdebug_info') is not None)
            if not has_debug_info:
                self.close()
                raise BackendUnavailableError(
                    f"No dwarf info found in {self.display_name} - "
                    "please rebuild with debug information enabled (-g).")

            self.dwarfinfo = self.elffile.get_dwarf_info()
            self.location_parser = LocationParser(self.dwarfinfo.location_lists())
        except (IOError, OSError) as e:
            self.close()
            logger.error(f"Failed to read ELF file {self.display_name}: {e}")
            raise BackendUnavailableError(
                f"Failed to read ELF file {self.display_name}: {e}") from e
        except (ELFError, DWARFError) as e:
            self.close()
            logger.error(f"Invalid ELF file format {self.display_name}: {e}")
            raise BackendUnavailableError(
                f"Invalid ELF file format {self.display_name}: {e}") from e
        return self

    def close(self) -> None:
        """Close the underlying stream if the session opened it."""
        if self._stream is not None and self._owns_stream:
            self._stream.close()
        self._stream = None
        self._owns_stream = False

    @property
    def architecture(self) -> Architecture:
        """Architecture used for register naming"""
        if self._architecture is None:
            if self.config.architecture:
                self._architecture = architecture_from_name(self.config.architecture)
            else:
                self._architecture = architecture_from_machine(self.elffile['e_machine'])
        return self._architecture

    def register_name(self, regno: int) -> Optional[str]:
        """Map a DWARF register number to a register token."""
        return register_name(self.architecture, regno)

    def iter_units(self) -> Iterator[CompileUnitView]:
        """Yield every compilation unit."""
        if self._units is None:
            self._units = [CompileUnitView(self, cu) for cu in self.dwarfinfo.iter_CUs()]
        return iter(self._units)

    def unit_for_address(self, address: int) -> Optional[CompileUnitView]:
        """Find the compilation unit whose address ranges cover address.

        .debug_aranges is consulted first; without it, or when it does not
        list the address, the CU DIE ranges are scanned.
        """
        aranges = self.dwarfinfo.get_aranges()
        if aranges is not None:
            cu_offset = aranges.cu_offset_at_addr(address)
            if cu_offset is not None:
                for unit in self.iter_units():
                    if unit.cu_offset == cu_offset:
                        return unit

        if self._unit_ranges is None:
            self._unit_ranges = []
            for unit in self.iter_units():
                for low, high in unit.address_ranges(unit.top_die):
                    self._unit_ranges.append((low, high, unit))
            self._unit_ranges.sort(key=lambda x: x[0])
            logger.debug(f"Built CU index with {len(self._unit_ranges)} address ranges")

        for low, high, unit in self._unit_ranges:
            if low <= address < high:
                return unit
        return None

    def _frame_description_entries(self) -> List[Tuple[int, int, object]]:
        if self._frame_entries is None:
            entries = []
            sources = []
            if self.dwarfinfo.has_CFI():
                sources.append(self.dwarfinfo.CFI_entries())
            if self.dwarfinfo.has_EH_CFI():
                sources.append(self.dwarfinfo.EH_CFI_entries())
            for cfi in sources:
                for entry in cfi:
                    if isinstance(entry, FDE):
                        low = entry.header['initial_location']
                        entries.append((low, low + entry.header['address_range'], entry))
            self._frame_entries = entries
        return self._frame_entries

    def cfa_ops(self, address: int) -> Optional[List[LocationOp]]:
        """Canonical frame address at address, expressed as location operations.

        Returns:
            [DW_OP_bregx reg offset] for register rules, the decoded expression
            for expression rules, or None when no frame entry covers address
        """
        for low, high, fde in self._frame_description_entries():
            if not low <= address < high:
                continue
            rule = None
            for row in fde.get_decoded().table:
                if row['pc'] > address:
                    break
                rule = row.get('cfa', rule)
            if rule is None:
                return None
            if rule.expr is not None:
                return [LocationOp(op.op_name, list(op.args))
                        for op in DWARFExprParser(self.dwarfinfo.structs).parse_expr(rule.expr)]
            return [LocationOp('DW_OP_bregx', [rule.reg, rule.offset])]
        return None
