#!/usr/bin/env python3

"""
registers.py - DWARF register number to kprobe register name mapping

The tables follow the DWARF register numbering of each psABI and emit the
register tokens understood by the kprobe tracer fetch-argument syntax.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class Architecture(Enum):
    """Supported architectures"""
    ARM = "ARM"
    X86 = "x86"
    X86_64 = "x86-64"
    AARCH64 = "AArch64"
    RISC_V = "RISC-V"
    XTENSA = "Xtensa"
    MIPS = "MIPS"
    UNKNOWN = "Unknown"


# pyelftools reports e_machine symbolically
MACHINE_TYPES = {
    'EM_386': Architecture.X86,
    'EM_ARM': Architecture.ARM,
    'EM_X86_64': Architecture.X86_64,
    'EM_AARCH64': Architecture.AARCH64,
    'EM_RISCV': Architecture.RISC_V,
    'EM_XTENSA': Architecture.XTENSA,
    'EM_MIPS': Architecture.MIPS,
}

# Names accepted for the architecture override
ARCH_ALIASES = {
    'x86_64': Architecture.X86_64,
    'x86-64': Architecture.X86_64,
    'amd64': Architecture.X86_64,
    'i386': Architecture.X86,
    'x86': Architecture.X86,
    'arm': Architecture.ARM,
    'aarch64': Architecture.AARCH64,
    'arm64': Architecture.AARCH64,
    'riscv': Architecture.RISC_V,
    'riscv64': Architecture.RISC_V,
    'riscv32': Architecture.RISC_V,
}

REGISTER_TABLES: Dict[Architecture, List[str]] = {
    Architecture.X86_64: [
        '%ax', '%dx', '%cx', '%bx', '%si', '%di', '%bp', '%sp',
        '%r8', '%r9', '%r10', '%r11', '%r12', '%r13', '%r14', '%r15',
    ],
    Architecture.X86: [
        '%ax', '%cx', '%dx', '%bx', '$stack', '%bp', '%si', '%di',
    ],
    Architecture.ARM: [
        '%r0', '%r1', '%r2', '%r3', '%r4', '%r5', '%r6', '%r7',
        '%r8', '%r9', '%r10', '%fp', '%ip', '%sp', '%lr', '%pc',
    ],
    Architecture.AARCH64: [f'%x{i}' for i in range(30)] + ['%lr', '%sp'],
    Architecture.RISC_V: [
        '%zero', '%ra', '%sp', '%gp', '%tp', '%t0', '%t1', '%t2',
        '%s0', '%s1', '%a0', '%a1', '%a2', '%a3', '%a4', '%a5',
        '%a6', '%a7', '%s2', '%s3', '%s4', '%s5', '%s6', '%s7',
        '%s8', '%s9', '%s10', '%s11', '%t3', '%t4', '%t5', '%t6',
    ],
}


def architecture_from_machine(e_machine) -> Architecture:
    """Map an ELF e_machine value to an Architecture."""
    return MACHINE_TYPES.get(e_machine, Architecture.UNKNOWN)


def architecture_from_name(name: str) -> Architecture:
    """Map an architecture name given on the command line to an Architecture."""
    arch = ARCH_ALIASES.get(name.lower())
    if arch is None:
        logger.warning("Unknown architecture %s, no registers will be mapped", name)
        return Architecture.UNKNOWN
    return arch


def register_name(arch: Architecture, regno: int) -> Optional[str]:
    """Return the register token for a DWARF register number, or None."""
    table = REGISTER_TABLES.get(arch)
    if table is None or not 0 <= regno < len(table):
        return None
    return table[regno]
