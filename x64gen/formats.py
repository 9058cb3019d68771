"""
Operand taxonomy of the reference and the argument formats of the decode table.

The reference describes each operand by an addressing code (``E``, ``G``,
``I``, ...) and a type code (``b``, ``vqp``, ...). The compiler only needs to
know where the operand lives in the byte stream: in the low opcode bits, in
the ModRM byte, or in a trailing immediate.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict, FrozenSet, Optional, Sequence, Tuple


class OperandKind(str, Enum):
    REG_CODED = "opreg"  # low three bits of the opcode
    IMMEDIATE = "imm"
    MODRM_REG = "modr"  # ModRM.reg
    MODRM_RM = "modm"  # ModRM.rm, register or memory
    MEMORY = "mem"  # ModRM.rm, memory only
    IMPLICIT = "implicit"  # not encoded anywhere


ADDRESSING_KINDS: Dict[str, OperandKind] = {
    "Z": OperandKind.REG_CODED,
    "I": OperandKind.IMMEDIATE,
    "J": OperandKind.IMMEDIATE,
    "G": OperandKind.MODRM_REG,
    "C": OperandKind.MODRM_REG,
    "D": OperandKind.MODRM_REG,
    "P": OperandKind.MODRM_REG,
    "S": OperandKind.MODRM_REG,
    "T": OperandKind.MODRM_REG,
    "V": OperandKind.MODRM_REG,
    "E": OperandKind.MODRM_RM,
    "Q": OperandKind.MODRM_RM,
    "W": OperandKind.MODRM_RM,
    "R": OperandKind.MODRM_RM,
    "N": OperandKind.MODRM_RM,
    "U": OperandKind.MODRM_RM,
    "M": OperandKind.MEMORY,
    "X": OperandKind.IMPLICIT,  # DS:rSI string source
    "Y": OperandKind.IMPLICIT,  # ES:rDI string destination
    "F": OperandKind.IMPLICIT,  # rFLAGS
}

# Fixed operands that never occupy encoding bits.
IMPLICIT_OPERANDS: FrozenSet[str] = frozenset(
    {
        "AL", "AH", "AX", "EAX", "RAX", "rAX", "eAX",
        "CL", "CX", "ECX", "RCX", "rCX", "eCX",
        "DL", "DX", "EDX", "RDX", "rDX", "eDX",
        "BL", "BX", "EBX", "RBX", "rBX", "eBX",
        "SP", "rSP", "BP", "rBP", "SI", "rSI", "DI", "rDI",
        "ES", "CS", "SS", "DS", "FS", "GS",
        "Flags", "EFlags", "RFlags", "rFlags",
        "1",
        "XMM0",
        "ST", "ST0", "ST1",
        "SS:[rSP]", "DS:[rSI]", "ES:[rDI]", "DS:[rBX+AL]",
        "CR0", "MSR", "XCR", "GDTR", "IDTR", "LDTR", "TR",
        "IA32_TIME_STAMP_COUNTER", "IA32_TSC_AUX",
    }
)

MODRM_KINDS = frozenset({OperandKind.MODRM_REG, OperandKind.MODRM_RM, OperandKind.MEMORY})


class ImmWidth(str, Enum):
    W8 = "i8"
    W16 = "i16"
    W32 = "i32"
    W32_64 = "i32/64"  # 64 bits only with REX.W

    @property
    def suffix(self) -> str:
        return self.value[1:].replace("/", "_")


IMMEDIATE_WIDTHS: Dict[str, ImmWidth] = {
    "b": ImmWidth.W8,
    "bs": ImmWidth.W8,
    "bss": ImmWidth.W8,
    "w": ImmWidth.W16,
    "d": ImmWidth.W32,
    "ds": ImmWidth.W32,
    "v": ImmWidth.W32,
    "vd": ImmWidth.W32,
    "vds": ImmWidth.W32,
    "vs": ImmWidth.W32,
    "vqp": ImmWidth.W32_64,
}

# Register-coded operands that are always 64 bits wide in long mode.
WIDE_REGISTER_TYPES = frozenset({"q", "vq"})


class ArgFormat(IntEnum):
    NONE = 0
    OPREG = 1
    OPREG64 = 2
    OPREG_IMM8 = 3
    OPREG_IMM32 = 4
    OPREG_IMM32_64 = 5
    IMM8 = 6
    IMM16 = 7
    IMM32 = 8
    IMM32_64 = 9
    IMM16_IMM8 = 10
    MODM = 11
    MEM = 12
    MODM_MODR = 13
    MODR_MODM = 14
    MODM_IMM8 = 15
    MODM_IMM16 = 16
    MODM_IMM32 = 17
    MODM_IMM32_64 = 18
    MODM_MODR_IMM8 = 19
    MODM_MODR_IMM32 = 20
    MODR_MODM_IMM8 = 21
    MODR_MODM_IMM16 = 22
    MODR_MODM_IMM32 = 23

    @property
    def identifier(self) -> str:
        return self.name.lower()

    @property
    def has_modrm(self) -> bool:
        return self >= ArgFormat.MODM


ARG_FORMAT_BITS = 6


def _with_imm(stem: str, width: ImmWidth) -> Optional[ArgFormat]:
    name = f"{stem}_imm{width.suffix}" if stem else f"imm{width.suffix}"
    return ArgFormat.__members__.get(name.upper())


def select_arg_format(
    kinds: Sequence[OperandKind],
    widths: Sequence[ImmWidth],
    *,
    wide_register: bool = False,
) -> Optional[ArgFormat]:
    """Map the encoded operand kinds (in syntax order) to an argument format.

    ``widths`` holds the width of each immediate operand, in order. Returns
    None for shapes the table has no format for.
    """

    shape: Tuple[OperandKind, ...] = tuple(kinds)
    K = OperandKind
    rm = (K.MODRM_RM, K.MEMORY)

    if not shape:
        return ArgFormat.NONE
    if shape == (K.REG_CODED,):
        return ArgFormat.OPREG64 if wide_register else ArgFormat.OPREG
    if shape == (K.REG_CODED, K.IMMEDIATE):
        return _with_imm("opreg", widths[0])
    if shape == (K.IMMEDIATE,):
        return _with_imm("", widths[0])
    if shape == (K.IMMEDIATE, K.IMMEDIATE):
        if tuple(widths) == (ImmWidth.W16, ImmWidth.W8):
            return ArgFormat.IMM16_IMM8
        return None
    if shape == (K.MODRM_RM,):
        return ArgFormat.MODM
    if shape == (K.MEMORY,):
        return ArgFormat.MEM
    if len(shape) >= 2 and shape[0] in rm and shape[1] == K.MODRM_REG:
        stem = "modm_modr"
    elif len(shape) >= 2 and shape[0] == K.MODRM_REG and shape[1] in rm:
        stem = "modr_modm"
    elif shape[0] in rm and shape[1:] == (K.IMMEDIATE,):
        return _with_imm("modm", widths[0])
    else:
        return None

    rest = shape[2:]
    if not rest:
        return ArgFormat[stem.upper()]
    if rest == (K.IMMEDIATE,):
        return _with_imm(stem, widths[0])
    return None


def trailing_shape(has_modrm: bool, widths: Sequence[ImmWidth]) -> str:
    """Signature of the bytes that follow the opcode."""

    return ("m" if has_modrm else "-") + "/" + "".join(w.value for w in widths)


__all__ = [
    "ADDRESSING_KINDS",
    "ARG_FORMAT_BITS",
    "ArgFormat",
    "IMMEDIATE_WIDTHS",
    "IMPLICIT_OPERANDS",
    "ImmWidth",
    "MODRM_KINDS",
    "OperandKind",
    "WIDE_REGISTER_TYPES",
    "select_arg_format",
    "trailing_shape",
]
