"""
Table serializer: bit-packed decode entries and the generated C++ sources.

Every table element is a ``uint16_t``: the mnemonic id in the low
``MNEMONIC_BITS`` bits and the argument format above it. Primary entries of
collision groups carry the ``_subresolve`` id; the real entry lives in the
secondary part of the flat table at ``phase2_base[primary] + sub_index``, with
the sub-index built from the discriminators named in ``phase2_flags[primary]``
(see ``records.compute_sub_index``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ArgFormatError
from .formats import ARG_FORMAT_BITS, ArgFormat
from .mnemonics import INVALID_ID, MNEMONIC_BITS, SUBRESOLVE_ID, MnemonicTable
from .phase1 import CollisionGroup
from .records import (
    EXTENSION_SUBINDEX_BASE,
    PREFIX_SLOTS,
    PRIMARY_TABLE_SIZE,
    SECONDARY_MASK,
    SECONDARY_SUBINDEX_BASE,
    DecodeRecord,
)

MNEMONIC_MASK = (1 << MNEMONIC_BITS) - 1
VALUES_PER_ROW = 16
GENERATED_BANNER = "// CAUTION: this file is auto-generated. DO NOT MODIFY!"

PHASE2_EXTENSION = 0x1  # discriminated by ModRM.reg
PHASE2_SECONDARY = 0x2  # discriminated by the byte after the opcode
PHASE2_PREFIX = 0x4  # discriminated by a mandatory prefix


def encode_entry(mnemonic_id: int, arg_format: ArgFormat) -> int:
    if not isinstance(arg_format, ArgFormat):
        try:
            arg_format = ArgFormat(arg_format)
        except ValueError:
            raise ArgFormatError(f"unknown argument format {arg_format!r}") from None
    if not 0 <= mnemonic_id <= MNEMONIC_MASK:
        raise ValueError(f"mnemonic id {mnemonic_id} does not fit {MNEMONIC_BITS} bits")
    if arg_format >= 1 << ARG_FORMAT_BITS:
        raise ValueError(f"{arg_format.identifier} does not fit {ARG_FORMAT_BITS} bits")
    return mnemonic_id | (int(arg_format) << MNEMONIC_BITS)


def decode_entry(value: int) -> Tuple[int, ArgFormat]:
    return value & MNEMONIC_MASK, ArgFormat(value >> MNEMONIC_BITS)


def _encode_record(record: DecodeRecord) -> int:
    if record.mnemonic_id is None:
        raise ValueError(f"mnemonic id of {record.describe()} is not bound")
    return encode_entry(record.mnemonic_id, record.arg_format)


def _phase2_flags(group: CollisionGroup) -> int:
    flags = 0
    for record in [*group.members.values(), *group.aliases.values()]:
        if record.extension is not None:
            flags |= PHASE2_EXTENSION
        if record.secondary is not None:
            flags |= PHASE2_SECONDARY
        if record.prefix is not None:
            flags |= PHASE2_PREFIX
    return flags


@dataclass(frozen=True)
class DecodeTables:
    primary: Tuple[int, ...]
    secondary: Tuple[int, ...]
    phase2_base: Tuple[int, ...]
    phase2_flags: Tuple[int, ...]
    mnemonics: MnemonicTable

    @property
    def table(self) -> Tuple[int, ...]:
        return self.primary + self.secondary


def build_tables(
    direct: Mapping[int, DecodeRecord],
    groups: Mapping[int, CollisionGroup],
    secondary_length: int,
    mnemonics: MnemonicTable,
) -> DecodeTables:
    """Lay out the primary and secondary tables.

    ``groups`` must already carry their phase2 offsets (see
    ``phase2.apply_placement``).
    """

    primary = [encode_entry(INVALID_ID, ArgFormat.NONE)] * PRIMARY_TABLE_SIZE
    secondary = [encode_entry(INVALID_ID, ArgFormat.NONE)] * secondary_length
    phase2_base = [0] * PRIMARY_TABLE_SIZE
    phase2_flags = [0] * PRIMARY_TABLE_SIZE

    for primary_index, record in direct.items():
        primary[primary_index] = _encode_record(record)

    for primary_index, group in groups.items():
        primary[primary_index] = encode_entry(SUBRESOLVE_ID, ArgFormat.NONE)
        offset: Optional[int] = None
        for sub in group.slots():
            record = group.record_at(sub)
            if record.phase2_offset is None:
                raise ValueError(f"{record.describe()} was never placed")
            offset = record.phase2_offset
            secondary[sub + offset] = _encode_record(record)
        phase2_base[primary_index] = PRIMARY_TABLE_SIZE + (offset or 0)
        phase2_flags[primary_index] = _phase2_flags(group)

    return DecodeTables(
        primary=tuple(primary),
        secondary=tuple(secondary),
        phase2_base=tuple(phase2_base),
        phase2_flags=tuple(phase2_flags),
        mnemonics=mnemonics,
    )


def lookup(
    tables: DecodeTables, primary_index: int, sub_index: Optional[int] = None
) -> Tuple[int, ArgFormat]:
    """Decode the table entry for an opcode, following the secondary link."""

    value = tables.primary[primary_index]
    mnemonic_id, arg_format = decode_entry(value)
    if mnemonic_id != SUBRESOLVE_ID or sub_index is None:
        return mnemonic_id, arg_format
    return decode_entry(tables.table[tables.phase2_base[primary_index] + sub_index])


def _rows(values: Sequence[int], indent: str = "    ") -> Iterable[str]:
    for start in range(0, len(values), VALUES_PER_ROW):
        chunk = values[start : start + VALUES_PER_ROW]
        yield indent + ", ".join(str(v) for v in chunk) + ",  //"


def _namespace_open(namespace: str) -> str:
    return f"namespace {namespace}\n{{"


def render_header(tables: DecodeTables, namespace: str) -> str:
    lines: List[str] = [
        "#pragma once",
        GENERATED_BANNER,
        "",
        "#include <cstdint>",
        "",
        _namespace_open(namespace),
        "",
        "enum class mnemonic : uint16_t",
        "{",
    ]
    ids = tables.mnemonics.identifiers
    lines.extend(f"    {ident}," for ident in ids[:2])
    lines.append("")
    lines.extend(f"    {ident}," for ident in ids[2:])
    lines.append("};")
    lines.append("char const* to_string(mnemonic m);")
    lines.append("")
    lines.append("enum class arg_format : uint8_t")
    lines.append("{")
    lines.extend(f"    {fmt.identifier} = {int(fmt)}," for fmt in ArgFormat)
    lines.append("")
    lines.append(f"    has_modm_start = {int(ArgFormat.MODM)},")
    lines.append("};")
    lines.append(
        f"static_assert(int(arg_format::{max(ArgFormat).identifier}) < (1 << {ARG_FORMAT_BITS}));"
    )
    lines.append("")
    lines.append("namespace detail")
    lines.append("{")
    lines.append(f"inline constexpr int primary_table_size = {PRIMARY_TABLE_SIZE};")
    lines.append(f"inline constexpr uint8_t phase2_extension = {PHASE2_EXTENSION};")
    lines.append(f"inline constexpr uint8_t phase2_secondary = {PHASE2_SECONDARY};")
    lines.append(f"inline constexpr uint8_t phase2_prefix = {PHASE2_PREFIX};")
    lines.append(f"inline constexpr int subindex_prefix_slots = {PREFIX_SLOTS};")
    lines.append(f"inline constexpr int subindex_extension_base = {EXTENSION_SUBINDEX_BASE};")
    lines.append(f"inline constexpr int subindex_secondary_base = {SECONDARY_SUBINDEX_BASE};")
    lines.append(f"inline constexpr uint8_t subindex_secondary_mask = {SECONDARY_MASK:#04x};")
    lines.append(f"extern uint16_t const decode_table[{len(tables.table)}];")
    lines.append(f"extern int32_t const phase2_base[{PRIMARY_TABLE_SIZE}];")
    lines.append(f"extern uint8_t const phase2_flags[{PRIMARY_TABLE_SIZE}];")
    lines.append("} // namespace detail")
    lines.append("")
    lines.append(f"}} // {namespace}")
    lines.append("")
    return "\n".join(lines)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_source(tables: DecodeTables, namespace: str, header_name: str) -> str:
    names = tables.mnemonics.display_names
    last = tables.mnemonics.identifiers[-1]
    lines: List[str] = [
        GENERATED_BANNER,
        f'#include "{header_name}"',
        "",
        "static char const* s_mnemonic_names[] = {",
    ]
    lines.extend(f"    {_quote(name)}," for name in names)
    lines.append("};")
    lines.append("")
    lines.append(f"char const* {namespace}::to_string(mnemonic m)")
    lines.append("{")
    lines.append(f"    if (m > mnemonic::{last})")
    lines.append('        return "<unknown-mnemonic>";')
    lines.append("    return s_mnemonic_names[int(m)];")
    lines.append("}")
    lines.append("")
    lines.append(f"uint16_t const {namespace}::detail::decode_table[{len(tables.table)}] =")
    lines.append("{")
    lines.extend(_rows(tables.table))
    lines.append("};")
    lines.append("")
    lines.append(f"int32_t const {namespace}::detail::phase2_base[{PRIMARY_TABLE_SIZE}] =")
    lines.append("{")
    lines.extend(_rows(tables.phase2_base))
    lines.append("};")
    lines.append("")
    lines.append(f"uint8_t const {namespace}::detail::phase2_flags[{PRIMARY_TABLE_SIZE}] =")
    lines.append("{")
    lines.extend(_rows(tables.phase2_flags))
    lines.append("};")
    lines.append("")
    return "\n".join(lines)


__all__ = [
    "DecodeTables",
    "MNEMONIC_MASK",
    "build_tables",
    "decode_entry",
    "encode_entry",
    "lookup",
    "render_header",
    "render_source",
]
