from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .formats import ArgFormat
from .reference import Category

PRIMARY_TABLE_SIZE = 512

# sub_index = discriminator * PREFIX_SLOTS + prefix rank, where the
# discriminator is 0 for a plain opcode, 1 + extension, or
# 9 + (secondary ^ SECONDARY_MASK).
PREFIX_RANKS: Dict[Optional[str], int] = {None: 0, "F3": 1, "F2": 2, "66": 3}
PREFIX_SLOTS = len(PREFIX_RANKS)
SECONDARY_MASK = 0xE1
EXTENSION_SUBINDEX_BASE = 1
SECONDARY_SUBINDEX_BASE = EXTENSION_SUBINDEX_BASE + 8


def primary_index_of(category: Category, primary_byte: int) -> int:
    return category.index_base + primary_byte


def compute_sub_index(
    extension: Optional[int], secondary: Optional[int], prefix: Optional[str]
) -> int:
    if secondary is not None:
        discriminator = SECONDARY_SUBINDEX_BASE + (secondary ^ SECONDARY_MASK)
    elif extension is not None:
        discriminator = EXTENSION_SUBINDEX_BASE + extension
    else:
        discriminator = 0
    return discriminator * PREFIX_SLOTS + PREFIX_RANKS[prefix]


def compute_full_code(
    primary_index: int,
    extension: Optional[int],
    secondary: Optional[int],
    prefix: Optional[str],
) -> int:
    rank = PREFIX_RANKS[prefix]
    if secondary is not None:
        return (1 << 24) | (rank << 20) | (primary_index << 8) | secondary
    ext_slot = extension + 1 if extension is not None else 0
    return ((rank * 9 + ext_slot) << 9) | primary_index


@dataclass(frozen=True, slots=True)
class DecodeRecord:
    category: Category
    primary_byte: int
    mnemonic: str
    arg_format: ArgFormat
    trailing_shape: str
    full_code: int
    sub_index: int
    has_modrm: bool = False
    extension: Optional[int] = None
    secondary: Optional[int] = None
    prefix: Optional[str] = None
    mnemonic_id: Optional[int] = None
    phase2_offset: Optional[int] = None

    @property
    def primary_index(self) -> int:
        return primary_index_of(self.category, self.primary_byte)

    @property
    def decode_sig(self) -> tuple[str, str]:
        """Records with equal signatures make the same decode decision."""

        return self.mnemonic, self.trailing_shape

    def describe(self) -> str:
        return (
            f"{self.primary_index:03X} sub {self.sub_index:#x} "
            f"{self.mnemonic} {self.arg_format.identifier} [{self.trailing_shape}]"
        )


def make_record(
    category: Category,
    primary_byte: int,
    mnemonic: str,
    arg_format: ArgFormat,
    trailing_shape: str,
    *,
    has_modrm: bool,
    extension: Optional[int] = None,
    secondary: Optional[int] = None,
    prefix: Optional[str] = None,
) -> DecodeRecord:
    primary_index = primary_index_of(category, primary_byte)
    return DecodeRecord(
        category=category,
        primary_byte=primary_byte,
        mnemonic=mnemonic,
        arg_format=arg_format,
        trailing_shape=trailing_shape,
        full_code=compute_full_code(primary_index, extension, secondary, prefix),
        sub_index=compute_sub_index(extension, secondary, prefix),
        has_modrm=has_modrm,
        extension=extension,
        secondary=secondary,
        prefix=prefix,
    )


__all__ = [
    "DecodeRecord",
    "EXTENSION_SUBINDEX_BASE",
    "PREFIX_RANKS",
    "PREFIX_SLOTS",
    "PRIMARY_TABLE_SIZE",
    "SECONDARY_MASK",
    "SECONDARY_SUBINDEX_BASE",
    "compute_full_code",
    "compute_sub_index",
    "make_record",
    "primary_index_of",
]
