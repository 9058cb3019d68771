from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Set, Tuple

from .errors import MnemonicBudgetError

MNEMONIC_BITS = 10
INVALID_ID = 0
SUBRESOLVE_ID = 1
FIRST_MNEMONIC_ID = 2
# 10-bit field minus the two sentinels.
MAX_MNEMONICS = (1 << MNEMONIC_BITS) - FIRST_MNEMONIC_ID

SENTINEL_IDENTIFIERS = ("_invalid", "_subresolve")
SENTINEL_DISPLAY_NAMES = ("<invalid-mnemonic>", "<unresolved-mnemonic>")

# Spellings the reference uses for the same instruction.
_SYNONYMS: Dict[str, str] = {
    "shl": "sal",
    "jnae": "jb",
    "jc": "jb",
    "jnb": "jae",
    "jnc": "jae",
    "jz": "je",
    "jnz": "jne",
    "jna": "jbe",
    "jnbe": "ja",
    "jp": "jpe",
    "jnp": "jpo",
    "jnge": "jl",
    "jnl": "jge",
    "jng": "jle",
    "jnle": "jg",
}

_PREFIX_TOKENS = frozenset(
    {
        "rex",
        "lock",
        "rep",
        "repe",
        "repz",
        "repne",
        "repnz",
        "es",
        "cs",
        "ss",
        "ds",
        "fs",
        "gs",
    }
)

# Mnemonics that are keywords or alternative tokens in the generated C++.
_RESERVED_WORDS = frozenset({"and", "or", "xor", "not", "int"})

_NON_IDENT = re.compile(r"[^0-9a-z_]")


def normalize_mnemonic(text: str) -> Optional[str]:
    """Return the canonical spelling of ``text``, or None for prefix tokens."""

    name = text.strip().lower()
    if not name:
        return None
    if name in _PREFIX_TOKENS or name.startswith("rex."):
        return None
    return _SYNONYMS.get(name, name)


def identifier_for(name: str) -> str:
    ident = _NON_IDENT.sub("_", name)
    if ident in _RESERVED_WORDS or ident[:1].isdigit():
        ident += "_"
    return ident


@dataclass(frozen=True)
class MnemonicTable:
    """Finalized, sorted mnemonic set; ids start after the two sentinels."""

    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_ids", {name: i + FIRST_MNEMONIC_ID for i, name in enumerate(self.names)}
        )

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, name: object) -> bool:
        return name in self._ids  # type: ignore[attr-defined]

    def id_of(self, name: str) -> int:
        try:
            return self._ids[name]  # type: ignore[attr-defined]
        except KeyError:
            raise KeyError(f"mnemonic {name!r} is not in the finalized set") from None

    def name_of(self, mnemonic_id: int) -> str:
        return self.display_names[mnemonic_id]

    @property
    def display_names(self) -> Tuple[str, ...]:
        return SENTINEL_DISPLAY_NAMES + self.names

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return SENTINEL_IDENTIFIERS + tuple(identifier_for(n) for n in self.names)


class MnemonicSet:
    """Accumulates canonical mnemonics during classification."""

    def __init__(self) -> None:
        self._names: Set[str] = set()
        self._table: Optional[MnemonicTable] = None

    def __len__(self) -> int:
        return len(self._names)

    @property
    def finalized(self) -> bool:
        return self._table is not None

    def add(self, text: str) -> Optional[str]:
        if self._table is not None:
            raise RuntimeError("mnemonic set is already finalized")
        name = normalize_mnemonic(text)
        if name is not None:
            self._names.add(name)
        return name

    def finalize(self) -> MnemonicTable:
        if self._table is None:
            if len(self._names) > MAX_MNEMONICS:
                raise MnemonicBudgetError(
                    f"too many mnemonics: {len(self._names)} > {MAX_MNEMONICS} "
                    f"({MNEMONIC_BITS}-bit id field with two reserved values)"
                )
            self._table = MnemonicTable(tuple(sorted(self._names)))
        return self._table


__all__ = [
    "FIRST_MNEMONIC_ID",
    "INVALID_ID",
    "MAX_MNEMONICS",
    "MNEMONIC_BITS",
    "MnemonicSet",
    "MnemonicTable",
    "SUBRESOLVE_ID",
    "identifier_for",
    "normalize_mnemonic",
]
