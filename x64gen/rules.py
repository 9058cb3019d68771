"""
Documented corrections applied before general classification.

The reference is irregular in a handful of places: some encodings are listed
twice, some are flagged with an opcode extension they do not need, and a few
prefixed one-byte forms are really separate instructions. Each exception is a
row in ``RULES`` so the list stays auditable; the first matching row wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .reference import Category, RawEntry


class RuleAction(str, Enum):
    SKIP = "skip"
    DROP_EXTENSION = "drop_extension"
    MANDATORY_PREFIX = "mandatory_prefix"


@dataclass(frozen=True)
class Rule:
    action: RuleAction
    reason: str
    category: Optional[Category] = None
    primary: Optional[Tuple[int, int]] = None  # inclusive byte range
    mnemonic: Optional[str] = None  # canonical spelling
    prefix: Optional[str] = None

    def matches(self, entry: RawEntry, mnemonic: Optional[str]) -> bool:
        if self.category is not None and entry.category is not self.category:
            return False
        if self.primary is not None:
            lo, hi = self.primary
            if not lo <= entry.primary_byte <= hi:
                return False
        if self.mnemonic is not None and mnemonic != self.mnemonic:
            return False
        if self.prefix is not None and entry.prefix != self.prefix:
            return False
        return True


ONE = Category.ONE_BYTE
TWO = Category.TWO_BYTE

RULES: Tuple[Rule, ...] = (
    Rule(
        RuleAction.SKIP,
        "x87 floating-point stack instructions are not decoded",
        category=ONE,
        primary=(0xD8, 0xDF),
    ),
    Rule(
        RuleAction.SKIP,
        "LES/LDS bytes are VEX escapes in 64-bit mode",
        category=ONE,
        primary=(0xC4, 0xC5),
    ),
    Rule(
        RuleAction.SKIP,
        "90 is covered by the xchg register-coded expansion",
        category=ONE,
        primary=(0x90, 0x90),
        mnemonic="nop",
    ),
    Rule(
        RuleAction.MANDATORY_PREFIX,
        "F3 90 is pause, not a repeated nop",
        category=ONE,
        primary=(0x90, 0x90),
        mnemonic="pause",
        prefix="F3",
    ),
    Rule(
        RuleAction.DROP_EXTENSION,
        "8F /0 is the only pop encoding; the extension selects nothing",
        category=ONE,
        primary=(0x8F, 0x8F),
        mnemonic="pop",
    ),
    Rule(
        RuleAction.SKIP,
        "3DNow! opcodes are selected by a trailing immediate suffix",
        category=TWO,
        primary=(0x0F, 0x0F),
    ),
    Rule(
        RuleAction.SKIP,
        "0F 1F /0 is the documented multi-byte nop; the hint form duplicates it",
        category=TWO,
        primary=(0x1F, 0x1F),
        mnemonic="hint_nop",
    ),
)


def find_rule(
    entry: RawEntry, mnemonic: Optional[str], rules: Tuple[Rule, ...] = RULES
) -> Optional[Rule]:
    for rule in rules:
        if rule.matches(entry, mnemonic):
            return rule
    return None


__all__ = ["RULES", "Rule", "RuleAction", "find_rule"]
