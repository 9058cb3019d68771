"""
Entry classification: raw reference entries to canonical decode records.

Every entry yields exactly one tagged ``Outcome``:

* ``RESOLVED`` with one record, or eight for register-coded opcodes,
* ``SKIPPED`` when the entry is deliberately not part of the table,
* ``UNRESOLVED`` when its operand shape has no argument format (soft),
* ``ERROR`` when the reference contradicts the classifier's tables (hard).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .errors import ClassificationError, DuplicateCodeError
from .formats import (
    ADDRESSING_KINDS,
    IMMEDIATE_WIDTHS,
    IMPLICIT_OPERANDS,
    MODRM_KINDS,
    WIDE_REGISTER_TYPES,
    ImmWidth,
    OperandKind,
    select_arg_format,
    trailing_shape,
)
from .mnemonics import MnemonicSet, normalize_mnemonic
from .records import PREFIX_RANKS, DecodeRecord, make_record
from .reference import Category, Operand, RawEntry
from .rules import RULES, Rule, RuleAction, find_rule

logger = logging.getLogger(__name__)

MAX_OPERANDS = 3
REGISTER_EXPANSION = 8
LONG_MODE = "e"

OpcodeKey = Tuple[Category, int, Optional[str], Optional[int]]


class OutcomeKind(str, Enum):
    RESOLVED = "resolved"
    SKIPPED = "skipped"
    UNRESOLVED = "unresolved"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    entry: RawEntry
    mnemonic: Optional[str] = None
    records: Tuple[DecodeRecord, ...] = ()
    reason: str = ""

    def describe(self) -> str:
        syntax = self.entry.first_syntax()
        operands = ", ".join(op.describe() for op in syntax.operands) if syntax else ""
        mnemonic = self.mnemonic or (syntax.mnemonic.lower() if syntax else "?")
        text = f"{self.entry.describe()} {mnemonic}"
        if operands:
            text += f" {operands}"
        if self.reason:
            text += f": {self.reason}"
        return text


class _Unresolved(Exception):
    pass


class _Invalid(Exception):
    pass


def _opcode_key(entry: RawEntry) -> OpcodeKey:
    return entry.category, entry.primary_byte, entry.prefix, entry.secondary


def long_mode_opcodes(entries: Iterable[RawEntry]) -> FrozenSet[OpcodeKey]:
    """Opcodes that have an entry specific to 64-bit mode."""

    return frozenset(_opcode_key(e) for e in entries if e.mode == LONG_MODE)


@dataclass
class ClassifyContext:
    mnemonics: MnemonicSet = field(default_factory=MnemonicSet)
    long_mode: FrozenSet[OpcodeKey] = frozenset()
    rules: Tuple[Rule, ...] = RULES


def _encoded_operands(
    operands: Sequence[Operand],
) -> List[Tuple[Operand, Optional[OperandKind]]]:
    encoded: List[Tuple[Operand, Optional[OperandKind]]] = []
    for op in operands:
        if not op.displayed:
            continue
        if op.address is None:
            if op.text in IMPLICIT_OPERANDS:
                continue
            if not op.text:
                raise _Invalid(f"{op.role} operand has neither addressing code nor text")
            encoded.append((op, None))
            continue
        kind = ADDRESSING_KINDS.get(op.address)
        if kind is OperandKind.IMPLICIT:
            continue
        encoded.append((op, kind))
    if len(encoded) > MAX_OPERANDS:
        raise _Invalid(f"{len(encoded)} encoded operands (at most {MAX_OPERANDS})")
    return encoded


def _operand_shape(
    operands: Sequence[Operand],
) -> Tuple[List[OperandKind], List[ImmWidth], bool]:
    kinds: List[OperandKind] = []
    widths: List[ImmWidth] = []
    wide_register = False
    encoded = _encoded_operands(operands)
    for op, kind in encoded:
        if kind is None and op.address is None:
            raise _Unresolved(f"fixed operand {op.text!r} is not a known implicit operand")
        if kind is None:
            raise _Unresolved(f"unhandled addressing code {op.address!r}")
        kinds.append(kind)
    for op, kind in encoded:
        if kind is OperandKind.IMMEDIATE:
            width = IMMEDIATE_WIDTHS.get(op.type or "")
            if width is None:
                raise _Invalid(f"unknown immediate type code {op.type!r}")
            widths.append(width)
        elif kind is OperandKind.REG_CODED:
            wide_register = op.type in WIDE_REGISTER_TYPES
    return kinds, widths, wide_register


def classify_entry(entry: RawEntry, ctx: ClassifyContext) -> Outcome:
    def outcome(kind: OutcomeKind, reason: str = "", **kwargs) -> Outcome:
        return Outcome(kind=kind, entry=entry, reason=reason, **kwargs)

    if entry.mode is not None and entry.mode != LONG_MODE:
        return outcome(OutcomeKind.SKIPPED, f"not a 64-bit mode entry (mode={entry.mode})")
    if entry.ring == "0":
        return outcome(OutcomeKind.SKIPPED, "requires ring 0")

    syntax = entry.first_syntax()
    if syntax is None:
        return outcome(OutcomeKind.SKIPPED, "no syntax with a mnemonic")
    mnemonic = normalize_mnemonic(syntax.mnemonic)
    if mnemonic is None:
        return outcome(OutcomeKind.SKIPPED, f"{syntax.mnemonic} is a prefix")

    if (
        entry.mode != LONG_MODE
        and entry.extension is None
        and _opcode_key(entry) in ctx.long_mode
    ):
        return outcome(
            OutcomeKind.SKIPPED, "superseded by a 64-bit mode entry", mnemonic=mnemonic
        )

    extension = entry.extension
    mandatory_prefix = entry.category is Category.TWO_BYTE
    rule = find_rule(entry, mnemonic, ctx.rules)
    if rule is not None:
        logger.debug("%s %s: rule %s (%s)", entry.describe(), mnemonic, rule.action.value, rule.reason)
        if rule.action is RuleAction.SKIP:
            return outcome(OutcomeKind.SKIPPED, rule.reason, mnemonic=mnemonic)
        if rule.action is RuleAction.DROP_EXTENSION:
            extension = None
        elif rule.action is RuleAction.MANDATORY_PREFIX:
            mandatory_prefix = True

    if entry.prefix is not None:
        if entry.prefix not in PREFIX_RANKS:
            return outcome(
                OutcomeKind.UNRESOLVED,
                f"prefix {entry.prefix} is not a mandatory prefix",
                mnemonic=mnemonic,
            )
        if not mandatory_prefix:
            return outcome(
                OutcomeKind.SKIPPED,
                f"prefix {entry.prefix} does not select a distinct instruction",
                mnemonic=mnemonic,
            )

    ctx.mnemonics.add(syntax.mnemonic)

    try:
        kinds, widths, wide_register = _operand_shape(syntax.operands)
    except _Unresolved as exc:
        return outcome(OutcomeKind.UNRESOLVED, str(exc), mnemonic=mnemonic)
    except _Invalid as exc:
        return outcome(OutcomeKind.ERROR, str(exc), mnemonic=mnemonic)

    arg_format = select_arg_format(kinds, widths, wide_register=wide_register)
    if arg_format is None:
        shape = ", ".join(k.value for k in kinds)
        return outcome(
            OutcomeKind.UNRESOLVED, f"no argument format for ({shape})", mnemonic=mnemonic
        )

    has_modrm = any(k in MODRM_KINDS for k in kinds) or (
        extension is not None and entry.secondary is None
    )
    shape = trailing_shape(has_modrm, widths)
    count = REGISTER_EXPANSION if OperandKind.REG_CODED in kinds else 1
    if entry.primary_byte + count - 1 > 0xFF:
        return outcome(
            OutcomeKind.ERROR,
            f"register-coded opcode {entry.primary_byte:02X} overflows the opcode byte",
            mnemonic=mnemonic,
        )

    records = tuple(
        make_record(
            entry.category,
            entry.primary_byte + i,
            mnemonic,
            arg_format,
            shape,
            has_modrm=has_modrm,
            extension=extension,
            secondary=entry.secondary,
            prefix=entry.prefix,
        )
        for i in range(count)
    )
    return outcome(OutcomeKind.RESOLVED, mnemonic=mnemonic, records=records)


def classify_all(
    entries: Sequence[RawEntry],
    mnemonics: Optional[MnemonicSet] = None,
    rules: Tuple[Rule, ...] = RULES,
) -> List[Outcome]:
    ctx = ClassifyContext(
        mnemonics=mnemonics if mnemonics is not None else MnemonicSet(),
        long_mode=long_mode_opcodes(entries),
        rules=rules,
    )
    outcomes = [classify_entry(entry, ctx) for entry in entries]
    for item in outcomes:
        if item.kind is OutcomeKind.UNRESOLVED:
            logger.warning("unresolved %s", item.describe())
        elif item.kind is OutcomeKind.ERROR:
            logger.error("classification error %s", item.describe())
        elif item.kind is OutcomeKind.SKIPPED:
            logger.debug("skipped %s", item.describe())
    return outcomes


def collect_records(outcomes: Iterable[Outcome]) -> List[DecodeRecord]:
    """Gather resolved records; abort on any classification error or duplicate code."""

    outcomes = list(outcomes)
    errors = [o.describe() for o in outcomes if o.kind is OutcomeKind.ERROR]
    if errors:
        raise ClassificationError(errors)

    records: List[DecodeRecord] = []
    seen: dict[int, DecodeRecord] = {}
    for item in outcomes:
        for record in item.records:
            previous = seen.get(record.full_code)
            if previous is not None:
                raise DuplicateCodeError(
                    f"full code {record.full_code:#x} produced twice: "
                    f"{previous.describe()} and {record.describe()}"
                )
            seen[record.full_code] = record
            records.append(record)
    return records


__all__ = [
    "ClassifyContext",
    "Outcome",
    "OutcomeKind",
    "classify_all",
    "classify_entry",
    "collect_records",
    "long_mode_opcodes",
]
