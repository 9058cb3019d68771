"""
Phase 1: partition decode records by primary index.

An index whose records all make the same decode decision is a direct hit. An
index with several distinct decisions becomes a ``CollisionGroup`` keyed by
sub-index; the Slot Packer later gives every group its own region of the
secondary table.

Records dropped as duplicates inside a group still own their sub-index: the
slot becomes an alias holding the entry of the member with the same decode
decision, so every encoding of the opcode resolves through the secondary table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from .errors import SubIndexCollisionError
from .records import PRIMARY_TABLE_SIZE, DecodeRecord

logger = logging.getLogger(__name__)


@dataclass
class CollisionGroup:
    primary_index: int
    members: Dict[int, DecodeRecord] = field(default_factory=dict)
    # sub-index -> duplicate record whose decision a member already makes
    aliases: Dict[int, DecodeRecord] = field(default_factory=dict)

    def slots(self) -> List[int]:
        """Every sub-index that needs a secondary slot, in ascending order."""

        return sorted([*self.members, *self.aliases])

    @property
    def min_sub(self) -> int:
        return min(self.members.keys() | self.aliases.keys())

    @property
    def max_sub(self) -> int:
        return max(self.members.keys() | self.aliases.keys())

    @property
    def span(self) -> int:
        return self.max_sub - self.min_sub + 1

    def records(self) -> List[DecodeRecord]:
        return [self.members[sub] for sub in sorted(self.members)]

    def record_at(self, sub: int) -> DecodeRecord:
        """The member whose entry fills the slot of ``sub``."""

        record = self.members.get(sub)
        if record is not None:
            return record
        sig = self.aliases[sub].decode_sig
        return next(r for r in self.members.values() if r.decode_sig == sig)


@dataclass
class Phase1Result:
    direct: Dict[int, DecodeRecord] = field(default_factory=dict)
    groups: Dict[int, CollisionGroup] = field(default_factory=dict)
    holes: Tuple[int, ...] = ()


def _dedup(records: Iterable[DecodeRecord]) -> Tuple[List[DecodeRecord], List[DecodeRecord]]:
    seen = set()
    kept: List[DecodeRecord] = []
    dropped: List[DecodeRecord] = []
    for record in records:
        sig = record.decode_sig
        if sig in seen:
            logger.debug("duplicate decode decision: %s", record.describe())
            dropped.append(record)
            continue
        seen.add(sig)
        kept.append(record)
    return kept, dropped


def _clash(primary_index: int, a: DecodeRecord, b: DecodeRecord) -> SubIndexCollisionError:
    return SubIndexCollisionError(
        f"primary index {primary_index:03X}: {a.describe()} and "
        f"{b.describe()} share sub-index {b.sub_index:#x}"
    )


def _make_group(
    primary_index: int, kept: List[DecodeRecord], dropped: List[DecodeRecord]
) -> CollisionGroup:
    group = CollisionGroup(primary_index)
    for record in kept:
        other = group.members.get(record.sub_index)
        if other is not None:
            raise _clash(primary_index, other, record)
        group.members[record.sub_index] = record

    for record in dropped:
        sub = record.sub_index
        if sub in group.members or sub in group.aliases:
            owner = group.record_at(sub)
            if owner.decode_sig != record.decode_sig:
                raise _clash(primary_index, owner, record)
            continue
        group.aliases[sub] = record
    return group


def resolve_collisions(records: Iterable[DecodeRecord]) -> Phase1Result:
    by_index: Dict[int, List[DecodeRecord]] = {}
    for record in records:
        by_index.setdefault(record.primary_index, []).append(record)

    result = Phase1Result()
    for primary_index in sorted(by_index):
        kept, dropped = _dedup(by_index[primary_index])
        if len(kept) == 1:
            result.direct[primary_index] = kept[0]
            continue
        group = _make_group(primary_index, kept, dropped)
        result.groups[primary_index] = group
        logger.info(
            "collision at %03X: %d records, span %d (%s)",
            primary_index,
            len(group.members),
            group.span,
            ", ".join(sorted({r.mnemonic for r in kept})),
        )
        if group.aliases:
            logger.debug(
                "collision at %03X: %d alias slots", primary_index, len(group.aliases)
            )

    result.holes = tuple(i for i in range(PRIMARY_TABLE_SIZE) if i not in by_index)
    for hole in result.holes:
        logger.debug("hole at primary index %03X", hole)
    logger.info(
        "phase 1: %d direct, %d collision groups, %d holes",
        len(result.direct),
        len(result.groups),
        len(result.holes),
    )
    return result


__all__ = ["CollisionGroup", "Phase1Result", "resolve_collisions"]
