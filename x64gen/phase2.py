"""Phase 2: first-fit-decreasing placement of collision groups."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

from .errors import SlotCapacityError
from .phase1 import CollisionGroup


@dataclass(frozen=True)
class Placement:
    # primary index -> phase2_offset (secondary slot = sub_index + offset)
    offsets: Dict[int, int]
    length: int

    def slots_of(self, group: CollisionGroup) -> List[int]:
        offset = self.offsets[group.primary_index]
        return [sub + offset for sub in group.slots()]


def pack_groups(groups: Iterable[CollisionGroup], capacity: int) -> Placement:
    """Place every group in a secondary array of ``capacity`` slots.

    Groups are taken by descending span, ties broken by primary index, and
    each goes to the lowest base at which all of its member and alias slots
    are free.
    """

    order = sorted(groups, key=lambda g: (-g.span, g.primary_index))
    used = [False] * capacity
    offsets: Dict[int, int] = {}
    length = 0

    for group in order:
        rel = [sub - group.min_sub for sub in group.slots()]
        base = 0
        while base + group.span <= capacity:
            if not any(used[base + r] for r in rel):
                break
            base += 1
        else:
            raise SlotCapacityError(
                f"cannot place collision group {group.primary_index:03X} "
                f"(span {group.span}) in {capacity} secondary slots"
            )
        for r in rel:
            used[base + r] = True
        offsets[group.primary_index] = base - group.min_sub
        length = max(length, base + rel[-1] + 1)

    return Placement(offsets=offsets, length=length)


def apply_placement(
    groups: Mapping[int, CollisionGroup], placement: Placement
) -> Dict[int, CollisionGroup]:
    """Return copies of ``groups`` whose members carry their phase2_offset."""

    placed: Dict[int, CollisionGroup] = {}
    for primary_index, group in groups.items():
        offset = placement.offsets[primary_index]
        placed[primary_index] = CollisionGroup(
            primary_index,
            {
                sub: dataclasses.replace(record, phase2_offset=offset)
                for sub, record in group.members.items()
            },
            {
                sub: dataclasses.replace(record, phase2_offset=offset)
                for sub, record in group.aliases.items()
            },
        )
    return placed


__all__ = ["Placement", "apply_placement", "pack_groups"]
