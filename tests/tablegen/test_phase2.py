from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings

from x64gen.errors import SlotCapacityError
from x64gen.phase2 import apply_placement, pack_groups

from .strategies import collision_groups, make_group, occupied_slots


def test_first_fit_interleaves_smaller_groups() -> None:
    wide = make_group(0x10, [0, 3])
    narrow = make_group(0x20, [1, 2])
    placement = pack_groups([narrow, wide], capacity=16)
    # widest group goes first at base 0; the narrow one fits in its gap
    assert placement.offsets == {0x10: 0, 0x20: 0}
    assert placement.length == 4


def test_offset_is_relative_to_min_sub() -> None:
    a = make_group(0x01, [0x110, 0x112])
    b = make_group(0x02, [0x20, 0x21])
    placement = pack_groups([a, b], capacity=8)
    assert placement.offsets[0x01] == -0x110
    assert placement.offsets[0x02] == 3 - 0x20
    assert placement.slots_of(a) == [0, 2]
    assert placement.slots_of(b) == [3, 4]
    assert placement.length == 5


def test_equal_spans_are_placed_by_primary_index() -> None:
    first = make_group(0x30, [0, 1])
    second = make_group(0x05, [4, 5])
    placement = pack_groups([first, second], capacity=4)
    assert placement.offsets == {0x05: -4, 0x30: 2}


def test_capacity_exceeded() -> None:
    with pytest.raises(SlotCapacityError):
        pack_groups([make_group(0x80, [0, 9])], capacity=5)
    with pytest.raises(SlotCapacityError):
        pack_groups([make_group(0x80, [0, 1]), make_group(0x81, [0, 1])], capacity=3)


def test_no_groups() -> None:
    placement = pack_groups([], capacity=0)
    assert placement.offsets == {}
    assert placement.length == 0


def test_apply_placement_sets_member_offsets() -> None:
    group = make_group(0x80, [0, 1])
    placement = pack_groups([group], capacity=4)
    placed = apply_placement({0x80: group}, placement)
    assert {r.phase2_offset for r in placed[0x80].members.values()} == {0}
    assert {r.phase2_offset for r in group.members.values()} == {None}


@given(groups=collision_groups())
@settings(deadline=None, suppress_health_check=[HealthCheck.too_slow])
def test_placed_groups_never_overlap(groups) -> None:
    placement = pack_groups(groups, capacity=4096)
    slots = occupied_slots(groups, placement.offsets)
    assert min(slots) >= 0
    assert placement.length == max(slots) + 1


@given(groups=collision_groups())
@settings(deadline=None)
def test_packing_is_deterministic(groups) -> None:
    assert pack_groups(groups, 4096) == pack_groups(list(reversed(groups)), 4096)


@given(groups=collision_groups(max_groups=6, max_sub=20))
@settings(deadline=None)
def test_capacity_is_respected(groups) -> None:
    total = sum(g.span for g in groups)
    placement = pack_groups(groups, capacity=total)
    assert placement.length <= total
    with pytest.raises(SlotCapacityError):
        pack_groups(groups, capacity=max(g.span for g in groups) - 1)


def test_alias_slots_are_packed() -> None:
    aliased = make_group(0x10, [1, 2], aliases=[5])
    other = make_group(0x20, [0, 1, 2])
    placement = pack_groups([aliased, other], capacity=16)
    assert aliased.span == 5
    assert placement.slots_of(aliased) == [0, 1, 4]
    assert placement.slots_of(other) == [5, 6, 7]
    placed = apply_placement({0x10: aliased}, placement)[0x10]
    assert placed.aliases[5].phase2_offset == -1
    assert placed.record_at(5).mnemonic == "m1"
