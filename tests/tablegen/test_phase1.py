from __future__ import annotations

import dataclasses
import logging

import pytest

from x64gen.classify import classify_all, collect_records
from x64gen.errors import SubIndexCollisionError
from x64gen.phase1 import resolve_collisions
from x64gen.records import PRIMARY_TABLE_SIZE

from .builders import fixed, op, raw, two


def records_for(*entries):
    return collect_records(classify_all(list(entries)))


def test_extension_pair_forms_one_group() -> None:
    result = resolve_collisions(
        records_for(
            raw(0x80, "ADD", op("E", "b", "dst"), op("I", "b"), ext=0),
            raw(0x80, "OR", op("E", "b", "dst"), op("I", "b"), ext=1),
        )
    )
    assert list(result.groups) == [0x80]
    group = result.groups[0x80]
    assert sorted(group.members) == [4, 8]
    assert group.span == 5
    assert [r.mnemonic for r in group.records()] == ["add", "or"]
    assert 0x80 not in result.direct


def test_single_record_is_a_direct_hit() -> None:
    result = resolve_collisions(records_for(raw(0xC3, "RETN")))
    assert result.direct[0xC3].mnemonic == "retn"
    assert not result.groups


def test_representational_duplicates_collapse() -> None:
    # same mnemonic and trailing shape: one decode decision, first wins
    result = resolve_collisions(
        records_for(
            raw(0xFF, "INC", op("E", "vqp", "dst"), ext=0),
            raw(0xFF, "INC", op("E", "vqp", "dst"), ext=1),
        )
    )
    assert not result.groups
    assert result.direct[0xFF].extension == 0


def test_equal_sub_index_is_fatal() -> None:
    records = records_for(
        raw(0xF6, "TEST", op("E", "b", "dst"), op("I", "b"), ext=0),
        raw(0xF6, "NOT", op("E", "b", "dst"), ext=2),
    )
    clash = dataclasses.replace(records[1], sub_index=records[0].sub_index)
    with pytest.raises(SubIndexCollisionError):
        resolve_collisions([records[0], clash])


def test_holes_are_reported(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="x64gen.phase1")
    result = resolve_collisions(records_for(raw(0x50, "PUSH", op("Z", "v"))))
    assert len(result.holes) == PRIMARY_TABLE_SIZE - 8
    assert 0x50 not in result.holes
    assert 0x58 in result.holes
    assert "hole at primary index 058" in caplog.text
    assert "8 direct, 0 collision groups, 504 holes" in caplog.text


def test_groups_are_logged(caplog) -> None:
    caplog.set_level(logging.INFO, logger="x64gen.phase1")
    resolve_collisions(
        records_for(
            raw(0xC0, "ROL", op("E", "b", "dst"), op("I", "b"), ext=0),
            raw(0xC0, "ROR", op("E", "b", "dst"), op("I", "b"), ext=1),
            raw(0xC0, "RCL", op("E", "b", "dst"), op("I", "b"), ext=2),
        )
    )
    assert "collision at 0C0: 3 records, span 9 (rcl, rol, ror)" in caplog.text


def test_duplicate_inside_group_keeps_its_slot() -> None:
    result = resolve_collisions(
        records_for(
            raw(0xD1, "ROL", op("E", "vqp", "dst"), fixed("1"), ext=0),
            raw(0xD1, "SAL", op("E", "vqp", "dst"), fixed("1"), ext=4),
            raw(0xD1, "SHL", op("E", "vqp", "dst"), fixed("1"), ext=6),
        )
    )
    group = result.groups[0xD1]
    assert sorted(group.members) == [4, 20]
    assert sorted(group.aliases) == [28]
    assert group.slots() == [4, 20, 28]
    assert group.span == 25
    assert group.record_at(28) is group.members[20]


def test_prefixed_duplicate_keeps_its_slot() -> None:
    result = resolve_collisions(
        records_for(
            two(0x7E, "MOVD", op("E", "d", "dst"), op("P", "d")),
            two(0x7E, "MOVQ", op("V", "q", "dst"), op("W", "q"), pref="F3"),
            two(0x7E, "MOVD", op("E", "d", "dst"), op("V", "d"), pref="66"),
        )
    )
    group = result.groups[0x17E]
    assert group.slots() == [0, 1, 3]
    assert group.record_at(3).prefix is None
    assert group.aliases[3].prefix == "66"


def test_duplicates_without_other_decisions_stay_direct() -> None:
    result = resolve_collisions(
        records_for(
            raw(0xD1, "SAL", op("E", "vqp", "dst"), fixed("1"), ext=4),
            raw(0xD1, "SHL", op("E", "vqp", "dst"), fixed("1"), ext=6),
        )
    )
    assert not result.groups
    assert result.direct[0xD1].extension == 4


def test_plain_form_and_extension_zero_share_a_group() -> None:
    result = resolve_collisions(
        records_for(
            two(0x0D, "NOP", op("E", "v")),
            two(0x0D, "PREFETCH", op("M", "b"), ext=0),
        )
    )
    assert sorted(result.groups[0x10D].members) == [0, 4]


def test_alias_on_a_distinct_decision_is_fatal() -> None:
    rol, sal, shl = records_for(
        raw(0xD1, "ROL", op("E", "vqp", "dst"), ext=0),
        raw(0xD1, "SAL", op("E", "vqp", "dst"), ext=4),
        raw(0xD1, "SHL", op("E", "vqp", "dst"), ext=6),
    )
    clash = dataclasses.replace(shl, sub_index=rol.sub_index)
    with pytest.raises(SubIndexCollisionError):
        resolve_collisions([rol, sal, clash])
