"""
Pipeline: reference entries to decode tables to generated sources.

``compile_reference`` is pure apart from logging; ``write_artifacts`` renders
both files in memory, stages them on disk and only then renames them into
place, so a failed run never leaves a partial header/source pair behind.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from .classify import Outcome, OutcomeKind, classify_all, collect_records
from .config import GeneratorConfig
from .errors import ReferenceFetchError
from .mnemonics import MnemonicSet, MnemonicTable
from .phase1 import CollisionGroup, Phase1Result, resolve_collisions
from .phase2 import Placement, apply_placement, pack_groups
from .records import DecodeRecord
from .reference import RawEntry, fetch_reference, load_reference
from .serialize import DecodeTables, build_tables, render_header, render_source

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".tmp"


@dataclass(frozen=True)
class CompiledTable:
    outcomes: Tuple[Outcome, ...]
    records: Tuple[DecodeRecord, ...]
    phase1: Phase1Result
    groups: Dict[int, CollisionGroup]
    placement: Placement
    tables: DecodeTables

    @property
    def mnemonics(self) -> MnemonicTable:
        return self.tables.mnemonics

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.kind is kind)


def bind_mnemonic_ids(
    records: Sequence[DecodeRecord], mnemonics: MnemonicTable
) -> List[DecodeRecord]:
    return [
        dataclasses.replace(r, mnemonic_id=mnemonics.id_of(r.mnemonic)) for r in records
    ]


def compile_reference(
    entries: Sequence[RawEntry], config: GeneratorConfig = GeneratorConfig()
) -> CompiledTable:
    accumulator = MnemonicSet()
    outcomes = classify_all(entries, accumulator)
    mnemonics = accumulator.finalize()
    logger.info("found %d mnemonics", len(mnemonics))
    records = collect_records(outcomes)

    records = bind_mnemonic_ids(records, mnemonics)
    phase1 = resolve_collisions(records)
    placement = pack_groups(phase1.groups.values(), config.secondary_capacity)
    groups = apply_placement(phase1.groups, placement)
    logger.info(
        "phase 2: %d groups in %d of %d secondary slots",
        len(groups),
        placement.length,
        config.secondary_capacity,
    )
    tables = build_tables(phase1.direct, groups, placement.length, mnemonics)

    compiled = CompiledTable(
        outcomes=tuple(outcomes),
        records=tuple(records),
        phase1=phase1,
        groups=groups,
        placement=placement,
        tables=tables,
    )
    logger.info(
        "%d entries: %d resolved, %d skipped, %d unresolved; %d records, table size %d",
        len(outcomes),
        compiled.count(OutcomeKind.RESOLVED),
        compiled.count(OutcomeKind.SKIPPED),
        compiled.count(OutcomeKind.UNRESOLVED),
        len(records),
        len(tables.table),
    )
    return compiled


def render_artifacts(tables: DecodeTables, config: GeneratorConfig) -> Dict[Path, str]:
    return {
        config.header_path: render_header(tables, config.namespace),
        config.source_path: render_source(tables, config.namespace, config.header_name),
    }


def write_artifacts(tables: DecodeTables, config: GeneratorConfig) -> List[Path]:
    """Write the header and source together.

    Both files are staged next to their targets and only renamed into place
    once every staged copy is complete.
    """

    rendered = render_artifacts(tables, config)
    config.output_dir.mkdir(parents=True, exist_ok=True)
    staged: List[Tuple[Path, Path]] = []
    try:
        for path, text in rendered.items():
            temp = path.with_name(path.name + STAGING_SUFFIX)
            staged.append((temp, path))
            temp.write_text(text, encoding="utf-8")
        for temp, path in staged:
            os.replace(temp, path)
            logger.info("written generated source to %s", path)
    finally:
        for temp, _ in staged:
            temp.unlink(missing_ok=True)
    return [path for _, path in staged]


def generate(config: GeneratorConfig) -> CompiledTable:
    """Fetch (if allowed), compile and write the generated sources."""

    path = config.reference_path
    if config.fetch:
        path = fetch_reference(config.reference_url, path)
    elif not path.exists():
        raise ReferenceFetchError(f"no reference at {path} and fetching is disabled")
    entries = load_reference(path)
    compiled = compile_reference(entries, config)
    write_artifacts(compiled.tables, config)
    return compiled


__all__ = [
    "CompiledTable",
    "bind_mnemonic_ids",
    "compile_reference",
    "generate",
    "render_artifacts",
    "write_artifacts",
]
