from __future__ import annotations

from pathlib import Path

import pytest

from x64gen.compiler import compile_reference
from x64gen.config import GeneratorConfig
from x64gen.reference import parse_reference

from .builders import sample_reference


@pytest.fixture
def sample_entries():
    return parse_reference(sample_reference())


@pytest.fixture
def compiled(sample_entries):
    return compile_reference(sample_entries)


@pytest.fixture
def config(tmp_path: Path) -> GeneratorConfig:
    reference = tmp_path / "x64asm-ref.xml"
    reference.write_text(sample_reference(), encoding="utf-8")
    return GeneratorConfig(
        reference_path=reference,
        output_dir=tmp_path / "gen",
        fetch=False,
    )
