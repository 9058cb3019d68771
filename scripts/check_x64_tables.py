#!/usr/bin/env python3
"""
Check that the committed x64 decode table matches a fresh generation.

Run with: `python scripts/check_x64_tables.py --generated-dir src/assembly`
"""

from __future__ import annotations

import argparse
import dataclasses
import difflib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent


def generate_expected(reference: Path, namespace: str) -> dict[str, str]:
    sys.path.insert(0, str(REPO_ROOT))
    from x64gen.compiler import compile_reference, render_artifacts
    from x64gen.config import load_generator_config
    from x64gen.reference import load_reference

    config = dataclasses.replace(
        load_generator_config(), reference_path=reference, namespace=namespace
    )
    compiled = compile_reference(load_reference(reference), config)
    return {
        path.name: text for path, text in render_artifacts(compiled.tables, config).items()
    }


def read_current(directory: Path, name: str) -> str:
    path = directory / name
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise SystemExit(f"generated file not found: {path}") from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="x64 decode table drift check")
    parser.add_argument("--reference", type=Path, default=Path("x64asm-ref.xml"))
    parser.add_argument("--generated-dir", type=Path, default=Path("."))
    parser.add_argument("--namespace", default="babel::x64")
    args = parser.parse_args()

    expected = generate_expected(args.reference, args.namespace)
    drift = False
    for name, text in expected.items():
        current = read_current(args.generated_dir, name)
        if current == text:
            continue
        drift = True
        diff = "\n".join(
            difflib.unified_diff(
                current.splitlines(),
                text.splitlines(),
                fromfile=name,
                tofile="generated",
                lineterm="",
            )
        )
        print(f"{name} drift detected:\n")
        print(diff)

    if drift:
        return 1
    print("Decode table matches the reference.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
