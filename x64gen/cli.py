"""Command-line entry point: regenerate ``x64.gen.hh`` / ``x64.gen.cc``."""

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Optional, Sequence

from .compiler import generate
from .config import GeneratorConfig, load_generator_config
from .errors import GenerationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile x86reference.xml into the two-level x64 decode table"
    )
    parser.add_argument("--reference", type=Path, help="Local reference path (cache)")
    parser.add_argument("--url", type=str, help="Reference download URL")
    parser.add_argument(
        "--output-dir", type=Path, help="Directory for the generated header/source"
    )
    parser.add_argument(
        "--capacity", type=int, help="Secondary slot array capacity"
    )
    parser.add_argument("--namespace", type=str, help="C++ namespace of the output")
    parser.add_argument(
        "--fetch",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Download the reference if it is missing (default on)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log holes and skipped entries"
    )
    return parser


def config_from_args(
    args: argparse.Namespace, base: Optional[GeneratorConfig] = None
) -> GeneratorConfig:
    config = base if base is not None else load_generator_config()
    overrides = {
        "reference_path": args.reference,
        "reference_url": args.url,
        "output_dir": args.output_dir,
        "secondary_capacity": args.capacity,
        "namespace": args.namespace,
        "fetch": args.fetch,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if args.verbose:
        changes["verbose"] = True
    return dataclasses.replace(config, **changes)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ValueError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        generate(config)
    except GenerationError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
