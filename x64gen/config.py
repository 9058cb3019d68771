from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

DEFAULT_REFERENCE_URL = "http://ref.x86asm.net/x86reference.xml"
DEFAULT_REFERENCE_PATH = "x64asm-ref.xml"
DEFAULT_SECONDARY_CAPACITY = 4096
DEFAULT_NAMESPACE = "babel::x64"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().casefold()
    return normalized not in {"0", "false", "off", ""}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip(), 0)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from exc


@dataclass(frozen=True)
class GeneratorConfig:
    reference_url: str = DEFAULT_REFERENCE_URL
    reference_path: Path = Path(DEFAULT_REFERENCE_PATH)
    output_dir: Path = Path(".")
    header_name: str = "x64.gen.hh"
    source_name: str = "x64.gen.cc"
    namespace: str = DEFAULT_NAMESPACE
    secondary_capacity: int = DEFAULT_SECONDARY_CAPACITY
    fetch: bool = True
    verbose: bool = False

    @property
    def header_path(self) -> Path:
        return self.output_dir / self.header_name

    @property
    def source_path(self) -> Path:
        return self.output_dir / self.source_name


def load_generator_config() -> GeneratorConfig:
    return GeneratorConfig(
        reference_url=os.getenv("X64GEN_REFERENCE_URL", DEFAULT_REFERENCE_URL),
        reference_path=Path(os.getenv("X64GEN_REFERENCE_PATH", DEFAULT_REFERENCE_PATH)),
        output_dir=Path(os.getenv("X64GEN_OUTPUT_DIR", ".")),
        namespace=os.getenv("X64GEN_NAMESPACE", DEFAULT_NAMESPACE),
        secondary_capacity=_env_int(
            "X64GEN_SECONDARY_CAPACITY", DEFAULT_SECONDARY_CAPACITY
        ),
        fetch=_env_flag("X64GEN_FETCH", default=True),
        verbose=_env_flag("X64GEN_VERBOSE", default=False),
    )


__all__ = ["GeneratorConfig", "load_generator_config"]
