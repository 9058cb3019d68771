"""Two-phase decode table compiler for the x86-64 instruction reference."""

from .compiler import CompiledTable, compile_reference, generate, write_artifacts
from .config import GeneratorConfig, load_generator_config
from .errors import GenerationError
from .reference import RawEntry, fetch_reference, load_reference, parse_reference

__all__ = [
    "CompiledTable",
    "GenerationError",
    "GeneratorConfig",
    "RawEntry",
    "compile_reference",
    "fetch_reference",
    "generate",
    "load_generator_config",
    "load_reference",
    "parse_reference",
    "write_artifacts",
]
