from __future__ import annotations


class GenerationError(Exception):
    """Base class for failures that abort table generation."""


class ReferenceFetchError(GenerationError):
    pass


class ReferenceFormatError(GenerationError):
    """The reference document has a node the parser cannot interpret."""


class ClassificationError(GenerationError):
    def __init__(self, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        lines = "\n  ".join(self.reasons)
        super().__init__(f"{len(self.reasons)} classification error(s):\n  {lines}")


class DuplicateCodeError(GenerationError):
    pass


class SubIndexCollisionError(GenerationError):
    pass


class SlotCapacityError(GenerationError):
    pass


class MnemonicBudgetError(GenerationError):
    pass


class ArgFormatError(GenerationError):
    pass


__all__ = [
    "ArgFormatError",
    "ClassificationError",
    "DuplicateCodeError",
    "GenerationError",
    "MnemonicBudgetError",
    "ReferenceFetchError",
    "ReferenceFormatError",
    "SlotCapacityError",
    "SubIndexCollisionError",
]
