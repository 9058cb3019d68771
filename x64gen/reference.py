"""
Reading the x86 instruction reference (``x86reference.xml`` from ref.x86asm.net).

Only the fields the table compiler consumes are kept: the opcode category, the
primary byte, the opcode extension / secondary opcode / mandatory prefix that
disambiguate entries sharing a primary byte, the syntax alternatives, and the
applicability attributes (``mode``, ``ring``).
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

import requests

from .errors import ReferenceFetchError, ReferenceFormatError

logger = logging.getLogger(__name__)


class Category(str, Enum):
    """Opcode map an entry belongs to; values are the XML section names."""

    ONE_BYTE = "one-byte"
    TWO_BYTE = "two-byte"

    @property
    def index_base(self) -> int:
        return 0 if self is Category.ONE_BYTE else 0x100


@dataclass(frozen=True, slots=True)
class Operand:
    role: str  # "dst" or "src"
    address: Optional[str] = None
    type: Optional[str] = None
    text: str = ""
    displayed: bool = True

    def describe(self) -> str:
        if self.address is not None:
            return f"{self.address}{self.type or ''}"
        return self.text or "?"


@dataclass(frozen=True, slots=True)
class Syntax:
    mnemonic: str
    operands: Tuple[Operand, ...] = ()


@dataclass(frozen=True, slots=True)
class RawEntry:
    category: Category
    primary_byte: int
    syntaxes: Tuple[Syntax, ...] = ()
    extension: Optional[int] = None
    secondary: Optional[int] = None
    prefix: Optional[str] = None
    mode: Optional[str] = None
    ring: Optional[str] = None

    @property
    def primary_index(self) -> int:
        return self.category.index_base + self.primary_byte

    def first_syntax(self) -> Optional[Syntax]:
        """Return the first syntax alternative that names a mnemonic."""

        for syntax in self.syntaxes:
            if syntax.mnemonic:
                return syntax
        return None

    def describe(self) -> str:
        parts = []
        if self.prefix:
            parts.append(self.prefix)
        if self.category is Category.TWO_BYTE:
            parts.append("0F")
        parts.append(f"{self.primary_byte:02X}")
        if self.secondary is not None:
            parts.append(f"{self.secondary:02X}")
        text = " ".join(parts)
        if self.extension is not None:
            text += f" /{self.extension}"
        return text


def _parse_hex(raw: Optional[str], what: str, *, limit: int = 0xFF) -> int:
    if raw is None:
        raise ReferenceFormatError(f"missing {what}")
    try:
        value = int(raw.strip(), 16)
    except ValueError as exc:
        raise ReferenceFormatError(f"{what} is not hexadecimal: {raw!r}") from exc
    if not 0 <= value <= limit:
        raise ReferenceFormatError(f"{what} out of range: {raw!r}")
    return value


def _parse_operand(node: ET.Element) -> Operand:
    address = node.findtext("a")
    type_code = node.findtext("t")
    if address is None:
        address = node.get("address")
    if type_code is None:
        type_code = node.get("type")
    return Operand(
        role=node.tag,
        address=address.strip() if address else None,
        type=type_code.strip() if type_code else None,
        text=(node.text or "").strip(),
        displayed=node.get("displayed", "yes") != "no",
    )


def _parse_syntax(node: ET.Element) -> Syntax:
    mnemonic = (node.findtext("mnem") or "").strip()
    operands = tuple(
        _parse_operand(child) for child in node if child.tag in ("dst", "src")
    )
    return Syntax(mnemonic=mnemonic, operands=operands)


def _parse_entry(category: Category, primary: int, node: ET.Element) -> RawEntry:
    extension: Optional[int] = None
    ext_text = node.findtext("opcd_ext")
    if ext_text is not None:
        try:
            extension = int(ext_text.strip())
        except ValueError as exc:
            raise ReferenceFormatError(
                f"opcd_ext of {category.value} {primary:02X} is not a number: {ext_text!r}"
            ) from exc
        if not 0 <= extension <= 7:
            raise ReferenceFormatError(
                f"opcd_ext of {category.value} {primary:02X} out of range: {extension}"
            )

    secondary: Optional[int] = None
    sec_text = node.findtext("sec_opcd")
    if sec_text is not None:
        secondary = _parse_hex(sec_text, f"sec_opcd of {category.value} {primary:02X}")

    prefix = node.findtext("pref")
    if prefix is not None:
        prefix = prefix.strip().upper() or None

    return RawEntry(
        category=category,
        primary_byte=primary,
        syntaxes=tuple(_parse_syntax(s) for s in node.findall("syntax")),
        extension=extension,
        secondary=secondary,
        prefix=prefix,
        mode=node.get("mode"),
        ring=node.get("ring"),
    )


def parse_reference(source: Union[str, bytes]) -> List[RawEntry]:
    """Parse a reference document into raw entries, in document order."""

    try:
        root = ET.fromstring(source)
    except ET.ParseError as exc:
        raise ReferenceFormatError(f"reference is not well-formed XML: {exc}") from exc

    entries: List[RawEntry] = []
    for category in Category:
        for section in root.iter(category.value):
            for pri in section.findall("pri_opcd"):
                primary = _parse_hex(pri.get("value"), f"{category.value} pri_opcd value")
                for node in pri.findall("entry"):
                    entries.append(_parse_entry(category, primary, node))
    logger.debug("parsed %d reference entries", len(entries))
    return entries


def load_reference(path: Union[str, Path]) -> List[RawEntry]:
    return parse_reference(Path(path).read_bytes())


def fetch_reference(
    url: str,
    path: Union[str, Path],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 60.0,
) -> Path:
    """Download the reference to ``path`` unless a cached copy already exists."""

    path = Path(path)
    if path.exists():
        logger.debug("using cached reference %s", path)
        return path

    logger.info("Local x64 reference does not exist, downloading %s", url)
    http = session if session is not None else requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ReferenceFetchError(f"failed to download {url}: {exc}") from exc

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(response.content)
    logger.info("written reference to %s", path)
    return path


__all__ = [
    "Category",
    "Operand",
    "RawEntry",
    "Syntax",
    "fetch_reference",
    "load_reference",
    "parse_reference",
]
