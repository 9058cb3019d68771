from __future__ import annotations

import pytest
import requests

from x64gen.errors import ReferenceFetchError, ReferenceFormatError
from x64gen.reference import Category, fetch_reference, load_reference, parse_reference

from .builders import entry_xml, reference_xml

SNIPPET = """<?xml version="1.0"?>
<x86reference version="1.12">
  <one-byte>
    <pri_opcd value="0F">
      <entry mode="e" ring="3" attr="invd">
        <pref>f3</pref>
        <sec_opcd>c8</sec_opcd>
        <syntax>
          <mnem>MNEM</mnem>
          <dst><a>E</a><t>vqp</t></dst>
          <src address="I" type="b"/>
          <src nr="0" group="gen" type="b" displayed="no">AL</src>
        </syntax>
        <syntax><mnem>ALT</mnem></syntax>
      </entry>
    </pri_opcd>
  </one-byte>
  <two-byte>
    <pri_opcd value="BA">
      <entry><opcd_ext>4</opcd_ext><syntax><mnem>BT</mnem></syntax></entry>
    </pri_opcd>
  </two-byte>
</x86reference>
"""


class _Response:
    def __init__(self, content: bytes, status: int = 200) -> None:
        self.content = content
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class _Session:
    def __init__(self, response=None, error=None) -> None:
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_parse_reference_fields() -> None:
    one, two = parse_reference(SNIPPET)
    assert one.category is Category.ONE_BYTE
    assert one.primary_byte == 0x0F
    assert one.prefix == "F3"
    assert one.secondary == 0xC8
    assert one.extension is None
    assert (one.mode, one.ring) == ("e", "3")
    syntax = one.first_syntax()
    assert syntax.mnemonic == "MNEM"
    dst, imm, al = syntax.operands
    assert (dst.role, dst.address, dst.type) == ("dst", "E", "vqp")
    assert (imm.address, imm.type) == ("I", "b")
    assert al.text == "AL" and not al.displayed
    assert [s.mnemonic for s in one.syntaxes] == ["MNEM", "ALT"]
    assert one.describe() == "F3 0F C8"

    assert two.category is Category.TWO_BYTE
    assert two.primary_index == 0x1BA
    assert two.extension == 4
    assert two.describe() == "0F BA /4"


def test_malformed_xml_is_rejected() -> None:
    with pytest.raises(ReferenceFormatError):
        parse_reference("<x86reference><one-byte>")


@pytest.mark.parametrize(
    "entry",
    [
        entry_xml("ADD", ext=9),
        "<entry><opcd_ext>x</opcd_ext><syntax><mnem>ADD</mnem></syntax></entry>",
        "<entry><sec_opcd>zz</sec_opcd><syntax><mnem>ADD</mnem></syntax></entry>",
        "<entry><sec_opcd>1FF</sec_opcd><syntax><mnem>ADD</mnem></syntax></entry>",
    ],
)
def test_bad_entry_fields_are_rejected(entry) -> None:
    with pytest.raises(ReferenceFormatError):
        parse_reference(reference_xml(one_byte=[(0x00, [entry])]))


def test_bad_primary_value_is_rejected() -> None:
    with pytest.raises(ReferenceFormatError):
        parse_reference('<x86reference><one-byte><pri_opcd value="G0"/></one-byte></x86reference>')


def test_load_reference(tmp_path) -> None:
    path = tmp_path / "ref.xml"
    path.write_text(SNIPPET, encoding="utf-8")
    assert len(load_reference(path)) == 2


def test_fetch_uses_cached_copy(tmp_path) -> None:
    path = tmp_path / "ref.xml"
    path.write_text(SNIPPET, encoding="utf-8")
    session = _Session(error=AssertionError("network used"))
    assert fetch_reference("http://example.invalid/ref.xml", path, session=session) == path
    assert session.calls == []


def test_fetch_downloads_missing_reference(tmp_path) -> None:
    path = tmp_path / "cache" / "ref.xml"
    session = _Session(response=_Response(SNIPPET.encode()))
    result = fetch_reference("http://example.invalid/ref.xml", path, session=session, timeout=5)
    assert result == path
    assert path.read_text(encoding="utf-8") == SNIPPET
    assert session.calls == [("http://example.invalid/ref.xml", 5)]


@pytest.mark.parametrize(
    "session",
    [
        _Session(error=requests.ConnectionError("unreachable")),
        _Session(response=_Response(b"", status=404)),
    ],
)
def test_fetch_failures(tmp_path, session) -> None:
    path = tmp_path / "ref.xml"
    with pytest.raises(ReferenceFetchError):
        fetch_reference("http://example.invalid/ref.xml", path, session=session)
    assert not path.exists()
