"""
pytest configuration and shared fixtures

Usage:
    def test_something(make_template, two_page_b64):
        template = make_template([("1", two_page_b64)], {"textTabs": [...]})
"""

import base64
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import fitz
import pytest

PAGE_WIDTH = 612
PAGE_HEIGHT = 792


# ============================================================================
# PDF fixtures
# ============================================================================

def build_pdf(pages: int = 1, width: float = PAGE_WIDTH, height: float = PAGE_HEIGHT) -> bytes:
    """A small PDF with `pages` blank pages, each labelled with its number."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"Page {i + 1}", fontsize=12)
    data = doc.tobytes()
    doc.close()
    return data


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def one_page_b64() -> str:
    return b64(build_pdf(1))


@pytest.fixture
def two_page_b64() -> str:
    return b64(build_pdf(2))


@pytest.fixture
def blank_doc():
    """Open single-page letter-size document, closed after the test."""
    doc = fitz.open()
    doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    yield doc
    doc.close()


# ============================================================================
# Template fixtures
# ============================================================================

@pytest.fixture
def make_template() -> Callable[..., Dict[str, Any]]:
    """Builder: documents as (documentId, base64) pairs, tabs as a signer tab map."""

    def _make(documents: List[Tuple[str, str]],
              tabs: Optional[Dict[str, List[Dict[str, Any]]]] = None,
              legacy: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        template: Dict[str, Any] = {
            "documents": [{"documentId": d, "documentBase64": data} for d, data in documents],
            "recipients": {"signers": [{"recipientId": "1", "tabs": tabs or {}}]},
        }
        if legacy is not None:
            template["recipientTabs"] = legacy
        return template

    return _make


def _widget_rows(doc: fitz.Document) -> List[Dict[str, Any]]:
    rows = []
    for page in doc:
        for w in page.widgets():
            rows.append({
                "page": page.number,
                "type": w.field_type,
                "name": w.field_name,
                "value": w.field_value,
                "rect": tuple(round(v, 1) for v in w.rect),
                "choices": w.choice_values,
                "flags": w.field_flags,
            })
    return rows


@pytest.fixture
def read_widgets() -> Callable[[Any], List[Dict[str, Any]]]:
    """Snapshot every widget of a saved PDF (bytes) or an open document."""

    def _read(pdf: Any) -> List[Dict[str, Any]]:
        if isinstance(pdf, (bytes, bytearray)):
            doc = fitz.open(stream=bytes(pdf), filetype="pdf")
            try:
                return _widget_rows(doc)
            finally:
                doc.close()
        return _widget_rows(pdf)

    return _read


_AP_NAME = re.compile(r"/([^\s/<>\[\]()]+)\s+\d+\s+\d+\s+R")


def _radio_rows(doc: fitz.Document) -> List[Dict[str, Any]]:
    rows = []
    for page in doc:
        for w in page.widgets(types=[fitz.PDF_WIDGET_TYPE_RADIOBUTTON]):
            kind, ap = doc.xref_get_key(w.xref, "AP/N")
            if kind == "xref":
                ap = doc.xref_object(int(ap.split()[0]), compressed=True)
            kind, parent = doc.xref_get_key(w.xref, "Parent")
            parent_xref = int(parent.split()[0]) if kind == "xref" else 0
            rows.append({
                "name": w.field_name,
                "rect": tuple(round(v, 1) for v in w.rect),
                "parent": parent_xref,
                "group_value": doc.xref_get_key(parent_xref, "V")[1] if parent_xref else None,
                "on_states": [n for n in _AP_NAME.findall(ap) if n != "Off"],
                "state": doc.xref_get_key(w.xref, "AS")[1],
            })
    return rows


@pytest.fixture
def read_radios() -> Callable[[bytes], List[Dict[str, Any]]]:
    """Radio widgets of a saved PDF with their parent field, on-states and /AS."""

    def _read(pdf: bytes) -> List[Dict[str, Any]]:
        doc = fitz.open(stream=bytes(pdf), filetype="pdf")
        try:
            return _radio_rows(doc)
        finally:
            doc.close()

    return _read
