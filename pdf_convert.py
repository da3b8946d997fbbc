# pdf_convert.py
# DocuSign template export (JSON metadata + base64 PDFs) -> one merged PDF
# with native AcroForm fields placed where the DocuSign tabs were.
#
# Pipeline: validate -> decode + merge documents (page mapping) -> collect
# recipient tabs -> per tab: map page, classify, rectangle, system filter,
# translate (with text fallback) -> mask header/footer -> save.

import argparse
import base64
import binascii
import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import fitz  # PyMuPDF
from pydantic import BaseModel, Field, ValidationError

from field_translate import (
    FieldTypeRegistry,
    TranslateContext,
    add_text_widget,
    generate_field_name,
    tab_value,
    translate_field,
)
from tab_classify import FieldKind, resolve_kind
from tab_geometry import Rectangle, is_system_tab, tab_page_number, tab_rectangle

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "PDF conversion failed. Please check your file and try again."
RECIPIENT_ROLES = ("signers", "agents", "editors")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


# ---------------------------
# Errors
# ---------------------------
class TemplateConversionError(Exception):
    """Conversion failed as a whole; the message is safe to show to users."""


class TemplateInputError(TemplateConversionError):
    """The template export itself is unusable (shape, documents, options)."""


# ---------------------------
# Options
# ---------------------------
class ConversionOptions(BaseModel):
    includeSystemTabs: bool = False
    showFieldNames: bool = False
    maskHeaderHeight: float = Field(0, ge=0)
    maskFooterHeight: float = Field(0, ge=0)
    fieldWidth: Optional[float] = Field(None, gt=0)
    fieldHeight: Optional[float] = Field(None, gt=0)
    disabledFieldTypes: List[str] = Field(default_factory=list)
    fallbackToText: bool = True

    @classmethod
    def coerce(cls, options: Union["ConversionOptions", Mapping[str, Any], None]) -> "ConversionOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        try:
            return cls.model_validate(dict(options))
        except (ValidationError, TypeError, ValueError) as e:
            raise TemplateInputError(f"Invalid conversion options: {e}") from e


# ---------------------------
# Results
# ---------------------------
@dataclass(frozen=True)
class PageMapping:
    document_id: str
    start_page: int
    end_page: int
    page_count: int


class TabOutcome(str, Enum):
    PLACED = "placed"
    FALLBACK = "fallback"
    SKIPPED_NO_MAPPING = "skipped_no_mapping"
    SKIPPED_PAGE_RANGE = "skipped_page_range"
    SKIPPED_GEOMETRY = "skipped_geometry"
    SKIPPED_SYSTEM = "skipped_system"
    FAILED = "failed"

    @property
    def skipped(self) -> bool:
        return self.value.startswith("skipped")


@dataclass
class FieldTypeCounters:
    text: int = 0
    signature: int = 0
    date: int = 0
    checkbox: int = 0
    radio: int = 0
    dropdown: int = 0
    attachment: int = 0
    other: int = 0

    _BY_KIND = {
        FieldKind.TEXT: "text",
        FieldKind.SIGN_HERE: "signature",
        FieldKind.INITIAL_HERE: "signature",
        FieldKind.CHECKBOX: "checkbox",
        FieldKind.RADIO_GROUP: "radio",
        FieldKind.LIST: "dropdown",
        FieldKind.DATE_SIGNED: "date",
        FieldKind.SIGNER_ATTACHMENT: "attachment",
    }

    def count(self, kind: Optional[FieldKind]):
        name = self._BY_KIND.get(kind, "other")
        setattr(self, name, getattr(self, name) + 1)

    def total(self) -> int:
        return sum(asdict(self).values())

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class TabResult:
    index: int
    collection: str
    tab_type: str
    label: str
    kind: FieldKind
    outcome: TabOutcome
    page_index: Optional[int] = None
    rect: Optional[Rectangle] = None
    field_name: str = ""
    strategy: str = ""
    detail: str = ""

    def as_row(self) -> Dict[str, Any]:
        r = self.rect
        return {
            "index": self.index,
            "collection": self.collection,
            "tab_type": self.tab_type,
            "label": self.label,
            "kind": self.kind.value,
            "outcome": self.outcome.value,
            "page": None if self.page_index is None else self.page_index + 1,
            "left": None if r is None else round(r.left, 2),
            "bottom": None if r is None else round(r.bottom, 2),
            "right": None if r is None else round(r.right, 2),
            "top": None if r is None else round(r.top, 2),
            "field_name": self.field_name,
            "strategy": self.strategy,
            "detail": self.detail,
        }


@dataclass
class ConversionResult:
    pdf_bytes: bytes
    counters: FieldTypeCounters
    tabs: List[TabResult] = field(default_factory=list)
    page_mappings: List[PageMapping] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        if not self.page_mappings:
            return 0
        return self.page_mappings[-1].end_page + 1

    def outcomes(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for t in self.tabs:
            out[t.outcome.value] = out.get(t.outcome.value, 0) + 1
        return out


# ---------------------------
# Input
# ---------------------------
def validate_template(template: Any):
    if not isinstance(template, dict):
        raise TemplateInputError("Invalid template data: expected a JSON object")
    docs = template.get("documents")
    if not isinstance(docs, list):
        raise TemplateInputError("Invalid template data: missing or invalid 'documents' array")
    if not docs:
        raise TemplateInputError("No documents found in template JSON")
    for i, d in enumerate(docs):
        if not isinstance(d, dict):
            raise TemplateInputError(f"Invalid document #{i + 1}: expected an object")
        doc_id = d.get("documentId")
        if doc_id is not None and (isinstance(doc_id, bool) or not isinstance(doc_id, (str, int, float))):
            raise TemplateInputError(f"Invalid document #{i + 1}: documentId must be a string or number")
        for key in ("documentBase64", "documentBase64Bytes"):
            if d.get(key) is not None and not isinstance(d.get(key), str):
                raise TemplateInputError(f"Invalid document #{i + 1}: {key} must be a string")
    recipients = template.get("recipients")
    if recipients is not None and not isinstance(recipients, dict):
        raise TemplateInputError("Invalid template data: 'recipients' must be an object")
    legacy = template.get("recipientTabs")
    if legacy is not None and not isinstance(legacy, list):
        raise TemplateInputError("Invalid template data: 'recipientTabs' must be an array")


def decode_base64(data: str) -> bytes:
    """Strict base64 -> bytes. Whitespace/newlines are tolerated, nothing else."""
    clean = re.sub(r"\s+", "", data or "")
    if not clean or len(clean) % 4 != 0 or not _BASE64_RE.match(clean):
        raise ValueError("document data is not valid base64")
    try:
        return base64.b64decode(clean, validate=True)
    except binascii.Error as e:
        raise ValueError(f"document data is not valid base64: {e}") from e


def open_document(entry: Mapping[str, Any]) -> fitz.Document:
    raw = entry.get("documentBase64") or entry.get("documentBase64Bytes")
    if not raw:
        raise ValueError("document has no base64 content")
    pdf = fitz.open(stream=decode_base64(raw), filetype="pdf")
    if pdf.page_count == 0:
        pdf.close()
        raise ValueError("document has no pages")
    return pdf


def merge_documents(template: Mapping[str, Any]) -> Tuple[fitz.Document, Dict[str, PageMapping]]:
    """
    Concatenate every decodable document, in order, into a fresh PDF.
    Documents that fail to decode are logged and skipped.
    """
    out = fitz.open()
    mappings: Dict[str, PageMapping] = {}
    for entry in template.get("documents") or []:
        doc_id = str(entry.get("documentId"))
        try:
            src = open_document(entry)
        except Exception as e:
            logger.warning("Skipping document %s: %s", doc_id, e)
            continue
        try:
            start = out.page_count
            out.insert_pdf(src)
            mappings[doc_id] = PageMapping(doc_id, start, out.page_count - 1, src.page_count)
        except Exception as e:
            logger.warning("Skipping document %s: could not copy pages: %s", doc_id, e)
        finally:
            src.close()

    if not mappings:
        out.close()
        raise TemplateInputError("No valid PDF documents found in template")
    return out, mappings


def collect_tabs(template: Mapping[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """(collection name, tab) for signers, agents, editors, then legacy recipientTabs."""
    recipients = template.get("recipients") or {}
    for role in RECIPIENT_ROLES:
        for recipient in recipients.get(role) or []:
            if not isinstance(recipient, dict):
                continue
            yield from _tabs_in(recipient.get("tabs") or {})
    for entry in template.get("recipientTabs") or []:
        if isinstance(entry, dict):
            yield from _tabs_in(entry)


def _tabs_in(collections: Any) -> Iterator[Tuple[str, Dict[str, Any]]]:
    if not isinstance(collections, dict):
        return
    for name, tabs in collections.items():
        if not isinstance(tabs, list):
            continue
        for tab in tabs:
            if isinstance(tab, dict):
                yield name, tab


def destination_page(tab: Mapping[str, Any],
                     mappings: Mapping[str, PageMapping]) -> Tuple[Optional[int], Optional[TabOutcome]]:
    doc_id = tab.get("documentId")
    mapping = mappings.get(str(doc_id)) if doc_id not in (None, "") else None
    if mapping is None:
        return None, TabOutcome.SKIPPED_NO_MAPPING
    page_no = tab_page_number(tab)
    if page_no is None:
        return None, TabOutcome.SKIPPED_PAGE_RANGE
    index = mapping.start_page + max(0, page_no - 1)
    if index > mapping.end_page:
        return None, TabOutcome.SKIPPED_PAGE_RANGE
    return index, None


# ---------------------------
# Output helpers
# ---------------------------
def apply_masking(doc: fitz.Document, header_height: float = 0, footer_height: float = 0):
    """Opaque white band across the top and/or bottom of every page."""
    if header_height <= 0 and footer_height <= 0:
        return
    for page in doc:
        r = page.rect
        if header_height > 0:
            band = fitz.Rect(r.x0, r.y0, r.x1, r.y0 + header_height)
            page.draw_rect(band, color=None, fill=(1, 1, 1), overlay=True)
        if footer_height > 0:
            band = fitz.Rect(r.x0, r.y1 - footer_height, r.x1, r.y1)
            page.draw_rect(band, color=None, fill=(1, 1, 1), overlay=True)


def _tab_name_base(tab: Mapping[str, Any], index: int) -> str:
    label = tab.get("tabLabel") or tab.get("name") or tab.get("documentId") or "Field"
    return f"{label}_{index}"


# ---------------------------
# Conversion
# ---------------------------
def _process_tab(index: int,
                 collection: str,
                 tab: Dict[str, Any],
                 doc: fitz.Document,
                 mappings: Mapping[str, PageMapping],
                 opts: ConversionOptions,
                 registry: FieldTypeRegistry,
                 counters: FieldTypeCounters) -> TabResult:
    kind = resolve_kind(tab, collection)
    res = TabResult(
        index=index,
        collection=collection,
        tab_type=str(tab.get("tabType") or tab.get("type") or ""),
        label=str(tab.get("tabLabel") or tab.get("name") or ""),
        kind=kind,
        outcome=TabOutcome.FAILED,
    )

    page_index, skip = destination_page(tab, mappings)
    if skip is not None:
        res.outcome = skip
        res.detail = f"documentId={tab.get('documentId')!r} page={tab.get('pageNumber', tab.get('page'))!r}"
        return res
    res.page_index = page_index

    page = doc[page_index]
    page_height = page.mediabox.height
    rect = tab_rectangle(tab, page_height, kind, opts.fieldWidth, opts.fieldHeight)
    if rect is None:
        res.outcome = TabOutcome.SKIPPED_GEOMETRY
        res.detail = "non-numeric position"
        return res
    res.rect = rect

    if not opts.includeSystemTabs and is_system_tab(tab):
        res.outcome = TabOutcome.SKIPPED_SYSTEM
        return res

    name = generate_field_name(_tab_name_base(tab, index))
    default_value = tab_value(tab)
    if opts.showFieldNames and not default_value:
        default_value = f"[{name}]"
    ctx = TranslateContext(
        field_name=name,
        rect=rect,
        page_height=page_height,
        default_value=default_value,
        field_width=opts.fieldWidth,
        field_height=opts.fieldHeight,
    )

    placement = translate_field(kind, tab, doc, page, ctx, registry) if kind is not FieldKind.UNKNOWN else None
    if placement:
        counters.count(kind)
        res.outcome = TabOutcome.PLACED
        res.field_name = placement.field_name
        res.strategy = placement.strategy
        return res

    # Anything that could not be built as its own kind lands in "other".
    counters.count(None)
    res.field_name = name
    res.detail = placement.reason if placement is not None else "unknown tab type"
    if not opts.fallbackToText:
        return res
    try:
        add_text_widget(page, rect, name, default_value)
        res.outcome = TabOutcome.FALLBACK
        res.strategy = "text"
    except Exception as e:
        logger.warning("Fallback text field failed for %s: %s", name, e)
        res.detail = f"{res.detail}; text fallback: {e}"
    return res


def convert_template(template: Any,
                     options: Union[ConversionOptions, Mapping[str, Any], None] = None,
                     registry: Optional[FieldTypeRegistry] = None) -> ConversionResult:
    """
    Convert a parsed DocuSign template export. Raises TemplateInputError for
    unusable input and TemplateConversionError (generic message) when the
    PDF cannot be produced. Per-tab problems never abort the run; they are
    reported in ConversionResult.tabs.
    """
    validate_template(template)
    opts = ConversionOptions.coerce(options)
    if registry is None:
        try:
            registry = FieldTypeRegistry(disabled=opts.disabledFieldTypes)
        except ValueError as e:
            raise TemplateInputError(str(e)) from e

    doc, mappings = merge_documents(template)
    counters = FieldTypeCounters()
    results: List[TabResult] = []
    try:
        for index, (collection, tab) in enumerate(collect_tabs(template)):
            r = _process_tab(index, collection, tab, doc, mappings, opts, registry, counters)
            logger.debug("tab %d %s/%s -> %s %s", index, collection, r.kind.value, r.outcome.value, r.detail)
            results.append(r)

        try:
            apply_masking(doc, opts.maskHeaderHeight, opts.maskFooterHeight)
            if doc.is_form_pdf:
                doc.need_appearances(True)
            pdf_bytes = doc.tobytes(garbage=3, deflate=True)
        except Exception as e:
            logger.exception("Saving converted PDF failed")
            raise TemplateConversionError(GENERIC_FAILURE) from e
    finally:
        doc.close()

    return ConversionResult(
        pdf_bytes=pdf_bytes,
        counters=counters,
        tabs=results,
        page_mappings=sorted(mappings.values(), key=lambda m: m.start_page),
    )


def convert_to_pdf(template: Any,
                   options: Union[ConversionOptions, Mapping[str, Any], None] = None) -> bytes:
    return convert_template(template, options).pdf_bytes


def load_template(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise TemplateInputError(f"Template is not valid JSON: {e}") from e


# ---------------------------
# CLI
# ---------------------------
def _ensure_parent_dir(path: str):
    d = os.path.dirname(os.path.abspath(path))
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def _why_skip(res: TabResult, verbose: bool):
    if verbose:
        page = "?" if res.page_index is None else res.page_index + 1
        print(f"[SKIP] p{page} '{res.label}' ({res.collection}#{res.index}) -> {res.outcome.value} {res.detail}".rstrip())


def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="DocuSign template JSON -> fillable PDF")
    ap.add_argument("--input", required=True, help="DocuSign template export (.json)")
    ap.add_argument("--output", required=True, help="Output PDF path")
    ap.add_argument("--options", metavar="JSON", help="JSON file with conversion options")
    ap.add_argument("--include-system-tabs", action="store_true", help="Keep DocuSign system/hidden tabs")
    ap.add_argument("--show-field-names", action="store_true", help="Use [field name] as placeholder for empty tabs")
    ap.add_argument("--mask-header", type=float, default=None, help="Height (pt) of white band over page headers")
    ap.add_argument("--mask-footer", type=float, default=None, help="Height (pt) of white band over page footers")
    ap.add_argument("--field-width", type=float, default=None, help="Default text field width (pt)")
    ap.add_argument("--field-height", type=float, default=None, help="Default text field height (pt)")
    ap.add_argument("--disable", action="append", default=[], metavar="KIND",
                    help="Disable a field type (e.g. checkbox or checkboxTabs); repeatable")
    ap.add_argument("--report", metavar="PATH", help="Also write a per-tab report (.csv or .xlsx)")
    ap.add_argument("--verbose", action="store_true", help="Print skipped tabs and debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    raw_opts: Dict[str, Any] = {}
    if args.options:
        with open(args.options, "r", encoding="utf-8") as f:
            raw_opts.update(json.load(f))
    if args.include_system_tabs:
        raw_opts["includeSystemTabs"] = True
    if args.show_field_names:
        raw_opts["showFieldNames"] = True
    for flag, key in ((args.mask_header, "maskHeaderHeight"), (args.mask_footer, "maskFooterHeight"),
                      (args.field_width, "fieldWidth"), (args.field_height, "fieldHeight")):
        if flag is not None:
            raw_opts[key] = flag
    if args.disable:
        raw_opts["disabledFieldTypes"] = list(raw_opts.get("disabledFieldTypes") or []) + args.disable

    try:
        template = load_template(args.input)
        result = convert_template(template, raw_opts)
    except TemplateConversionError as e:
        print(f"❌ {e}")
        raise SystemExit(1)

    _ensure_parent_dir(args.output)
    with open(args.output, "wb") as f:
        f.write(result.pdf_bytes)

    for res in result.tabs:
        if res.outcome.skipped:
            _why_skip(res, args.verbose)

    print(f"📄 Merged {len(result.page_mappings)} document(s), {result.page_count} page(s)")
    counts = ", ".join(f"{k}={v}" for k, v in result.counters.as_dict().items() if v)
    print(f"🧩 Fields: {result.counters.total()} ({counts or 'none'})")
    skipped = sum(1 for t in result.tabs if t.outcome.skipped)
    if skipped:
        print(f"⚠️  Skipped {skipped} tab(s){'' if args.verbose else ' (use --verbose for details)'}")
    print(f"✅ PDF written to {args.output}")

    if args.report:
        from field_report import export_tab_report
        export_tab_report(result, args.report)


if __name__ == "__main__":
    main()
