# field_translate.py
# Per-kind construction of AcroForm fields with PyMuPDF.
#
# translate_field() is the single entry point: it checks the per-conversion
# FieldTypeRegistry, validates the tab for its kind, then runs the kind's
# translator. Translators that can fail in more than one way run an ordered
# list of strategies (specialised -> styled text -> bare text); the first one
# that attaches a field wins.

import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from tab_classify import (
    COLLECTION_NAMES,
    FieldKind,
    SIGNATURE_KINDS,
    known_kinds,
    parse_kind,
)
from tab_geometry import Rectangle, tab_label, tab_rectangle

logger = logging.getLogger(__name__)

# ---------------------------
# Constants
# ---------------------------
MAX_FIELD_NAME_LENGTH = 60
DEFAULT_FONT = "Helv"
DEFAULT_FONT_SIZE = 12
DATE_FORMAT = "%m/%d/%Y"

BLACK = (0, 0, 0)
WHITE = (1, 1, 1)


@dataclass(frozen=True)
class SignatureStyle:
    min_size: Tuple[float, float]
    font_size: int
    fill_gray: float
    placeholder: str


SIGNATURE_STYLES: Dict[FieldKind, SignatureStyle] = {
    FieldKind.SIGN_HERE: SignatureStyle((120.0, 20.0), 12, 0.95, "[SIGN HERE]"),
    FieldKind.STAMP: SignatureStyle((120.0, 20.0), 12, 0.95, "[SIGN HERE]"),
    FieldKind.INITIAL_HERE: SignatureStyle((100.0, 25.0), 10, 0.97, "[INITIAL HERE]"),
}
SIGNATURE_FALLBACK_TEXT = "[Signature Required]"

CHECKBOX_MIN_SIZE = (12.0, 12.0)
CHECKED_TEXT = "[✓]"
UNCHECKED_TEXT = "[ ]"

PLACEHOLDERS: Dict[FieldKind, str] = {
    FieldKind.FULL_NAME: "[FULL NAME]",
    FieldKind.COMPANY: "[COMPANY]",
    FieldKind.TITLE: "[TITLE]",
    FieldKind.EMAIL_ADDRESS: "[EMAIL]",
    FieldKind.NUMERICAL: "[NUMBER]",
}
ATTACHMENT_PLACEHOLDER = "[Attachment File Name]"
ATTACHMENT_DESCRIBED_PLACEHOLDER = "[File Name/Description]"
_ATTACHMENT_DESCRIBED_HINTS = ("upload", "lox", "loe", "cel", "udn")

FONT_COLORS: Dict[str, Tuple[float, float, float]] = {
    "black": (0, 0, 0),
    "red": (1, 0, 0),
    "green": (0, 1, 0),
    "blue": (0, 0, 1),
}

_NAME_BAD_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_PDF_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------
# Results / context
# ---------------------------
@dataclass
class FieldPlacement:
    """Outcome of one translation. Truthy when a field was attached."""
    ok: bool
    field_name: str = ""
    strategy: str = ""
    reason: str = ""

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class TranslateContext:
    """Everything a translator needs besides the tab, the document and the page."""
    field_name: str
    rect: Rectangle
    page_height: float
    default_value: str = ""
    field_width: Optional[float] = None
    field_height: Optional[float] = None


# ---------------------------
# Small helpers
# ---------------------------
def is_true(v: Any) -> bool:
    return v is True or (isinstance(v, str) and v.strip().lower() == "true")


def tab_value(tab: Mapping[str, Any]) -> str:
    for key in ("value", "defaultValue"):
        v = tab.get(key)
        if v is not None and str(v) != "":
            return str(v)
    return ""


def font_size_from_tab(tab: Mapping[str, Any], default: int = DEFAULT_FONT_SIZE) -> int:
    """DocuSign 'size9' -> 9."""
    raw = tab.get("fontSize")
    if not isinstance(raw, str):
        return default
    m = re.search(r"size(\d+)", raw, re.IGNORECASE)
    return int(m.group(1)) if m else default


def font_color_from_tab(tab: Mapping[str, Any]) -> Tuple[float, float, float]:
    raw = tab.get("fontColor")
    if not isinstance(raw, str):
        return BLACK
    return FONT_COLORS.get(raw.strip().lower(), BLACK)


def generate_field_name(base: Optional[str], max_len: int = MAX_FIELD_NAME_LENGTH) -> str:
    """
    PDF-safe, collision-resistant field name:
    '<sanitised base>_<epoch ms>_<5 random chars>', never longer than max_len.
    """
    clean = _NAME_BAD_CHARS.sub("_", str(base or "").strip()) or "field"
    suffix = f"_{int(time.time() * 1000)}_{uuid.uuid4().hex[:5]}"
    room = max(1, max_len - len(suffix))
    return (clean[:room] + suffix)[:max_len]


def _pdf_rect(page: fitz.Page, rect: Rectangle) -> fitz.Rect:
    """Rectangle (relative to the mediabox origin) -> raw PDF coordinates."""
    mb = page.mediabox
    return fitz.Rect(rect.left + mb.x0, rect.bottom + mb.y0,
                     rect.right + mb.x0, rect.top + mb.y0)


def to_page_rect(page: fitz.Page, rect: Rectangle) -> fitz.Rect:
    """PDF user space (bottom-left origin) -> PyMuPDF page space (top-left origin)."""
    return _pdf_rect(page, rect) * page.transformation_matrix


# ---------------------------
# Widget builders
# ---------------------------
def add_text_widget(page: fitz.Page,
                    rect: Rectangle,
                    name: str,
                    value: str = "",
                    font_size: int = DEFAULT_FONT_SIZE,
                    text_color: Tuple[float, float, float] = BLACK,
                    tooltip: str = "",
                    required: bool = False,
                    border_color: Optional[Tuple[float, ...]] = None,
                    border_width: float = 1,
                    fill_color: Optional[Tuple[float, ...]] = None) -> fitz.Widget:
    w = fitz.Widget()
    w.field_type = fitz.PDF_WIDGET_TYPE_TEXT
    w.field_name = name
    w.field_label = tooltip or name
    w.rect = to_page_rect(page, rect)
    w.text_font = DEFAULT_FONT
    w.text_fontsize = font_size
    w.text_color = text_color
    w.field_value = value or ""
    if border_color is not None:
        w.border_color = border_color
        w.border_width = border_width
    if fill_color is not None:
        w.fill_color = fill_color
    if required:
        w.field_flags |= fitz.PDF_FIELD_IS_REQUIRED
    page.add_widget(w)
    return w


def add_checkbox_widget(page: fitz.Page, rect: Rectangle, name: str, checked: bool) -> fitz.Widget:
    w = fitz.Widget()
    w.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
    w.field_name = name
    w.field_label = name
    w.rect = to_page_rect(page, rect)
    w.border_color = BLACK
    w.border_width = 1
    w.fill_color = WHITE
    w.text_color = BLACK
    w.field_value = bool(checked)
    page.add_widget(w)
    return w


def add_radio_widget(page: fitz.Page, rect: Rectangle, group: str, value: str) -> int:
    """Add one unselected option of radio group `group`. Returns its xref."""
    w = fitz.Widget()
    w.field_type = fitz.PDF_WIDGET_TYPE_RADIOBUTTON
    w.field_name = group
    w.field_label = value
    w.rect = to_page_rect(page, rect)
    w.border_color = BLACK
    w.fill_color = WHITE
    w.text_color = BLACK
    w.field_value = False
    return page.add_widget(w).xref


def add_combo_widget(page: fitz.Page, rect: Rectangle, name: str, choices: List[str],
                     value: str, font_size: int = DEFAULT_FONT_SIZE) -> fitz.Widget:
    w = fitz.Widget()
    w.field_type = fitz.PDF_WIDGET_TYPE_COMBOBOX
    w.field_name = name
    w.field_label = name
    w.rect = to_page_rect(page, rect)
    w.text_font = DEFAULT_FONT
    w.text_fontsize = font_size
    w.text_color = BLACK
    w.choice_values = choices
    if value:
        w.field_value = value
    page.add_widget(w)
    return w


# ---------------------------
# Low-level signature objects
# ---------------------------
def _append_reference(doc: fitz.Document, xref: int, key: str, ref_xref: int):
    """Append 'ref_xref 0 R' to the array stored under `key` of object `xref`."""
    ref = f"{ref_xref} 0 R"
    kind, value = doc.xref_get_key(xref, key)
    if kind == "array":
        doc.xref_set_key(xref, key, value.rstrip()[:-1] + f" {ref}]")
    elif kind == "xref":
        arr_xref = int(value.split()[0])
        body = doc.xref_object(arr_xref, compressed=True).rstrip()
        doc.update_object(arr_xref, body[:-1] + f" {ref}]")
    elif kind == "null":
        doc.xref_set_key(xref, key, f"[{ref}]")
    else:
        raise ValueError(f"/{key} of object {xref} is not an array ({kind})")


def _acroform_target(doc: fitz.Document) -> Tuple[int, str]:
    """(xref, key) of the AcroForm /Fields array, creating the form if needed."""
    cat = doc.pdf_catalog()
    kind, value = doc.xref_get_key(cat, "AcroForm")
    if kind == "xref":
        return int(value.split()[0]), "Fields"
    if kind == "dict":
        return cat, "AcroForm/Fields"
    form_xref = doc.get_new_xref()
    doc.update_object(form_xref, "<</Fields[]/NeedAppearances true>>")
    doc.xref_set_key(cat, "AcroForm", f"{form_xref} 0 R")
    return form_xref, "Fields"


def add_signature_field(doc: fitz.Document, page: fitz.Page, rect: Rectangle, name: str,
                        style: SignatureStyle) -> Rectangle:
    """
    Register an unsigned /Sig field-widget in the page /Annots and the
    AcroForm /Fields. Returns the (minimum-size clamped) rectangle used.
    """
    if not name or not _PDF_SAFE_NAME.match(name):
        raise ValueError(f"Invalid signature field name: {name!r}")
    if not doc.is_pdf:
        raise ValueError("signature fields need a PDF document")

    r = rect.with_min_size(*style.min_size)
    raw = _pdf_rect(page, r)
    g = style.fill_gray
    obj = (
        "<</Type/Annot/Subtype/Widget/FT/Sig"
        f"/T({name})/Ff 0/F 4"
        f"/Rect[{raw.x0:.4f} {raw.y0:.4f} {raw.x1:.4f} {raw.y1:.4f}]"
        f"/P {page.xref} 0 R"
        f"/MK<</BC[0 0 0]/BG[{g:.2f}]>>"
        f"/DA(/{DEFAULT_FONT} {style.font_size} Tf 0 g)>>"
    )
    xref = doc.get_new_xref()
    doc.update_object(xref, obj)
    form_xref, key = _acroform_target(doc)
    _append_reference(doc, form_xref, key, xref)
    try:
        _append_reference(doc, page.xref, "Annots", xref)
    except Exception:
        _remove_references(doc, form_xref, key, [xref])
        raise
    return r


# ---------------------------
# Radio groups
# ---------------------------
RADIO_FIELD_FLAGS = fitz.PDF_BTN_FIELD_IS_RADIO | fitz.PDF_BTN_FIELD_IS_NO_TOGGLE_TO_OFF
_AP_ENTRY = re.compile(r"/([^\s/<>\[\]()]+)\s+(\d+\s+\d+\s+R)")
_NAME_PLAIN_CHAR = re.compile(r"[A-Za-z0-9_.-]")


def _pdf_name(value: str) -> str:
    """`value` as a PDF name token (no slash), #-escaping everything else."""
    return "".join(
        ch if _NAME_PLAIN_CHAR.match(ch) else "".join(f"#{b:02X}" for b in ch.encode("utf-8"))
        for ch in value
    )


def radio_on_states(values: Sequence[str]) -> List[str]:
    """One distinct on-state name per option value. 'Off' is reserved."""
    states: List[str] = []
    for i, value in enumerate(values):
        name = _pdf_name(value) or f"option_{i}"
        if name == "Off" or name in states:
            name = f"{name}_{i}"
        states.append(name)
    return states


def _remove_references(doc: fitz.Document, xref: int, key: str, ref_xrefs: Sequence[int]):
    """Drop every 'n 0 R' for n in `ref_xrefs` from the array under `key` of `xref`."""
    if not ref_xrefs:
        return
    pattern = re.compile(r"(?<!\d)(?:%s)\s+0\s+R" % "|".join(str(r) for r in ref_xrefs))
    kind, value = doc.xref_get_key(xref, key)
    if kind == "array":
        doc.xref_set_key(xref, key, pattern.sub("", value))
    elif kind == "xref":
        arr_xref = int(value.split()[0])
        doc.update_object(arr_xref, pattern.sub("", doc.xref_object(arr_xref, compressed=True)))


def _rename_on_state(doc: fitz.Document, xref: int, on_state: str):
    """Re-key the non-Off appearance streams of a button widget to `on_state`."""
    for key in ("AP/N", "AP/D"):
        kind, value = doc.xref_get_key(xref, key)
        target = 0
        if kind == "xref":
            target = int(value.split()[0])
            if doc.xref_is_stream(target):
                raise ValueError(f"radio widget {xref} has a single-state appearance")
            value = doc.xref_object(target, compressed=True)
        elif kind != "dict":
            if key == "AP/N":
                raise ValueError(f"radio widget {xref} has no appearance")
            continue
        entries = _AP_ENTRY.findall(value)
        if not any(name != "Off" for name, _ in entries):
            raise ValueError(f"radio widget {xref} has no on-state in /{key}")
        body = "<<" + "".join(
            f"/{'Off' if name == 'Off' else on_state} {ref}" for name, ref in entries
        ) + ">>"
        if target:
            doc.update_object(target, body)
        else:
            doc.xref_set_key(xref, key, body)


def link_radio_group(doc: fitz.Document, group: str, options: Sequence[Tuple[int, str]],
                     selected: Optional[str] = None) -> int:
    """
    Put the option widgets (xref, on-state) under one radio field named `group`.

    The parent carries /T, /FT, /Ff and /V; each option keeps only its widget
    keys, its own on-state and /AS. The parent replaces the options in the
    AcroForm /Fields. Returns the parent xref.
    """
    if not group or not _PDF_SAFE_NAME.match(group):
        raise ValueError(f"Invalid radio group name: {group!r}")
    if selected is not None and selected not in {s for _, s in options}:
        raise ValueError(f"{selected!r} is not an option of {group}")

    kids = " ".join(f"{xref} 0 R" for xref, _ in options)
    parent = doc.get_new_xref()
    doc.update_object(
        parent,
        f"<</FT/Btn/Ff {RADIO_FIELD_FLAGS}/T({group})/V/{selected or 'Off'}/Kids[{kids}]>>",
    )
    for xref, state in options:
        _rename_on_state(doc, xref, state)
        for key in ("T", "FT", "Ff", "V", "DV"):
            doc.xref_set_key(xref, key, "null")
        doc.xref_set_key(xref, "Parent", f"{parent} 0 R")
        doc.xref_set_key(xref, "AS", f"/{state}" if state == selected else "/Off")

    form_xref, key = _acroform_target(doc)
    _remove_references(doc, form_xref, key, [xref for xref, _ in options])
    _append_reference(doc, form_xref, key, parent)
    return parent


def remove_radio_group(page: fitz.Page, group: str) -> int:
    """Delete every radio widget of `group` from `page`. Returns how many went."""
    xrefs = [w.xref for w in page.widgets(types=[fitz.PDF_WIDGET_TYPE_RADIOBUTTON])
             if w.field_name == group]
    removed = 0
    for xref in xrefs:
        try:
            page.delete_widget(page.load_widget(xref))
            removed += 1
        except Exception as e:
            logger.warning("could not remove radio widget %s of %s: %s", xref, group, e)
    return removed


def run_strategies(strategies: Sequence[Tuple[str, Callable[[], Any]]],
                   field_name: str) -> FieldPlacement:
    """Try each (label, fn) in order; the first that does not raise wins."""
    errors: List[str] = []
    for label, fn in strategies:
        try:
            fn()
            if errors:
                logger.info("field %s placed via %s after: %s", field_name, label, "; ".join(errors))
            return FieldPlacement(True, field_name=field_name, strategy=label)
        except Exception as e:
            logger.warning("field %s: %s failed: %s", field_name, label, e)
            errors.append(f"{label}: {e}")
    return FieldPlacement(False, field_name=field_name, reason="; ".join(errors))


# ---------------------------
# Translators
# ---------------------------
def placeholder_for(kind: FieldKind, tab: Mapping[str, Any]) -> str:
    if kind is FieldKind.DATE_SIGNED:
        return date.today().strftime(DATE_FORMAT)
    if kind is FieldKind.SIGNER_ATTACHMENT:
        label = tab_label(tab).lower()
        if any(h in label for h in _ATTACHMENT_DESCRIBED_HINTS):
            return ATTACHMENT_DESCRIBED_PLACEHOLDER
        return ATTACHMENT_PLACEHOLDER
    return PLACEHOLDERS.get(kind, "")


def translate_text_like(kind: FieldKind, tab: Mapping[str, Any], doc: fitz.Document,
                        page: fitz.Page, ctx: TranslateContext) -> FieldPlacement:
    value = tab_value(tab) or ctx.default_value or placeholder_for(kind, tab)

    def _place():
        add_text_widget(page, ctx.rect, ctx.field_name, value,
                        font_size=font_size_from_tab(tab),
                        text_color=font_color_from_tab(tab),
                        tooltip=tab_label(tab))

    return run_strategies([("text", _place)], ctx.field_name)


def translate_signature(kind: FieldKind, tab: Mapping[str, Any], doc: fitz.Document,
                        page: fitz.Page, ctx: TranslateContext) -> FieldPlacement:
    style = SIGNATURE_STYLES.get(kind, SIGNATURE_STYLES[FieldKind.SIGN_HERE])
    rect = ctx.rect.with_min_size(*style.min_size)
    placeholder = style.placeholder
    if "initial" in ctx.field_name.lower():
        placeholder = SIGNATURE_STYLES[FieldKind.INITIAL_HERE].placeholder

    def _signature():
        add_signature_field(doc, page, rect, ctx.field_name, style)

    def _styled_text():
        add_text_widget(page, rect, ctx.field_name, placeholder,
                        font_size=style.font_size,
                        tooltip="Click to add your signature",
                        required=True,
                        border_color=BLACK, border_width=2,
                        fill_color=(0.98, 0.98, 0.98))

    def _bare_text():
        add_text_widget(page, rect, ctx.field_name, SIGNATURE_FALLBACK_TEXT)

    return run_strategies([("signature", _signature),
                           ("styled-text", _styled_text),
                           ("text", _bare_text)], ctx.field_name)


def translate_checkbox(kind: FieldKind, tab: Mapping[str, Any], doc: fitz.Document,
                       page: fitz.Page, ctx: TranslateContext) -> FieldPlacement:
    # PyMuPDF positions every widget type from the same corner, so the
    # clamp keeps the top edge where DocuSign put it.
    rect = ctx.rect.with_min_size(*CHECKBOX_MIN_SIZE, keep="top")
    checked = is_true(tab.get("selected"))

    def _checkbox():
        add_checkbox_widget(page, rect, ctx.field_name, checked)

    def _text():
        add_text_widget(page, rect, ctx.field_name, CHECKED_TEXT if checked else UNCHECKED_TEXT)

    return run_strategies([("checkbox", _checkbox), ("text", _text)], ctx.field_name)


def radio_option_value(radio: Mapping[str, Any], index: int) -> str:
    v = radio.get("value")
    if v is None or v == "":
        v = radio.get("text")
    v = "" if v is None else str(v)
    if not v or v in ("undefined", "null"):
        return f"option_{index}"
    return v


def translate_radio_group(kind: FieldKind, tab: Mapping[str, Any], doc: fitz.Document,
                          page: fitz.Page, ctx: TranslateContext) -> FieldPlacement:
    radios = tab.get("radios") or []
    group = generate_field_name(tab.get("groupName"))
    try:
        rects: List[Rectangle] = []
        for i, radio in enumerate(radios):
            if not isinstance(radio, Mapping):
                raise ValueError(f"radio option {i} is not an object")
            r = tab_rectangle(radio, ctx.page_height, FieldKind.RADIO_GROUP)
            if r is None:
                raise ValueError(f"radio option {i} has a non-numeric position")
            rects.append(r)
        values = [radio_option_value(radio, i) for i, radio in enumerate(radios)]
        states = radio_on_states(values)
        # first selected option wins
        selected = next((s for radio, s in zip(radios, states) if is_true(radio.get("selected"))), None)

        # options go in unselected; the selection is set once the group is linked
        options = [(add_radio_widget(page, r, group, v), s) for r, v, s in zip(rects, values, states)]
        link_radio_group(doc, group, options, selected)
    except Exception as e:
        logger.warning("radio group %s failed: %s", group, e)
        remove_radio_group(page, group)
        return FieldPlacement(False, field_name=group, reason=str(e))
    return FieldPlacement(True, field_name=group, strategy="radio")


def list_choices(tab: Mapping[str, Any]) -> Tuple[List[str], str]:
    """(display labels, initial label). An explicit tab value beats item selection."""
    labels: List[str] = []
    by_value: Dict[str, str] = {}
    initial = ""
    for item in tab.get("listItems") or []:
        if not isinstance(item, Mapping):
            continue
        label = str(item.get("text") if item.get("text") is not None else item.get("value", ""))
        value = str(item.get("value") if item.get("value") is not None else label)
        labels.append(label)
        by_value[value] = label
        if not initial and is_true(item.get("selected")):
            initial = label
    explicit = tab.get("value")
    if explicit is not None and str(explicit) != "":
        explicit = str(explicit)
        initial = by_value.get(explicit, explicit)
        if initial not in labels:
            labels.append(initial)
    return labels, initial


def translate_list(kind: FieldKind, tab: Mapping[str, Any], doc: fitz.Document,
                   page: fitz.Page, ctx: TranslateContext) -> FieldPlacement:
    labels, initial = list_choices(tab)

    def _combo():
        add_combo_widget(page, ctx.rect, ctx.field_name, labels, initial,
                         font_size=font_size_from_tab(tab))

    return run_strategies([("dropdown", _combo)], ctx.field_name)


# ---------------------------
# Registry
# ---------------------------
@dataclass(frozen=True)
class TranslatorEntry:
    name: str
    description: str
    translate: Callable[..., FieldPlacement]


TRANSLATORS: Dict[FieldKind, TranslatorEntry] = {
    FieldKind.TEXT: TranslatorEntry("Text Fields", "Single-line text input fields", translate_text_like),
    FieldKind.SIGN_HERE: TranslatorEntry("Signature Fields", "Signature placeholders", translate_signature),
    FieldKind.INITIAL_HERE: TranslatorEntry("Initial Fields", "Initial placeholders", translate_signature),
    FieldKind.STAMP: TranslatorEntry("Stamp Fields", "Stamp/seal placeholders", translate_signature),
    FieldKind.CHECKBOX: TranslatorEntry("Checkboxes", "Boolean checkbox fields", translate_checkbox),
    FieldKind.RADIO_GROUP: TranslatorEntry("Radio Button Groups", "Radio button groups with mutual exclusion",
                                          translate_radio_group),
    FieldKind.LIST: TranslatorEntry("Dropdown Lists", "Single-select dropdown fields", translate_list),
    FieldKind.FULL_NAME: TranslatorEntry("Full Name Fields", "Signer full name", translate_text_like),
    FieldKind.DATE_SIGNED: TranslatorEntry("Date Signed Fields", "Date the document was signed",
                                          translate_text_like),
    FieldKind.COMPANY: TranslatorEntry("Company Fields", "Signer company name", translate_text_like),
    FieldKind.TITLE: TranslatorEntry("Title Fields", "Signer job title", translate_text_like),
    FieldKind.EMAIL_ADDRESS: TranslatorEntry("Email Address Fields", "Signer email address", translate_text_like),
    FieldKind.NUMERICAL: TranslatorEntry("Numerical Fields", "Numeric input fields", translate_text_like),
    FieldKind.SIGNER_ATTACHMENT: TranslatorEntry("Signer Attachment Fields", "File attachment descriptions",
                                                translate_text_like),
}


class FieldTypeRegistry:
    """
    Per-conversion on/off switch for each field kind. Every kind starts
    enabled. Kinds can be given as FieldKind, 'checkbox' or 'checkboxTabs'.
    """

    def __init__(self, disabled: Optional[Sequence[Any]] = None):
        self._enabled: Dict[FieldKind, bool] = {}
        self.reset_all()
        for k in disabled or []:
            self.set_enabled(k, False)

    def set_enabled(self, kind: Any, enabled: bool):
        k = parse_kind(kind)
        if k not in TRANSLATORS:
            raise ValueError(f"No translator for field type {k.value!r}")
        self._enabled[k] = bool(enabled)

    def is_enabled(self, kind: Any) -> bool:
        try:
            k = parse_kind(kind)
        except ValueError:
            return False
        return self._enabled.get(k, False)

    def reset_all(self):
        self._enabled = {k: True for k in TRANSLATORS}

    def get_all_states(self) -> Dict[str, bool]:
        return {k.value: v for k, v in self._enabled.items()}

    def get_config(self, kind: Any) -> Dict[str, Any]:
        k = parse_kind(kind)
        entry = TRANSLATORS[k]
        return {
            "kind": k.value,
            "collection": COLLECTION_NAMES[k],
            "name": entry.name,
            "description": entry.description,
            "enabled": self._enabled.get(k, False),
        }

    def get_all_configs(self) -> List[Dict[str, Any]]:
        return [self.get_config(k) for k in known_kinds()]


# ---------------------------
# Validation + dispatch
# ---------------------------
def _present(tab: Mapping[str, Any], *keys: str) -> bool:
    return any(tab.get(k) is not None and str(tab.get(k)) != "" for k in keys)


def validate_tab(kind: FieldKind, tab: Mapping[str, Any]) -> Optional[str]:
    """None when the tab is structurally usable for `kind`, else the reason."""
    if not _present(tab, "pageNumber", "page"):
        return "missing pageNumber"
    if not _present(tab, "xPosition", "xPositionString"):
        return "missing xPosition"
    if not _present(tab, "yPosition", "yPositionString"):
        return "missing yPosition"
    if kind is FieldKind.RADIO_GROUP:
        if not str(tab.get("groupName") or "").strip():
            return "radio group without groupName"
        radios = tab.get("radios")
        if not isinstance(radios, list) or not radios:
            return "radio group without radios"
    elif kind is FieldKind.LIST:
        items = tab.get("listItems")
        if not isinstance(items, list) or not items:
            return "list without listItems"
    elif kind in SIGNATURE_KINDS:
        if not tab_label(tab):
            return "signature field without name or tabLabel"
    return None


def translate_field(kind: FieldKind,
                    tab: Mapping[str, Any],
                    doc: fitz.Document,
                    page: fitz.Page,
                    ctx: TranslateContext,
                    registry: Optional[FieldTypeRegistry] = None) -> FieldPlacement:
    """
    Build the field for one tab. A falsy result means nothing was attached
    (kind unsupported or disabled, validation failed, or every strategy
    failed); the caller decides whether to place a plain text field instead.
    """
    registry = registry or FieldTypeRegistry()
    entry = TRANSLATORS.get(kind)
    if entry is None:
        return FieldPlacement(False, field_name=ctx.field_name, reason=f"unsupported field type {kind.value}")
    if not registry.is_enabled(kind):
        return FieldPlacement(False, field_name=ctx.field_name, reason=f"field type {kind.value} disabled")
    problem = validate_tab(kind, tab)
    if problem:
        return FieldPlacement(False, field_name=ctx.field_name, reason=problem)
    try:
        return entry.translate(kind, tab, doc, page, ctx)
    except Exception as e:
        logger.exception("translator %s crashed on %s", entry.name, ctx.field_name)
        return FieldPlacement(False, field_name=ctx.field_name, reason=str(e))
