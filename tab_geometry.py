# tab_geometry.py
# DocuSign tab geometry -> PDF user-space rectangles.
# DocuSign measures from the top-left corner of the page; PDF user space
# starts bottom-left. Also hosts the system/hidden tab filter.

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from tab_classify import FieldKind

# ---------------------------
# Defaults
# ---------------------------
TEXT_DEFAULT_SIZE: Tuple[float, float] = (120.0, 20.0)

# kind -> (width, height). Kinds not listed use the caller override or TEXT_DEFAULT_SIZE.
FIELD_DIMENSIONS: Dict[FieldKind, Tuple[float, float]] = {
    FieldKind.CHECKBOX: (12.0, 12.0),
    FieldKind.SIGN_HERE: (120.0, 20.0),
    FieldKind.STAMP: (120.0, 20.0),
    FieldKind.INITIAL_HERE: (100.0, 25.0),
    FieldKind.DATE_SIGNED: (120.0, 20.0),
}

SYSTEM_TAB_PATTERNS = [
    re.compile(r"^\d+_\d+$"),
    re.compile(r"system", re.IGNORECASE),
    re.compile(r"hidden", re.IGNORECASE),
]


@dataclass(frozen=True)
class Rectangle:
    """PDF user-space box (origin bottom-left, points)."""
    left: float
    bottom: float
    right: float
    top: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.top - self.bottom

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.bottom, self.right, self.top)

    def with_min_size(self, min_w: float, min_h: float, keep: str = "bottom") -> "Rectangle":
        """
        Grow to at least min_w x min_h. The left edge never moves; `keep`
        says which horizontal edge stays put ("bottom" or "top").
        """
        w = max(self.width, min_w)
        h = max(self.height, min_h)
        if keep == "top":
            return Rectangle(self.left, self.top - h, self.left + w, self.top)
        return Rectangle(self.left, self.bottom, self.left + w, self.bottom + h)


# ---------------------------
# Number parsing
# ---------------------------
_MISSING = object()


def _pick(tab: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        v = tab.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return _MISSING


def _to_float(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return f


def parse_position(tab: Mapping[str, Any]) -> Optional[Tuple[float, float]]:
    """
    (x, y) from xPosition/xPositionString and yPosition/yPositionString.
    Absent values count as 0; a value that is present but not a number
    yields None.
    """
    out = []
    for keys in (("xPosition", "xPositionString"), ("yPosition", "yPositionString")):
        raw = _pick(tab, *keys)
        if raw is _MISSING:
            out.append(0.0)
            continue
        f = _to_float(raw)
        if f is None:
            return None
        out.append(f)
    return out[0], out[1]


def parse_raw_size(tab: Mapping[str, Any]) -> Tuple[float, float]:
    """Width/height as written on the tab; absent or unparseable -> 0."""
    w = _to_float(_pick(tab, "width", "widthString"))
    h = _to_float(_pick(tab, "height", "heightString"))
    return (w or 0.0), (h or 0.0)


def default_size(kind: FieldKind,
                 field_width: Optional[float] = None,
                 field_height: Optional[float] = None) -> Tuple[float, float]:
    if kind in FIELD_DIMENSIONS:
        return FIELD_DIMENSIONS[kind]
    w = field_width if field_width and field_width > 0 else TEXT_DEFAULT_SIZE[0]
    h = field_height if field_height and field_height > 0 else TEXT_DEFAULT_SIZE[1]
    return float(w), float(h)


def tab_rectangle(tab: Mapping[str, Any],
                  page_height: float,
                  kind: FieldKind = FieldKind.TEXT,
                  field_width: Optional[float] = None,
                  field_height: Optional[float] = None) -> Optional[Rectangle]:
    """
    Rectangle for a tab on a page of height `page_height`.

    Width/height <= 0 (or unparseable) fall back to the per-kind default,
    so the result is never degenerate. Returns None when the position is
    not numeric; the caller skips such tabs.
    """
    pos = parse_position(tab)
    if pos is None:
        return None
    x, y = pos

    dw, dh = default_size(kind, field_width, field_height)
    w, h = parse_raw_size(tab)
    if w <= 0:
        w = dw
    if h <= 0:
        h = dh

    return Rectangle(left=x, bottom=page_height - (y + h), right=x + w, top=page_height - y)


# ---------------------------
# System / hidden tabs
# ---------------------------
def tab_label(tab: Mapping[str, Any]) -> str:
    return str(tab.get("tabLabel") or tab.get("name") or "").strip()


def is_system_label(label: str) -> bool:
    if not label:
        return False
    return any(p.search(label) for p in SYSTEM_TAB_PATTERNS)


def is_system_tab(tab: Mapping[str, Any]) -> bool:
    """
    DocuSign bookkeeping tabs: a degenerate box (<=1pt each way) parked at
    exactly (0, 0), or a label like '12345_67' / '...system...' / '...hidden...'.
    """
    label = str(tab.get("tabLabel") or "").strip()
    if is_system_label(label):
        return True
    pos = parse_position(tab)
    if pos is None:
        return False
    w, h = parse_raw_size(tab)
    return w <= 1 and h <= 1 and pos == (0.0, 0.0)


def tab_page_number(tab: Mapping[str, Any]) -> Optional[int]:
    """1-based page number from pageNumber/page; default 1, None if garbage."""
    raw = _pick(tab, "pageNumber", "page")
    if raw is _MISSING:
        return 1
    f = _to_float(raw)
    if f is None:
        return None
    return int(f)
