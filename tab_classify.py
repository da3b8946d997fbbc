# tab_classify.py
# Map raw DocuSign tab records onto a fixed set of field kinds.
# Pure functions only: no PDF access, no I/O.

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class FieldKind(str, Enum):
    TEXT = "text"
    SIGN_HERE = "signHere"
    INITIAL_HERE = "initialHere"
    STAMP = "stamp"
    CHECKBOX = "checkbox"
    RADIO_GROUP = "radioGroup"
    LIST = "list"
    FULL_NAME = "fullName"
    DATE_SIGNED = "dateSigned"
    COMPANY = "company"
    TITLE = "title"
    EMAIL_ADDRESS = "emailAddress"
    NUMERICAL = "numerical"
    SIGNER_ATTACHMENT = "signerAttachment"
    UNKNOWN = "unknown"


# ---------------------------
# DocuSign collection names
# ---------------------------
COLLECTION_NAMES: Dict[FieldKind, str] = {
    FieldKind.TEXT: "textTabs",
    FieldKind.SIGN_HERE: "signHereTabs",
    FieldKind.INITIAL_HERE: "initialHereTabs",
    FieldKind.STAMP: "stampTabs",
    FieldKind.CHECKBOX: "checkboxTabs",
    FieldKind.RADIO_GROUP: "radioGroupTabs",
    FieldKind.LIST: "listTabs",
    FieldKind.FULL_NAME: "fullNameTabs",
    FieldKind.DATE_SIGNED: "dateSignedTabs",
    FieldKind.COMPANY: "companyTabs",
    FieldKind.TITLE: "titleTabs",
    FieldKind.EMAIL_ADDRESS: "emailAddressTabs",
    FieldKind.NUMERICAL: "numericalTabs",
    FieldKind.SIGNER_ATTACHMENT: "signerAttachmentTabs",
}
_KIND_BY_COLLECTION = {v.lower(): k for k, v in COLLECTION_NAMES.items()}

SIGNATURE_KINDS = (FieldKind.SIGN_HERE, FieldKind.INITIAL_HERE, FieldKind.STAMP)

# (exact, substrings, kind), evaluated top to bottom.
# "attachment" must come before anything containing "sign".
_TAB_TYPE_RULES = [
    ("signerattachment", ("attachment",), FieldKind.SIGNER_ATTACHMENT),
    ("signhere", ("signhere",), FieldKind.SIGN_HERE),
    ("initialhere", ("initialhere",), FieldKind.INITIAL_HERE),
    ("text", ("text",), FieldKind.TEXT),
    ("checkbox", ("checkbox",), FieldKind.CHECKBOX),
    ("radiogroup", ("radio",), FieldKind.RADIO_GROUP),
    ("list", ("list", "dropdown"), FieldKind.LIST),
    ("fullname", ("fullname",), FieldKind.FULL_NAME),
    ("datesigned", ("date",), FieldKind.DATE_SIGNED),
    ("company", ("company",), FieldKind.COMPANY),
    ("title", ("title",), FieldKind.TITLE),
    ("emailaddress", ("email",), FieldKind.EMAIL_ADDRESS),
    ("numerical", ("numerical", "number"), FieldKind.NUMERICAL),
]

_STAMP_TYPES = {
    "signature": FieldKind.SIGN_HERE,
    "initials": FieldKind.INITIAL_HERE,
    "stamp": FieldKind.STAMP,
}


def _lower(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip().lower()


def classify_tab(tab: Mapping[str, Any]) -> FieldKind:
    """
    Return the FieldKind for a DocuSign tab record.

    Order matters: stampType wins over tabType, and the attachment rule is
    checked before any rule that would match the substring "sign".
    Always returns a kind; FieldKind.UNKNOWN when nothing matches.
    """
    if not isinstance(tab, Mapping):
        return FieldKind.UNKNOWN

    stamp_type = _lower(tab.get("stampType"))
    if stamp_type in _STAMP_TYPES:
        return _STAMP_TYPES[stamp_type]

    tab_type = _lower(tab.get("tabType") or tab.get("type"))
    if not tab_type:
        return FieldKind.UNKNOWN

    for exact, subs, kind in _TAB_TYPE_RULES:
        if tab_type == exact or any(s in tab_type for s in subs):
            return kind

    if "signature" in tab_type and "attachment" not in tab_type:
        return FieldKind.SIGN_HERE
    if "sign" in tab_type and "attachment" not in tab_type and "signer" not in tab_type:
        return FieldKind.SIGN_HERE

    return FieldKind.UNKNOWN


def kind_for_collection(collection: Optional[str]) -> FieldKind:
    """'signHereTabs' -> FieldKind.SIGN_HERE (case-insensitive); unknown names -> UNKNOWN."""
    return _KIND_BY_COLLECTION.get(_lower(collection), FieldKind.UNKNOWN)


def resolve_kind(tab: Mapping[str, Any], collection: Optional[str] = None) -> FieldKind:
    # The record wins; the collection it was listed under only fills the gap.
    kind = classify_tab(tab)
    if kind is FieldKind.UNKNOWN and collection:
        kind = kind_for_collection(collection)
    return kind


def parse_kind(value: Any) -> FieldKind:
    """
    Accept a FieldKind, its value ('checkbox') or a collection name
    ('checkboxTabs'). Raises ValueError for anything else.
    """
    if isinstance(value, FieldKind):
        return value
    key = _lower(value)
    for kind in FieldKind:
        if kind.value.lower() == key:
            return kind
    kind = _KIND_BY_COLLECTION.get(key)
    if kind is None:
        raise ValueError(f"Unknown field type: {value!r}")
    return kind


def known_kinds() -> List[FieldKind]:
    return [k for k in FieldKind if k is not FieldKind.UNKNOWN]
