"""Per-kind field construction, fallbacks and the field-type registry"""

import re
from datetime import date

import fitz
import pytest

import field_translate
from field_translate import (
    FieldTypeRegistry,
    TranslateContext,
    font_color_from_tab,
    font_size_from_tab,
    generate_field_name,
    list_choices,
    placeholder_for,
    radio_on_states,
    radio_option_value,
    translate_field,
    validate_tab,
)
from tab_classify import FieldKind
from tab_geometry import Rectangle, tab_rectangle

H = 792.0


def _ctx(tab, kind, name="field_1", default_value=""):
    return TranslateContext(
        field_name=name,
        rect=tab_rectangle(tab, H, kind),
        page_height=H,
        default_value=default_value,
    )


def _find(rows, type_):
    return [r for r in rows if r["type"] == type_]


class TestFieldNames:
    """generate_field_name"""

    def test_sanitised_and_bounded(self):
        name = generate_field_name("Client Name (primary)!")
        assert re.match(r"^Client_Name__primary___\d+_[0-9a-f]{5}$", name)
        assert len(name) <= 60

    def test_long_labels_are_truncated(self):
        name = generate_field_name("x" * 200)
        assert len(name) == 60
        assert re.search(r"_\d+_[0-9a-f]{5}$", name)

    def test_same_label_never_collides(self):
        names = {generate_field_name("Date") for _ in range(50)}
        assert len(names) == 50

    def test_empty_label(self):
        assert generate_field_name(None).startswith("field_")


class TestHelpers:

    def test_font_helpers(self):
        assert font_size_from_tab({"fontSize": "Size9"}) == 9
        assert font_size_from_tab({"fontSize": "huge"}) == 12
        assert font_size_from_tab({}) == 12
        assert font_color_from_tab({"fontColor": "Red"}) == (1, 0, 0)
        assert font_color_from_tab({"fontColor": "purple"}) == (0, 0, 0)

    def test_placeholders(self):
        assert placeholder_for(FieldKind.FULL_NAME, {}) == "[FULL NAME]"
        assert placeholder_for(FieldKind.EMAIL_ADDRESS, {}) == "[EMAIL]"
        assert placeholder_for(FieldKind.DATE_SIGNED, {}) == date.today().strftime("%m/%d/%Y")
        assert placeholder_for(FieldKind.SIGNER_ATTACHMENT, {"tabLabel": "Upload ID"}) == "[File Name/Description]"
        assert placeholder_for(FieldKind.SIGNER_ATTACHMENT, {"tabLabel": "Passport"}) == "[Attachment File Name]"
        assert placeholder_for(FieldKind.TEXT, {}) == ""

    @pytest.mark.parametrize("radio, expected", [
        ({"value": "yes"}, "yes"),
        ({"text": "No"}, "No"),
        ({}, "option_2"),
        ({"value": "undefined"}, "option_2"),
        ({"value": "null"}, "option_2"),
    ])
    def test_radio_option_value(self, radio, expected):
        assert radio_option_value(radio, 2) == expected

    def test_radio_on_states(self):
        assert radio_on_states(["basic", "pro"]) == ["basic", "pro"]
        assert radio_on_states(["yes", "yes"]) == ["yes", "yes_1"]
        assert radio_on_states(["Off", "On"]) == ["Off_0", "On"]
        assert radio_on_states(["a b", ""]) == ["a#20b", "option_1"]

    def test_list_choices(self):
        items = [{"text": "Red", "value": "r"}, {"text": "Blue", "value": "b", "selected": "true"}]
        assert list_choices({"listItems": items}) == (["Red", "Blue"], "Blue")
        assert list_choices({"listItems": items, "value": "r"}) == (["Red", "Blue"], "Red")
        assert list_choices({"listItems": items, "value": "Green"}) == (["Red", "Blue", "Green"], "Green")


class TestValidation:
    """Structural checks before dispatch"""

    base = {"pageNumber": 1, "xPosition": 10, "yPosition": 10}

    def test_position_required(self):
        assert validate_tab(FieldKind.TEXT, {"pageNumber": 1, "xPosition": 1}) == "missing yPosition"
        assert validate_tab(FieldKind.TEXT, {"xPositionString": "1", "yPositionString": "1"}) == "missing pageNumber"
        assert validate_tab(FieldKind.TEXT, dict(self.base)) is None

    def test_radio_requires_group_and_options(self):
        assert validate_tab(FieldKind.RADIO_GROUP, dict(self.base, radios=[{}])) is not None
        assert validate_tab(FieldKind.RADIO_GROUP, dict(self.base, groupName="g", radios=[])) is not None
        assert validate_tab(FieldKind.RADIO_GROUP, dict(self.base, groupName="g", radios=[{}])) is None

    def test_list_requires_items(self):
        assert validate_tab(FieldKind.LIST, dict(self.base)) is not None
        assert validate_tab(FieldKind.LIST, dict(self.base, listItems=[{"text": "a"}])) is None

    def test_signature_requires_name(self):
        assert validate_tab(FieldKind.SIGN_HERE, dict(self.base)) is not None
        assert validate_tab(FieldKind.INITIAL_HERE, dict(self.base, name="Init")) is None


class TestRegistry:
    """FieldTypeRegistry"""

    def test_all_enabled_initially(self):
        reg = FieldTypeRegistry()
        assert all(reg.get_all_states().values())
        assert len(reg.get_all_states()) == 14

    def test_toggle_and_reset(self):
        reg = FieldTypeRegistry()
        reg.set_enabled("checkboxTabs", False)
        assert not reg.is_enabled(FieldKind.CHECKBOX)
        assert reg.get_all_states()["checkbox"] is False
        reg.reset_all()
        assert reg.is_enabled("checkbox")

    def test_disabled_at_construction(self):
        reg = FieldTypeRegistry(disabled=["list", FieldKind.STAMP])
        assert not reg.is_enabled("listTabs")
        assert not reg.is_enabled(FieldKind.STAMP)
        assert reg.is_enabled(FieldKind.TEXT)

    def test_unknown_kinds(self):
        reg = FieldTypeRegistry()
        assert not reg.is_enabled("bogus")
        assert not reg.is_enabled(FieldKind.UNKNOWN)
        with pytest.raises(ValueError):
            reg.set_enabled("bogus", True)

    def test_configs(self):
        cfg = FieldTypeRegistry().get_config("radioGroupTabs")
        assert cfg["name"] == "Radio Button Groups"
        assert cfg["collection"] == "radioGroupTabs"
        assert cfg["enabled"] is True
        assert len(FieldTypeRegistry().get_all_configs()) == 14

    def test_registries_are_independent(self):
        a, b = FieldTypeRegistry(), FieldTypeRegistry()
        a.set_enabled("text", False)
        assert b.is_enabled("text")


class TestTranslators:
    """Widgets produced on a real PyMuPDF page"""

    def test_text_field_position_and_value(self, blank_doc, read_widgets):
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 20, "width": 100, "height": 15, "value": "hello"}
        res = translate_field(FieldKind.TEXT, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.TEXT))
        assert res and res.strategy == "text"
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["type"] == fitz.PDF_WIDGET_TYPE_TEXT
        assert w["value"] == "hello"
        # PyMuPDF reports widget rectangles with a top-left origin
        assert w["rect"] == (10.0, 20.0, 110.0, 35.0)

    def test_placeholder_when_no_value(self, blank_doc, read_widgets):
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 20}
        assert translate_field(FieldKind.COMPANY, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.COMPANY))
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["value"] == "[COMPANY]"

    def test_signature_field(self, blank_doc, read_widgets):
        tab = {"pageNumber": 1, "xPosition": 100, "yPosition": 100, "width": 50, "height": 10, "tabLabel": "Sig"}
        res = translate_field(FieldKind.SIGN_HERE, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.SIGN_HERE))
        assert res.strategy == "signature"
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["type"] == fitz.PDF_WIDGET_TYPE_SIGNATURE
        assert w["name"] == "field_1"
        # clamped to 120x20, growing from the lower-left corner
        x0, y0, x1, y1 = w["rect"]
        assert (x0, x1, y1) == (100.0, 220.0, 110.0)
        assert y1 - y0 == 20.0

    def test_signature_falls_back_to_styled_text(self, blank_doc, read_widgets, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("signature capability unavailable")

        monkeypatch.setattr(field_translate, "add_signature_field", boom)
        tab = {"pageNumber": 1, "xPosition": 100, "yPosition": 700, "width": 150, "height": 30, "tabLabel": "Sig"}
        res = translate_field(FieldKind.SIGN_HERE, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.SIGN_HERE))
        assert res and res.strategy == "styled-text"
        (w,) = read_widgets(blank_doc)
        assert w["type"] == fitz.PDF_WIDGET_TYPE_TEXT
        assert w["value"] == "[SIGN HERE]"
        assert w["rect"] == (100.0, 700.0, 250.0, 730.0)
        assert w["flags"] & fitz.PDF_FIELD_IS_REQUIRED

    def test_signature_not_half_registered(self, blank_doc, read_widgets, monkeypatch):
        real_append = field_translate._append_reference

        def no_annots(doc, xref, key, ref_xref):
            if key == "Annots":
                raise ValueError("/Annots of object is not an array (string)")
            return real_append(doc, xref, key, ref_xref)

        monkeypatch.setattr(field_translate, "_append_reference", no_annots)
        tab = {"pageNumber": 1, "xPosition": 100, "yPosition": 700, "tabLabel": "Sig"}
        res = translate_field(FieldKind.SIGN_HERE, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.SIGN_HERE))
        assert res.strategy == "styled-text"
        saved = blank_doc.tobytes()
        (w,) = read_widgets(saved)
        assert w["type"] == fitz.PDF_WIDGET_TYPE_TEXT
        doc = fitz.open(stream=saved, filetype="pdf")
        kind, fields = doc.xref_get_key(doc.pdf_catalog(), "AcroForm/Fields")
        if kind == "xref":
            fields = doc.xref_object(int(fields.split()[0]), compressed=True)
        assert len(re.findall(r"\d+\s+0\s+R", fields)) == 1
        doc.close()

    def test_initials_fallback_placeholder(self, blank_doc, read_widgets, monkeypatch):
        monkeypatch.setattr(field_translate, "add_signature_field",
                            lambda *a, **k: (_ for _ in ()).throw(ValueError("nope")))
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 10, "tabLabel": "Init"}
        assert translate_field(FieldKind.INITIAL_HERE, tab, blank_doc, blank_doc[0],
                               _ctx(tab, FieldKind.INITIAL_HERE))
        (w,) = read_widgets(blank_doc)
        assert w["value"] == "[INITIAL HERE]"

    def test_signature_last_resort_bare_text(self, blank_doc, read_widgets, monkeypatch):
        real_add_text = field_translate.add_text_widget

        def no_styling(page, rect, name, value="", **kwargs):
            if kwargs.get("required"):
                raise RuntimeError("styled text unavailable")
            return real_add_text(page, rect, name, value, **kwargs)

        monkeypatch.setattr(field_translate, "add_signature_field",
                            lambda *a, **k: (_ for _ in ()).throw(RuntimeError("no sig")))
        monkeypatch.setattr(field_translate, "add_text_widget", no_styling)
        tab = {"pageNumber": 1, "xPosition": 100, "yPosition": 700, "width": 150, "height": 30, "tabLabel": "Sig"}
        res = translate_field(FieldKind.SIGN_HERE, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.SIGN_HERE))
        assert res and res.strategy == "text"
        (w,) = read_widgets(blank_doc)
        assert w["value"] == "[Signature Required]"
        assert w["rect"] == (100.0, 700.0, 250.0, 730.0)

    def test_checkbox_checked(self, blank_doc, read_widgets):
        tab = {"pageNumber": 1, "xPosition": 50, "yPosition": 50, "selected": "true"}
        res = translate_field(FieldKind.CHECKBOX, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.CHECKBOX))
        assert res.strategy == "checkbox"
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["type"] == fitz.PDF_WIDGET_TYPE_CHECKBOX
        assert w["value"] not in ("Off", False, None, "")
        assert w["rect"] == (50.0, 50.0, 62.0, 62.0)

    def test_checkbox_unchecked_by_default(self, blank_doc, read_widgets):
        tab = {"pageNumber": 1, "xPosition": 50, "yPosition": 50}
        assert translate_field(FieldKind.CHECKBOX, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.CHECKBOX))
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["value"] in ("Off", False, "")

    def test_checkbox_fallback_text(self, blank_doc, read_widgets, monkeypatch):
        monkeypatch.setattr(field_translate, "add_checkbox_widget",
                            lambda *a, **k: (_ for _ in ()).throw(RuntimeError("no checkbox")))
        tab = {"pageNumber": 1, "xPosition": 50, "yPosition": 50, "selected": True}
        res = translate_field(FieldKind.CHECKBOX, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.CHECKBOX))
        assert res.strategy == "text"
        (w,) = read_widgets(blank_doc)
        assert w["value"] == "[✓]"

    def test_radio_group_is_one_field(self, blank_doc, read_radios):
        tab = {
            "pageNumber": 1, "xPosition": 400, "yPosition": 400, "groupName": "Plan",
            "radios": [
                {"xPosition": 10, "yPosition": 100, "width": 12, "height": 12, "value": "basic"},
                {"xPosition": 10, "yPosition": 130, "width": 12, "height": 12, "value": "pro", "selected": "true"},
                {"xPosition": 10, "yPosition": 160, "width": 12, "height": 12, "selected": True},
            ],
        }
        res = translate_field(FieldKind.RADIO_GROUP, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.RADIO_GROUP))
        assert res and res.strategy == "radio"
        radios = read_radios(blank_doc.tobytes())
        assert [r["rect"] for r in radios] == [
            (10.0, 100.0, 22.0, 112.0),
            (10.0, 130.0, 22.0, 142.0),
            (10.0, 160.0, 22.0, 172.0),
        ]
        assert {r["name"] for r in radios} == {res.field_name}
        assert res.field_name.startswith("Plan_")
        parents = {r["parent"] for r in radios}
        assert len(parents) == 1 and 0 not in parents
        assert [r["on_states"] for r in radios] == [["basic"], ["pro"], ["option_2"]]
        # only the first selected option is on
        assert [r["state"] for r in radios] == ["/Off", "/pro", "/Off"]
        assert radios[0]["group_value"] == "/pro"

    def test_radio_group_without_selection(self, blank_doc, read_radios):
        tab = {
            "pageNumber": 1, "xPosition": 0, "yPosition": 0, "groupName": "Tier",
            "radios": [{"xPosition": 10, "yPosition": 10, "value": "basic"},
                       {"xPosition": 10, "yPosition": 40, "value": "pro"}],
        }
        assert translate_field(FieldKind.RADIO_GROUP, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.RADIO_GROUP))
        radios = read_radios(blank_doc.tobytes())
        assert [r["on_states"] for r in radios] == [["basic"], ["pro"]]
        assert [r["state"] for r in radios] == ["/Off", "/Off"]
        assert radios[0]["group_value"] == "/Off"
        assert radios[0]["parent"] == radios[1]["parent"] != 0

    def test_radio_group_failure_leaves_nothing_behind(self, blank_doc, read_widgets):
        tab = {
            "pageNumber": 1, "xPosition": 0, "yPosition": 0, "groupName": "Plan",
            "radios": [{"xPosition": 10, "yPosition": 10}, {"xPosition": "left", "yPosition": 40}],
        }
        res = translate_field(FieldKind.RADIO_GROUP, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.RADIO_GROUP))
        assert not res
        assert read_widgets(blank_doc.tobytes()) == []

    def test_half_added_option_is_removed(self, blank_doc, read_widgets, monkeypatch):
        real_add_radio = field_translate.add_radio_widget
        calls = []

        def inserts_then_raises(page, rect, group, value):
            calls.append(value)
            xref = real_add_radio(page, rect, group, value)
            if len(calls) == 2:
                raise ValueError("bad xref")
            return xref

        monkeypatch.setattr(field_translate, "add_radio_widget", inserts_then_raises)
        tab = {
            "pageNumber": 1, "xPosition": 0, "yPosition": 0, "groupName": "Plan",
            "radios": [{"xPosition": 10, "yPosition": 10, "value": "a"},
                       {"xPosition": 10, "yPosition": 40, "value": "b", "selected": True}],
        }
        res = translate_field(FieldKind.RADIO_GROUP, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.RADIO_GROUP))
        assert not res and "bad xref" in res.reason
        assert read_widgets(blank_doc.tobytes()) == []

    def test_linking_failure_removes_options(self, blank_doc, read_widgets, monkeypatch):
        monkeypatch.setattr(field_translate, "link_radio_group",
                            lambda *a, **k: (_ for _ in ()).throw(RuntimeError("no parent")))
        tab = {
            "pageNumber": 1, "xPosition": 0, "yPosition": 0, "groupName": "Plan",
            "radios": [{"xPosition": 10, "yPosition": 10}, {"xPosition": 10, "yPosition": 40}],
        }
        assert not translate_field(FieldKind.RADIO_GROUP, tab, blank_doc, blank_doc[0],
                                   _ctx(tab, FieldKind.RADIO_GROUP))
        assert read_widgets(blank_doc.tobytes()) == []

    def test_dropdown(self, blank_doc, read_widgets):
        tab = {
            "pageNumber": 1, "xPosition": 10, "yPosition": 10,
            "listItems": [{"text": "Red", "value": "r"}, {"text": "Blue", "value": "b", "selected": True}],
        }
        assert translate_field(FieldKind.LIST, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.LIST))
        (w,) = read_widgets(blank_doc.tobytes())
        assert w["type"] == fitz.PDF_WIDGET_TYPE_COMBOBOX
        assert w["value"] == "Blue"
        assert "Red" in w["choices"] and "Blue" in w["choices"]


class TestDispatch:
    """translate_field preconditions"""

    def test_disabled_kind_returns_false(self, blank_doc, read_widgets):
        reg = FieldTypeRegistry(disabled=["text"])
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 10}
        res = translate_field(FieldKind.TEXT, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.TEXT), reg)
        assert not res
        assert "disabled" in res.reason
        assert read_widgets(blank_doc) == []

    def test_unknown_kind_returns_false(self, blank_doc):
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 10}
        res = translate_field(FieldKind.UNKNOWN, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.UNKNOWN))
        assert not res

    def test_invalid_tab_returns_false(self, blank_doc):
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 10}
        res = translate_field(FieldKind.LIST, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.LIST))
        assert not res
        assert "listItems" in res.reason

    def test_crashing_translator_is_contained(self, blank_doc, monkeypatch):
        def crash(*args, **kwargs):
            raise KeyError("boom")

        entry = field_translate.TRANSLATORS[FieldKind.TEXT]
        monkeypatch.setitem(field_translate.TRANSLATORS, FieldKind.TEXT,
                            field_translate.TranslatorEntry(entry.name, entry.description, crash))
        tab = {"pageNumber": 1, "xPosition": 10, "yPosition": 10}
        res = translate_field(FieldKind.TEXT, tab, blank_doc, blank_doc[0], _ctx(tab, FieldKind.TEXT))
        assert not res


def test_rectangle_is_not_mutated():
    r = Rectangle(0, 0, 1, 1)
    r.with_min_size(12, 12)
    assert r == Rectangle(0, 0, 1, 1)
