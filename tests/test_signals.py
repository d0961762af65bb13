# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for signal extraction (ElementSnapshot -> TextSignal + StructuralFacts)."""

from __future__ import annotations

import pytest

from sidescroller import AncestorInfo, ElementSnapshot, Rect
from sidescroller.errors import ExtractionError
from sidescroller.signals import MAX_ANCESTOR_DEPTH, extract, extract_facts, extract_text, normalize_text, parse_z_index
from tests._builders import el


class TestTextSignal:
    def test_sources_joined_lowercase(self):
        signal = extract_text(el(text="  Next\n Page ", title="Go"))
        assert signal.text == "next page go"
        assert signal.sources == ("next page", "go")

    def test_empty_and_duplicate_sources_dropped(self):
        signal = extract_text(el(text="Next", aria_label="next", title="", alt="Go to next page"))
        assert signal.sources == ("next", "go to next page")

    def test_icon_names_included(self):
        signal = extract_text(el(text="", tag="svg", icon_names=("arrow-right",)))
        assert signal.text == "arrow-right"

    def test_icon_class_names_filtered_by_hint(self):
        signal = extract_text(el(icon_class_names=("fa-chevron-left", "big-red", "spacer")))
        assert signal.sources == ("fa-chevron-left",)

    def test_nested_sources(self):
        signal = extract_text(el(img_alt="Previous", nested_aria_label="Older posts", data_original_title="Back"))
        assert "previous" in signal.sources
        assert "older posts" in signal.sources
        assert "back" in signal.sources

    def test_str_and_len(self):
        signal = extract_text(el(text="Next"))
        assert str(signal) == "next"
        assert len(signal) == 4

    def test_non_string_source_raises(self):
        with pytest.raises(ExtractionError) as exc_info:
            extract_text(el(ref=7, text=123))  # type: ignore[arg-type]
        assert exc_info.value.ref == 7

    def test_normalize_text(self):
        assert normalize_text("  A\t\tB \n C ") == "a b c"


class TestZIndex:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("auto", None),
            ("inherit", None),
            ("", None),
            (None, None),
            ("10", 10),
            ("-1", -1),
            (" 42 ", 42),
            ("2147483647", 2_147_483_647),
            (5, 5),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_z_index(raw) == expected


class TestStructuralFacts:
    def test_basic_fields(self):
        facts = extract_facts(
            el(
                ref=3,
                tag="A",
                class_names=("Pager", "Next"),
                id="nav-next",
                rel="Next nofollow",
                role="Button",
                z_index="12",
            )
        )
        assert facts.ref == 3
        assert facts.tag == "a"
        assert facts.z_index == 12
        assert facts.rel == ("next", "nofollow")
        assert facts.role == "button"
        assert facts.class_string == "pager next"

    def test_checked_attributes(self):
        facts = extract_facts(
            el(class_names=("btn",), id="x", data_attributes={"data-testid": "next-btn", "data-other": "ignored"})
        )
        assert facts.attributes == {"class": "btn", "id": "x", "data-testid": "next-btn"}

    def test_label_text_combines_labels(self):
        facts = extract_facts(el(text="Go", aria_label="Back", title="To", alt="Previous Page"))
        assert facts.label_text == "go back to previous page"

    def test_ancestors_capped(self):
        chain = tuple(AncestorInfo(class_names=(f"level-{i}",)) for i in range(15))
        facts = extract_facts(el(ancestors=chain))
        assert len(facts.ancestors) == MAX_ANCESTOR_DEPTH
        assert facts.ancestors[0].class_names == ("level-0",)

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "12px", None])
    def test_invalid_geometry_raises(self, bad):
        element = ElementSnapshot(ref=1, tag="a", rect=Rect(top=bad, left=0, width=10, height=10))
        with pytest.raises(ExtractionError):
            extract_facts(element)

    def test_extract_is_pure(self):
        element = el(text="Next", class_names=("pager",))
        assert extract(element) == extract(element)


class TestFromDict:
    def test_camel_case_payload(self):
        element = ElementSnapshot.from_dict(
            {
                "ref": 4,
                "tag": "BUTTON",
                "rect": {"top": 10, "left": 20, "width": 30, "height": 40},
                "zIndex": "auto",
                "classNames": ["a", "b"],
                "ariaLabel": "Next",
                "data": {"data-testid": "t"},
                "iconNames": ["arrow-right"],
                "ancestors": [{"tag": "DIV", "classNames": ["modal"], "role": "dialog"}],
                "selector": "#x",
            }
        )
        assert element.tag == "button"
        assert element.rect.center_x == 35
        assert element.class_names == ("a", "b")
        assert element.aria_label == "Next"
        assert element.data_attributes == {"data-testid": "t"}
        assert element.icon_names == ("arrow-right",)
        assert element.ancestors[0] == AncestorInfo(tag="div", class_names=("modal",), id="", role="dialog")
        assert element.kind == "button"

    def test_missing_keys_default(self):
        element = ElementSnapshot.from_dict({})
        assert element.ref == 0
        assert element.tag == "div"
        assert element.text == ""
        assert element.kind == "generic"
