# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Signal extraction: ElementSnapshot -> (TextSignal, StructuralFacts).

Pure function of the snapshot.  The text signal is what the pattern scorer
reads; the structural facts are all the chrome filter is allowed to see.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from . import AncestorInfo, ElementSnapshot, Rect
from .errors import ExtractionError
from .patterns import CHECKED_DATA_ATTRIBUTES, ICON_CLASS_HINTS

MAX_ANCESTOR_DEPTH = 10

_WS_RE = re.compile(r"\s+")
_Z_INDEX_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True, slots=True)
class TextSignal:
    """Lowercase, whitespace-collapsed text used for pattern matching."""

    text: str
    sources: tuple[str, ...]  # non-empty sources in concatenation order

    def __str__(self) -> str:
        return self.text

    def __len__(self) -> int:
        return len(self.text)


@dataclass(frozen=True, slots=True)
class StructuralFacts:
    """Everything the chrome filter and structural bonuses may look at."""

    ref: int
    tag: str
    rect: Rect
    z_index: int | None  # None when computed style is non-numeric (auto, inherit)
    class_names: tuple[str, ...]
    id: str
    rel: tuple[str, ...]  # lowercased rel tokens
    role: str
    aria_label: str
    title: str
    alt: str
    attributes: dict[str, str]  # class/id/data-* values checked for chrome tokens
    label_text: str  # lowercased text + aria-label + title + alt
    icon_names: tuple[str, ...]
    ancestors: tuple[AncestorInfo, ...]  # nearest first, capped at MAX_ANCESTOR_DEPTH

    @property
    def class_string(self) -> str:
        """Lowercased, space-joined class list (substring checks)."""
        return " ".join(self.class_names).lower()


@dataclass(frozen=True, slots=True)
class ElementSignal:
    element: ElementSnapshot
    text: TextSignal
    facts: StructuralFacts


def normalize_text(value: str) -> str:
    """Lowercase and collapse whitespace."""
    return _WS_RE.sub(" ", value).strip().lower()


def parse_z_index(raw: str | int | None) -> int | None:
    """Leading-integer parse of a computed z-index; non-numeric → None."""
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    m = _Z_INDEX_RE.match(str(raw))
    return int(m.group(1)) if m else None


def _check_rect(element: ElementSnapshot) -> None:
    for name in ("top", "left", "width", "height"):
        value = getattr(element.rect, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ExtractionError(f"element {element.ref}: invalid rect.{name}={value!r}", ref=element.ref)


def _icon_class_fragments(class_names: tuple[str, ...]) -> list[str]:
    return [c for c in class_names if any(hint in c.lower() for hint in ICON_CLASS_HINTS)]


def extract_text(element: ElementSnapshot) -> TextSignal:
    """Concatenate text sources into one normalized signal.

    Empty sources and exact repeats are dropped; the remaining order only
    matters for readability of diagnostics.
    """
    raw_sources = [
        element.text,
        element.aria_label,
        element.title,
        element.alt,
        element.data_original_title,
        element.img_alt,
        element.nested_aria_label,
        *element.icon_names,
        *_icon_class_fragments(element.icon_class_names),
    ]
    sources: list[str] = []
    for raw in raw_sources:
        if not isinstance(raw, str):
            raise ExtractionError(f"element {element.ref}: non-string text source {raw!r}", ref=element.ref)
        norm = normalize_text(raw)
        if norm and norm not in sources:
            sources.append(norm)
    return TextSignal(text=" ".join(sources), sources=tuple(sources))


def extract_facts(element: ElementSnapshot) -> StructuralFacts:
    _check_rect(element)
    for c in element.class_names:
        if not isinstance(c, str):
            raise ExtractionError(f"element {element.ref}: non-string class name {c!r}", ref=element.ref)

    attributes: dict[str, str] = {}
    if element.class_names:
        attributes["class"] = " ".join(element.class_names)
    if element.id:
        attributes["id"] = element.id
    for name in CHECKED_DATA_ATTRIBUTES:
        value = element.data_attributes.get(name)
        if value:
            attributes[name] = str(value)

    label_text = normalize_text(" ".join((element.text, element.aria_label, element.title, element.alt)))

    return StructuralFacts(
        ref=element.ref,
        tag=element.tag.lower(),
        rect=element.rect,
        z_index=parse_z_index(element.z_index),
        class_names=element.class_names,
        id=element.id,
        rel=tuple(element.rel.lower().split()),
        role=element.role.lower(),
        aria_label=element.aria_label,
        title=element.title,
        alt=element.alt,
        attributes=attributes,
        label_text=label_text,
        icon_names=tuple(n.lower() for n in element.icon_names),
        ancestors=element.ancestors[:MAX_ANCESTOR_DEPTH],
    )


def extract(element: ElementSnapshot) -> ElementSignal:
    """Derive text signal and structural facts for one element.

    Raises:
        ExtractionError: malformed geometry or attribute values.
    """
    return ElementSignal(element=element, text=extract_text(element), facts=extract_facts(element))
