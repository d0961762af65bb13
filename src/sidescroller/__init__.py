# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Side Scroller: previous/next navigation detection for arbitrary web pages.

Inspects a snapshot of a page's interactive elements and decides which single
element (if any) best represents "go to previous content" and "go to next
content", so that a key-binding layer can invoke it:
- chrome_filter: vetoes browser/extension UI elements
- scorer: pattern-based classification and ranking
- selector: per-intent candidate selection
- scheduler: debounced rescans as the document mutates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PREVIOUS = "previous"
NEXT = "next"
INTENTS: tuple[str, str] = (PREVIOUS, NEXT)


@dataclass(frozen=True, slots=True)
class Rect:
    """Bounding box in viewport coordinates."""

    top: float
    left: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True, slots=True)
class Viewport:
    width: float
    height: float

    @property
    def middle_y(self) -> float:
        return self.height / 2


@dataclass(frozen=True, slots=True)
class AncestorInfo:
    """One entry of an element's ancestor chain (nearest first)."""

    tag: str = "div"
    class_names: tuple[str, ...] = ()
    id: str = ""
    role: str = ""


@dataclass(frozen=True, slots=True)
class ElementSnapshot:
    """Read-only view of one interactive element, captured by the host."""

    ref: int  # identity within one snapshot
    tag: str  # lowercased tag name: a, button, div, svg, ...
    rect: Rect
    z_index: str = "auto"  # raw computed style value
    class_names: tuple[str, ...] = ()
    id: str = ""
    rel: str = ""
    role: str = ""
    aria_label: str = ""
    title: str = ""
    alt: str = ""
    text: str = ""  # textContent
    data_attributes: dict[str, str] = field(default_factory=dict)
    data_original_title: str = ""
    img_alt: str = ""  # alt of first nested <img>
    nested_aria_label: str = ""  # aria-label of first nested [aria-label]
    icon_names: tuple[str, ...] = ()  # svg[icon-name] values (self + descendants)
    icon_class_names: tuple[str, ...] = ()  # descendant classes hinting at arrows/directions
    ancestors: tuple[AncestorInfo, ...] = ()
    selector: str = ""  # unique CSS selector, used by host activation and trained overrides
    href: str = ""

    @property
    def kind(self) -> str:
        """Coarse tag kind: link, button or generic."""
        if self.tag == "a":
            return "link"
        if self.tag == "button":
            return "button"
        return "generic"

    def describe(self) -> str:
        """Short human-readable description for logs."""
        ident = f"#{self.id}" if self.id else ""
        classes = "".join(f".{c}" for c in self.class_names[:3])
        text = " ".join(self.text.split())[:50]
        return f'{self.tag}{ident}{classes} "{text}"'

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ElementSnapshot:
        """Build from the host's JSON-like payload.

        Missing keys fall back to defaults; geometry values are taken as-is so
        that malformed payloads surface during extraction.
        """
        rect_raw = raw.get("rect") or {}
        return cls(
            ref=int(raw.get("ref", 0)),
            tag=str(raw.get("tag", "div")).lower(),
            rect=Rect(
                top=rect_raw.get("top", 0.0),
                left=rect_raw.get("left", 0.0),
                width=rect_raw.get("width", 0.0),
                height=rect_raw.get("height", 0.0),
            ),
            z_index=str(raw.get("zIndex", "auto")),
            class_names=tuple(raw.get("classNames") or ()),
            id=raw.get("id") or "",
            rel=raw.get("rel") or "",
            role=raw.get("role") or "",
            aria_label=raw.get("ariaLabel") or "",
            title=raw.get("title") or "",
            alt=raw.get("alt") or "",
            text=raw.get("text") or "",
            data_attributes=dict(raw.get("data") or {}),
            data_original_title=raw.get("dataOriginalTitle") or "",
            img_alt=raw.get("imgAlt") or "",
            nested_aria_label=raw.get("nestedAriaLabel") or "",
            icon_names=tuple(raw.get("iconNames") or ()),
            icon_class_names=tuple(raw.get("iconClassNames") or ()),
            ancestors=tuple(
                AncestorInfo(
                    tag=str(a.get("tag", "div")).lower(),
                    class_names=tuple(a.get("classNames") or ()),
                    id=a.get("id") or "",
                    role=a.get("role") or "",
                )
                for a in raw.get("ancestors") or ()
            ),
            selector=raw.get("selector") or "",
            href=raw.get("href") or "",
        )


@dataclass(frozen=True, slots=True)
class PageSnapshot:
    """Everything one detection pass needs from the host document."""

    url: str
    viewport: Viewport
    elements: tuple[ElementSnapshot, ...]

    @property
    def site(self) -> str:
        from urllib.parse import urlparse

        return urlparse(self.url).hostname or ""


@dataclass(frozen=True, slots=True)
class Candidate:
    """A classified element competing for one intent during a single pass."""

    element: ElementSnapshot
    text: str
    score: float
    is_special: bool


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Chosen element per intent. Replaced wholesale on every pass."""

    previous: ElementSnapshot | None = None
    next: ElementSnapshot | None = None

    def get(self, intent: str) -> ElementSnapshot | None:
        return self.previous if intent == PREVIOUS else self.next

    @property
    def found(self) -> bool:
        return self.previous is not None or self.next is not None


EMPTY_RESULT = DetectionResult()


@dataclass(frozen=True, slots=True)
class Decision:
    """Diagnostic record for one element in one pass. Observational only."""

    ref: int
    stage: str  # excluded | unclassified | out_of_band | candidate | error
    reason: str = ""
    intent: str | None = None
    score: float | None = None
    breakdown: dict[str, float] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
