# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Element/snapshot builders shared by the detection tests."""

from __future__ import annotations

from sidescroller import AncestorInfo, ElementSnapshot, PageSnapshot, Rect, Viewport

VIEWPORT = Viewport(width=1280, height=800)


def el(
    ref: int = 0,
    text: str = "",
    *,
    tag: str = "a",
    top: float = 380,
    left: float = 1100,
    width: float = 80,
    height: float = 40,
    ancestors: tuple[AncestorInfo, ...] = (),
    **kw,
) -> ElementSnapshot:
    """Element centred vertically on the right-hand side of ``VIEWPORT`` by default."""
    return ElementSnapshot(
        ref=ref,
        tag=tag,
        rect=Rect(top=top, left=left, width=width, height=height),
        text=text,
        ancestors=ancestors,
        **kw,
    )


def left_el(ref: int = 0, text: str = "", **kw) -> ElementSnapshot:
    """Same as ``el`` but on the left-hand side."""
    kw.setdefault("left", 100)
    return el(ref, text, **kw)


def page(*elements: ElementSnapshot, url: str = "https://example.com/gallery/1") -> PageSnapshot:
    return PageSnapshot(url=url, viewport=VIEWPORT, elements=tuple(elements))
