# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pattern tables for navigation classification.

Weighted rules per intent, veto patterns (any match disqualifies), content
penalties (direction-agnostic), and the token tables used for chrome
exclusion and special-context recognition.  All regexes run against the
lowercased text signal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from . import NEXT, PREVIOUS

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PatternRule:
    """Weighted directional pattern."""

    regex: re.Pattern[str]
    weight: float
    tag: str  # navigation | temporal | directional | episodic | symbol | icon


@dataclass(frozen=True, slots=True)
class PenaltyPattern:
    regex: re.Pattern[str]
    penalty: float  # always < 0


def _rule(pattern: str, weight: float, tag: str) -> PatternRule:
    return PatternRule(re.compile(pattern, re.IGNORECASE), weight, tag)


# ---------------------------------------------------------------------------
# Directional rules
# ---------------------------------------------------------------------------

NEXT_RULES: tuple[PatternRule, ...] = (
    _rule(r"\bnext\b", 15, "navigation"),
    _rule(r"\bforward\b", 12, "navigation"),
    _rule(r"\bcontinue\b", 10, "navigation"),
    _rule(r"\bnewer\b", 12, "temporal"),
    _rule(r"\bright\b", 8, "directional"),
    _rule(r"next\s+page", 20, "navigation"),
    _rule(r"next\s+chapter", 18, "navigation"),
    _rule(r"next\s+post", 16, "navigation"),
    _rule(r"more\s+posts", 14, "navigation"),
    _rule(r"load\s+more", 14, "navigation"),
    _rule(r"show\s+more", 12, "navigation"),
    _rule(r"view\s+more", 12, "navigation"),
    _rule(r"next\s+episode", 22, "episodic"),
    _rule(r"next\s+recurrence", 20, "episodic"),
    _rule(r"\bepisode\s+\d+", 18, "episodic"),
    _rule(r"episode\s+(\d+)", 16, "episodic"),
    _rule(r"\bep\s+\d+", 15, "episodic"),
    _rule(r"continue\s+reading", 14, "episodic"),
    _rule(r"^→$", 18, "symbol"),
    _rule(r"^▶$", 18, "symbol"),
    _rule(r"^►$", 18, "symbol"),
    _rule(r"^>$", 15, "symbol"),
    _rule(r"right-fill", 16, "icon"),
    _rule(r"arrow-right", 16, "icon"),
    _rule(r"chevron-right", 16, "icon"),
)

PREVIOUS_RULES: tuple[PatternRule, ...] = (
    _rule(r"\bprev\b", 15, "navigation"),
    _rule(r"\bprevious\b", 15, "navigation"),
    _rule(r"\bback\b", 12, "navigation"),
    _rule(r"\bolder\b", 12, "temporal"),
    _rule(r"\bleft\b", 8, "directional"),
    _rule(r"previous\s+page", 20, "navigation"),
    _rule(r"previous\s+chapter", 18, "navigation"),
    _rule(r"previous\s+post", 16, "navigation"),
    _rule(r"go\s+back", 14, "navigation"),
    _rule(r"previous\s+episode", 22, "episodic"),
    _rule(r"prev\s+episode", 20, "episodic"),
    _rule(r"previous\s+recurrence", 20, "episodic"),
    _rule(r"prev\s+recurrence", 18, "episodic"),
    _rule(r"back\s+to\s+previous", 16, "episodic"),
    _rule(r"^←$", 18, "symbol"),
    _rule(r"^◀$", 18, "symbol"),
    _rule(r"^◄$", 18, "symbol"),
    _rule(r"^<$", 15, "symbol"),
    _rule(r"left-fill", 16, "icon"),
    _rule(r"arrow-left", 16, "icon"),
    _rule(r"chevron-left", 16, "icon"),
)

RULES_BY_INTENT: dict[str, tuple[PatternRule, ...]] = {
    NEXT: NEXT_RULES,
    PREVIOUS: PREVIOUS_RULES,
}

# ---------------------------------------------------------------------------
# Veto and penalty patterns
# ---------------------------------------------------------------------------

VETO_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # community / social
        r"\bcommunity\b",
        r"\bcomments\b",
        r"\bdiscussion\b",
        r"\bupvote\b",
        r"\bdownvote\b",
        r"\bshare\b",
        r"\bsave\b",
        r"\breport\b",
        r"\bfollow\b",
        r"\bunfollow\b",
        r"\bsubscribe\b",
        r"\bunsubscribe\b",
        r"\bcreate\s+a\s+community",
        r"\bcreate\s+community",
        r"\bcreate\s+post",
        r"\bjoin\s+community",
        r"\bleave\s+community",
        r"\bstart\s+community",
        r"\bnew\s+community",
        # "more" that expands content in place
        r"\bmore\s+info",
        r"\bmore\s+details",
        r"\bmore\s+about",
        r"\bmore\s+options",
        r"\bmore\s+settings",
        r"\blearn\s+more",
        r"\bread\s+more",
        r"\bfind\s+out\s+more",
        # page UI that is not pagination
        r"\bmenu\b",
        r"\bdropdown\b",
        r"\bfilter\b",
        r"\bsort\b",
        r"\bsearch\b",
        r"\bprofile\b",
        r"\bsettings\b",
        r"\bnotifications\b",
        # subreddit / user links and cross-posts
        r"\br\/\w+\b",
        r"\bu\/\w+\b",
        r"\bcross-?post",
        r"\bx-post",
        # taxonomy
        r"\bcategory\b",
        r"\btag\b",
        r"\blabel\b",
        r"\bbadge\b",
        r"\bstatus\b",
        # editing actions
        r"\bcreate\b",
        r"\badd\b",
        r"\bedit\b",
        r"\bdelete\b",
        r"\bremove\b",
        # prose, not a control
        r".{100,}",
    )
)

PENALTY_PATTERNS: tuple[PenaltyPattern, ...] = (
    PenaltyPattern(re.compile(r"\bmore\b", re.IGNORECASE), -15),
    PenaltyPattern(re.compile(r"\bless\b", re.IGNORECASE), -10),
    PenaltyPattern(re.compile(r"\bother\b", re.IGNORECASE), -8),
    PenaltyPattern(re.compile(r"\brelated\b", re.IGNORECASE), -8),
    PenaltyPattern(re.compile(r"\bsimilar\b", re.IGNORECASE), -8),
    PenaltyPattern(re.compile(r"\badditional\b", re.IGNORECASE), -10),
    PenaltyPattern(re.compile(r"\bextra\b", re.IGNORECASE), -8),
)

# ---------------------------------------------------------------------------
# Explicit class markers (bypass text scoring)
# ---------------------------------------------------------------------------

PAGINATION_CLASS_MARKERS: tuple[str, ...] = ("pagination", "pager")
PAGINATION_DIRECTION_MARKERS: dict[str, tuple[str, ...]] = {
    NEXT: ("next", "forward"),
    PREVIOUS: ("prev", "back"),
}
EXPLICIT_CLASS_MARKERS: dict[str, tuple[str, ...]] = {
    NEXT: ("next-page", "next-btn"),
    PREVIOUS: ("prev-page", "prev-btn"),
}
NAV_CLASS_MARKER = "nav"

# ---------------------------------------------------------------------------
# Chrome / browser UI tokens
# ---------------------------------------------------------------------------

CHROME_ATTRIBUTE_TOKENS: tuple[str, ...] = (
    "chrome-",
    "browser-",
    "extension-",
    "toolbar",
    "crx-",
    "navigation-bar",
    "nav-bar",
    "pdf-viewer",
)
CHROME_CONTAINER_IDS: frozenset[str] = frozenset({"viewercontainer"})
CHROME_LABEL_WORDS: tuple[str, ...] = ("Back", "Forward")  # case-sensitive, browser button labels
CHECKED_DATA_ATTRIBUTES: tuple[str, ...] = ("data-testid", "data-component")

BROWSER_NAVIGATION_PHRASES: tuple[str, ...] = (
    "back to previous page",
    "forward to next page",
    "browser back",
    "browser forward",
    "go back",
    "go forward",
    "navigate back",
    "navigate forward",
)
KEYBOARD_SHORTCUT_HINTS: tuple[str, ...] = ("ctrl+", "cmd+", "alt+", "⌘+")

INTERNAL_URL_PREFIXES: tuple[str, ...] = (
    "chrome://",
    "chrome-extension://",
    "moz-extension://",
    "safari-extension://",
    "edge://",
    "about:",
    "view-source:",
    "data:",
    "javascript:",
    "blob:",
)

# ---------------------------------------------------------------------------
# Special contexts
# ---------------------------------------------------------------------------

LIGHTBOX_TEXT_MARKERS: tuple[str, ...] = ("next page", "previous page", "lightbox", "right-fill", "left-fill")
LIGHTBOX_CLASS_MARKERS: tuple[str, ...] = ("lightbox", "modal", "overlay")
LIGHTBOX_ICON_MARKERS: tuple[str, ...] = ("fill", "arrow")

EPISODIC_TEXT_MARKERS: tuple[str, ...] = (
    "episode",
    "recurrence",
    "next-arrow",
    "prev-arrow",
    "chevron-right",
    "chevron-left",
)
EPISODIC_CLASS_MARKERS: tuple[str, ...] = ("webtoon", "episode", "recurrence")

# Mutation relevance: nodes whose appearance or state change warrants a rescan
OVERLAY_CLASS_MARKERS: tuple[str, ...] = ("lightbox", "modal", "overlay", "dialog", "carousel", "gallery")
WATCHED_ATTRIBUTES: frozenset[str] = frozenset({"class", "style", "aria-hidden", "data-state"})

# Text extraction: descendant class fragments that hint at icons or direction
ICON_CLASS_HINTS: tuple[str, ...] = ("arrow", "chevron", "next", "prev", "right", "left")

# Host collection: fixed selector list for candidate elements
CLICKABLE_SELECTORS: tuple[str, ...] = (
    "a[href]",
    "button",
    "[onclick]",
    '[role="button"]',
    ".btn",
    ".button",
    ".nav-link",
    ".pagination a",
    ".pager a",
    'input[type="button"]',
    'input[type="submit"]',
    '[tabindex="0"]',
    "[data-toggle]",
    "[data-action]",
    "svg[icon-name]",
    '[class*="lightbox"]',
    '[class*="modal"]',
    '[class*="overlay"]',
    "div[onclick]",
    "span[onclick]",
    '[style*="cursor: pointer"]',
    '[style*="cursor:pointer"]',
)
