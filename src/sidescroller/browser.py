# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright host adapter.

Implements ``NavigationHost`` for a live Playwright ``Page``:

- ``snapshot()``         one ``page.evaluate`` collects every visible
                         clickable element with the attributes the
                         detector reads, plus viewport and location
- ``activate()``         clicks the bound element by its unique selector
- ``publish_bindings()`` tells the in-page key listener which arrows to claim
- ``attach()``           installs the MutationObserver feed, the keydown feed
                         and main-frame navigation tracking for a binder
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from . import ElementSnapshot, PageSnapshot, Viewport
from .errors import BrowserError, SnapshotError
from .patterns import CLICKABLE_SELECTORS, ICON_CLASS_HINTS
from .scheduler import MutationEvent

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page

    from .binder import NavigationBinder

logger = logging.getLogger(__name__)

MAX_ELEMENTS = 1000
_ACTIVATE_TIMEOUT_MS = 5_000

_MUTATION_BINDING = "__sidescrollerMutations"
_KEY_BINDING = "__sidescrollerKey"

# ── Snapshot JS ─────────────────────────────────────────────────────
# Single evaluate call; arguments: {selectors, iconHints, maxElements}.

_SNAPSHOT_JS = """\
(args) => {
  const {selectors, iconHints, maxElements} = args;
  const MAX_DEPTH = 10;

  function getUniqueSelector(el) {
    if (!el || el.nodeType !== 1) return "";
    if (el.id) return "#" + CSS.escape(el.id);
    const TA = ["data-testid", "data-test-id", "data-cy", "data-test"];
    for (const a of TA) {
      const v = el.getAttribute(a);
      if (v) return "[" + a + '="' + CSS.escape(v) + '"]';
    }
    const al = el.getAttribute("aria-label");
    if (al) {
      const s = el.localName + '[aria-label="' + CSS.escape(al) + '"]';
      try { if (document.querySelectorAll(s).length === 1) return s; } catch(e) {}
    }
    if (el.localName === "a") {
      const hr = el.getAttribute("href");
      if (hr) {
        const s = 'a[href="' + CSS.escape(hr) + '"]';
        try { if (document.querySelectorAll(s).length === 1) return s; } catch(e) {}
      }
    }
    const path = [];
    let cur = el;
    while (cur && cur.nodeType === 1) {
      let seg = cur.localName;
      if (cur.id) { path.unshift("#" + CSS.escape(cur.id)); break; }
      const parent = cur.parentElement;
      if (parent) {
        const sibs = Array.from(parent.children).filter(
          s => s.localName === cur.localName
        );
        if (sibs.length > 1) {
          seg += ":nth-of-type(" + (sibs.indexOf(cur) + 1) + ")";
        }
      }
      path.unshift(seg);
      cur = cur.parentElement;
    }
    return path.join(" > ");
  }

  function classList(el) {
    const c = el.getAttribute("class");
    return c ? c.split(/\\s+/).filter(Boolean) : [];
  }

  function isVisible(el, rect) {
    if (rect.width <= 0 || rect.height <= 0) return false;
    const st = getComputedStyle(el);
    if (st.display === "none" || st.visibility === "hidden" || st.opacity === "0") return false;
    // Detached or display:none ancestor. Fixed elements have no offsetParent either;
    // SVG elements have no offsetParent property at all.
    if (el.offsetParent === null && st.position !== "fixed") return false;
    return true;
  }

  const seen = new Set();
  const found = [];
  for (const sel of selectors) {
    try {
      for (const el of document.querySelectorAll(sel)) {
        if (seen.has(el)) continue;
        seen.add(el);
        found.push(el);
      }
    } catch (e) {}
  }
  // Document order, so ties resolve to the element that appears first.
  found.sort((a, b) =>
    a === b ? 0 : (a.compareDocumentPosition(b) & Node.DOCUMENT_POSITION_FOLLOWING ? -1 : 1)
  );

  const elements = [];
  for (const el of found) {
    if (elements.length >= maxElements) break;
    const r = el.getBoundingClientRect();
    if (!isVisible(el, r)) continue;

    const data = {};
    for (const a of ["data-testid", "data-component"]) {
      const v = el.getAttribute(a);
      if (v) data[a] = v;
    }
    const img = el.querySelector("img[alt]");
    const nested = el.querySelector("[aria-label]");
    const iconNames = [];
    if (el.hasAttribute("icon-name")) iconNames.push(el.getAttribute("icon-name"));
    for (const svg of el.querySelectorAll("svg[icon-name]")) {
      iconNames.push(svg.getAttribute("icon-name"));
    }
    const iconClassNames = [];
    for (const d of el.querySelectorAll("[class]")) {
      for (const c of classList(d)) {
        const lc = c.toLowerCase();
        if (iconHints.some(h => lc.includes(h))) iconClassNames.push(c);
      }
    }
    const ancestors = [];
    let p = el.parentElement;
    while (p && p !== document.body && ancestors.length < MAX_DEPTH) {
      ancestors.push({
        tag: p.localName,
        classNames: classList(p),
        id: p.id || "",
        role: p.getAttribute("role") || ""
      });
      p = p.parentElement;
    }

    elements.push({
      ref: elements.length,
      tag: el.localName,
      rect: {top: r.top, left: r.left, width: r.width, height: r.height},
      zIndex: getComputedStyle(el).zIndex,
      classNames: classList(el),
      id: el.id || "",
      rel: el.getAttribute("rel") || "",
      role: el.getAttribute("role") || "",
      ariaLabel: el.getAttribute("aria-label") || "",
      title: el.getAttribute("title") || "",
      alt: el.getAttribute("alt") || "",
      text: (el.textContent || "").trim(),
      data: data,
      dataOriginalTitle: el.getAttribute("data-original-title") || "",
      imgAlt: img ? img.getAttribute("alt") || "" : "",
      nestedAriaLabel: nested && nested !== el ? nested.getAttribute("aria-label") || "" : "",
      iconNames: iconNames,
      iconClassNames: iconClassNames,
      ancestors: ancestors,
      selector: getUniqueSelector(el),
      href: el.getAttribute("href") || ""
    });
  }

  return {
    url: location.href,
    viewport: {width: window.innerWidth, height: window.innerHeight},
    elements: elements
  };
}
"""

# ── Change / key feeds ──────────────────────────────────────────────
# Installed as an init script so every new document gets them; the
# exposed bindings survive navigation on the Python side.

_FEED_JS = """\
(() => {
  if (window.__sidescrollerFeed) return;
  window.__sidescrollerFeed = true;
  window.__sidescrollerBound = [];

  const OVERLAY = '[class*="lightbox"],[class*="modal"],[class*="overlay"],[class*="dialog"],' +
    '[class*="carousel"],[class*="gallery"],[role="dialog"],[class*="webtoon"],' +
    '[class*="episode"],[class*="recurrence"],svg[icon-name*="fill"],button[aria-label*="page"]';
  const MAX_DESCENDANTS = 10;

  function describe(node, withDescendants) {
    const c = node.getAttribute && node.getAttribute("class");
    const info = {
      tag: node.localName || "",
      classNames: c && typeof c === "string" ? c.split(/\\s+/).filter(Boolean) : [],
      role: (node.getAttribute && node.getAttribute("role")) || "",
      ariaLabel: (node.getAttribute && node.getAttribute("aria-label")) || "",
      iconName: (node.getAttribute && node.getAttribute("icon-name")) || "",
      descendants: []
    };
    if (withDescendants && node.querySelectorAll) {
      try {
        for (const d of node.querySelectorAll(OVERLAY)) {
          info.descendants.push(describe(d, false));
          if (info.descendants.length >= MAX_DESCENDANTS) break;
        }
      } catch (e) {}
    }
    return info;
  }

  function start() {
    const observer = new MutationObserver((mutations) => {
      const batch = [];
      for (const m of mutations) {
        if (m.type === "childList") {
          const nodes = [];
          for (const n of [...m.addedNodes, ...m.removedNodes]) {
            if (n.nodeType === 1) nodes.push(describe(n, true));
          }
          if (nodes.length) batch.push({kind: "child_list", nodes: nodes});
        } else if (m.type === "attributes" && m.target.nodeType === 1) {
          batch.push({kind: "attributes", attribute: m.attributeName, nodes: [describe(m.target, false)]});
        }
      }
      if (batch.length && window.__sidescrollerMutations) window.__sidescrollerMutations(batch);
    });
    observer.observe(document.documentElement, {
      childList: true,
      subtree: true,
      attributes: true,
      attributeFilter: ["class", "style", "aria-hidden", "data-state"]
    });
  }

  document.addEventListener("keydown", (e) => {
    if (e.key !== "ArrowLeft" && e.key !== "ArrowRight") return;
    if (e.ctrlKey || e.metaKey || e.altKey || e.shiftKey) return;
    const a = document.activeElement;
    if (a && (a.isContentEditable || ["input", "textarea", "select"].includes(a.localName))) return;
    if (!window.__sidescrollerBound.includes(e.key)) return;
    e.preventDefault();
    e.stopPropagation();
    if (window.__sidescrollerKey) window.__sidescrollerKey(e.key);
  }, true);

  if (document.documentElement) start();
  else document.addEventListener("DOMContentLoaded", start, {once: true});
})()
"""

_PUBLISH_JS = "(keys) => { window.__sidescrollerBound = keys; }"


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


def snapshot_from_payload(raw: Any) -> PageSnapshot:
    """Build a ``PageSnapshot`` from the snapshot JS result.

    Raises:
        SnapshotError: payload is not the expected shape.
    """
    if not isinstance(raw, dict):
        raise SnapshotError(f"unexpected snapshot payload: {type(raw).__name__}")
    vp = raw.get("viewport") or {}
    try:
        viewport = Viewport(width=float(vp["width"]), height=float(vp["height"]))
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotError(f"snapshot viewport missing or invalid: {vp!r}") from e

    elements: list[ElementSnapshot] = []
    for item in raw.get("elements") or ():
        try:
            elements.append(ElementSnapshot.from_dict(item))
        except (TypeError, ValueError, AttributeError):
            logger.debug("Skipping malformed element payload", exc_info=True)
    return PageSnapshot(url=str(raw.get("url", "")), viewport=viewport, elements=tuple(elements))


async def capture_snapshot(page: Page, *, max_elements: int = MAX_ELEMENTS) -> PageSnapshot:
    """Collect the page's visible clickable elements.

    Raises:
        SnapshotError: evaluation failed (navigation in flight, closed page, ...).
    """
    args = {"selectors": list(CLICKABLE_SELECTORS), "iconHints": list(ICON_CLASS_HINTS), "maxElements": max_elements}
    try:
        raw = await page.evaluate(_SNAPSHOT_JS, args)
    except Exception as e:
        raise SnapshotError(f"snapshot evaluation failed: {e}") from e
    snapshot = snapshot_from_payload(raw)
    logger.debug("Captured %d elements from %s", len(snapshot.elements), snapshot.url)
    return snapshot


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class PlaywrightHost:
    """``NavigationHost`` backed by a Playwright page."""

    def __init__(self, page: Page, *, max_elements: int = MAX_ELEMENTS) -> None:
        self._page = page
        self._max_elements = max_elements
        self._binder: NavigationBinder | None = None

    @property
    def page(self) -> Page:
        return self._page

    async def snapshot(self) -> PageSnapshot:
        return await capture_snapshot(self._page, max_elements=self._max_elements)

    async def activate(self, element: ElementSnapshot) -> None:
        if not element.selector:
            raise BrowserError(f"element has no selector: {element.describe()}")
        try:
            await self._page.locator(element.selector).first.click(timeout=_ACTIVATE_TIMEOUT_MS)
        except Exception as e:
            raise BrowserError(f"click failed on {element.selector}: {e}") from e

    async def publish_bindings(self, keys: frozenset[str]) -> None:
        try:
            await self._page.evaluate(_PUBLISH_JS, sorted(keys))
        except Exception:
            # Page mid-navigation; the next pass republishes.
            logger.debug("Publishing key bindings failed", exc_info=True)

    # ── Feeds ─────────────────────────────────────────────────────

    async def attach(self, binder: NavigationBinder) -> None:
        """Wire DOM mutations, key presses and navigations into ``binder``."""
        self._binder = binder
        await self._page.expose_function(_MUTATION_BINDING, self._on_mutations)
        await self._page.expose_function(_KEY_BINDING, self._on_key)
        await self._page.add_init_script(script=_FEED_JS)
        await self._page.evaluate(_FEED_JS)
        self._page.on("framenavigated", self._on_frame_navigated)
        logger.info("Attached to %s", self._page.url)

    def _on_mutations(self, batch: list[dict[str, Any]]) -> None:
        if self._binder is None:
            return
        events = []
        for raw in batch or ():
            try:
                events.append(MutationEvent.from_dict(raw))
            except (TypeError, AttributeError):
                logger.debug("Skipping malformed mutation payload", exc_info=True)
        self._binder.handle_mutations(events)

    async def _on_key(self, key: str) -> bool:
        if self._binder is None:
            return False
        try:
            return await self._binder.press(key)
        except BrowserError as e:
            logger.warning("Key %s activation failed: %s", key, e)
            return False

    def _on_frame_navigated(self, frame: Frame) -> None:
        if self._binder is None or frame != self._page.main_frame:
            return
        self._binder.handle_location(frame.url)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class BrowserSession:
    """Owns one Playwright browser, context and page.

    Usage::

        async with BrowserSession(headless=False) as session:
            await session.navigate("https://example.com")
            host = PlaywrightHost(session.page)
    """

    def __init__(self, *, headless: bool = True, viewport: tuple[int, int] = (1280, 800)) -> None:
        self.headless = headless
        self.viewport = viewport
        self._playwright = None
        self._browser = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserError("browser session not started")
        return self._page

    async def start(self) -> None:
        """Launch the browser and open a page."""
        from playwright.async_api import async_playwright

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            width, height = self.viewport
            context = await self._browser.new_context(viewport={"width": width, "height": height})
            self._page = await context.new_page()
        except Exception as e:
            await self.stop()
            raise BrowserError(f"browser launch failed: {e}") from e
        logger.info("Browser session started (headless=%s)", self.headless)

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="load")
        except BrowserError:
            raise
        except Exception as e:
            raise BrowserError(f"navigation to {url} failed: {e}") from e

    async def stop(self) -> None:
        """Close browser and Playwright. Idempotent."""
        if self._browser is not None:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        self._page = None

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
