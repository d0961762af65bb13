# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Side Scroller CLI: classify, detect, watch, train commands.

Usage:
    sidescroller classify TEXT [TEXT ...] [--json]
    sidescroller detect --url URL [--headed] [--json] [--all]
    sidescroller watch --url URL [--db PATH]
    sidescroller train show|set|clear --site HOST [--intent next|previous] [--selector CSS] [--text TEXT]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from . import INTENTS, NEXT, PREVIOUS
from .config import DetectorConfig, load_config
from .errors import SideScrollerError
from .logging_config import configure_from_env

DB_ENV_VAR = "SIDESCROLLER_DB"
DEFAULT_DB_PATH = "~/.sidescroller/overrides.db"


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        import yaml  # noqa: F401
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install side-scroller[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _db_path(args: argparse.Namespace) -> Path:
    raw = getattr(args, "db", None) or os.environ.get(DB_ENV_VAR) or DEFAULT_DB_PATH
    return Path(raw).expanduser()


def _load_config(args: argparse.Namespace) -> DetectorConfig:
    return load_config(getattr(args, "config", None))


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


def cmd_classify(args: argparse.Namespace) -> None:
    """Classify bare text labels (no browser)."""
    _require_cli_deps()
    from tabulate import tabulate

    from .scorer import classify, final_scores, veto_match

    config = _load_config(args)
    rows = []
    for text in args.text:
        lowered = text.lower()
        final_next, final_prev = final_scores(lowered, config)
        rows.append(
            {
                "text": text,
                "direction": classify(text, config),
                "next": final_next,
                "previous": final_prev,
                "veto": veto_match(lowered),
            }
        )

    if args.json:
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return
    table = [[r["text"], r["direction"] or "-", r["next"], r["previous"], r["veto"] or ""] for r in rows]
    print(tabulate(table, headers=["Text", "Direction", "Next", "Prev", "Veto"], tablefmt="simple"))


# ---------------------------------------------------------------------------
# detect
# ---------------------------------------------------------------------------


def cmd_detect(args: argparse.Namespace) -> None:
    """Run one detection pass against a live URL."""
    _require_cli_deps()
    config = _load_config(args)
    asyncio.run(_detect_live(args.url, config, headless=not args.headed, as_json=args.json, show_all=args.all))


async def _detect_live(url: str, config: DetectorConfig, *, headless: bool, as_json: bool, show_all: bool) -> None:
    from tabulate import tabulate

    from .browser import BrowserSession, capture_snapshot
    from .selector import detect_snapshot

    async with BrowserSession(headless=headless) as session:
        await session.navigate(url)
        if config.scheduler.initial_delay:
            await asyncio.sleep(config.scheduler.initial_delay)
        snapshot = await capture_snapshot(session.page)

    report = detect_snapshot(snapshot, config=config)
    by_ref = {e.ref: e for e in snapshot.elements}

    if as_json:
        payload = {
            "url": snapshot.url,
            "skipped": report.skipped_reason or None,
            "elements": len(snapshot.elements),
            "excluded": report.excluded_count,
        }
        for intent in INTENTS:
            chosen = report.result.get(intent)
            payload[intent] = None if chosen is None else {"selector": chosen.selector, "text": chosen.describe()}
        payload["candidates"] = {
            intent: [{"score": c.score, "text": c.text, "special": c.is_special} for c in report.candidates[intent]]
            for intent in INTENTS
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    if report.skipped_reason:
        print(f"Detection skipped: {report.skipped_reason}")
        return

    print(f"{snapshot.url}: {len(snapshot.elements)} elements, {report.excluded_count} excluded")
    for intent in INTENTS:
        chosen = report.result.get(intent)
        label = "Previous" if intent == PREVIOUS else "Next"
        print(f"{label}: {chosen.describe() if chosen else '(none)'}")

    decisions = report.decisions if show_all else [d for d in report.decisions if d.stage == "candidate"]
    if decisions:
        rows = [
            [
                d.ref,
                d.stage,
                d.intent or "",
                "" if d.score is None else f"{d.score:.1f}",
                by_ref[d.ref].describe() if d.ref in by_ref else "",
                d.reason[:60],
            ]
            for d in decisions
        ]
        print()
        print(tabulate(rows, headers=["Ref", "Stage", "Intent", "Score", "Element", "Reason"], tablefmt="simple"))


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


def cmd_watch(args: argparse.Namespace) -> None:
    """Open a headed browser and keep arrow-key navigation bound."""
    config = _load_config(args)
    asyncio.run(_watch(args.url, config, _db_path(args), use_store=not args.no_store))


async def _watch(url: str, config: DetectorConfig, db_path: Path, *, use_store: bool) -> None:
    from .binder import NavigationBinder
    from .browser import BrowserSession, PlaywrightHost
    from .overrides_sqlite import SqliteOverrideStore

    store = await SqliteOverrideStore.create(db_path) if use_store else None
    try:
        async with BrowserSession(headless=False) as session:
            await session.navigate(url)
            host = PlaywrightHost(session.page)
            binder = NavigationBinder(host, store=store, config=config)
            await host.attach(binder)
            if not await binder.start():
                print("Initial detection failed; waiting for page changes.", file=sys.stderr)
            print(json.dumps(binder.status(), ensure_ascii=False), file=sys.stderr)
            print("Watching. Close the browser window to exit.", file=sys.stderr)
            await session.page.wait_for_event("close", timeout=0)
            await binder.close()
    finally:
        if store is not None:
            await store.close()


# ---------------------------------------------------------------------------
# train
# ---------------------------------------------------------------------------


def cmd_train(args: argparse.Namespace) -> None:
    """Show, set or clear trained elements for a site."""
    if args.action == "set" and (not args.intent or not args.selector):
        print("Error: train set requires --intent and --selector.", file=sys.stderr)
        sys.exit(1)
    asyncio.run(_train(args, _db_path(args)))


async def _train(args: argparse.Namespace, db_path: Path) -> None:
    from .overrides import TrainedElement, override_status
    from .overrides_sqlite import SqliteOverrideStore

    store = await SqliteOverrideStore.create(db_path)
    try:
        if args.action == "set":
            await store.set(args.site, args.intent, TrainedElement(selector=args.selector, text=args.text or ""))
            print(f"Trained {args.intent} for {args.site}: {args.selector}")
        elif args.action == "clear":
            removed = await store.clear(args.site)
            print(f"Cleared {args.site}" if removed else f"Nothing trained for {args.site}")
        else:
            print(json.dumps(await override_status(store, args.site), ensure_ascii=False, indent=2))
    finally:
        await store.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Side Scroller CLI", prog="sidescroller")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--config", type=str, metavar="PATH", help="YAML config (default: $SIDESCROLLER_CONFIG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_classify = subparsers.add_parser("classify", help="Classify text labels as previous/next")
    p_classify.add_argument("text", nargs="+", help="Label text, e.g. 'Next Page'")
    p_classify.add_argument("--json", action="store_true", help="Output JSON")

    p_detect = subparsers.add_parser("detect", help="Detect navigation elements on a live page")
    p_detect.add_argument("--url", type=str, required=True, metavar="URL")
    p_detect.add_argument("--headed", action="store_true", help="Show the browser window")
    p_detect.add_argument("--json", action="store_true", help="Output JSON")
    p_detect.add_argument("--all", action="store_true", help="List every element decision, not only candidates")

    p_watch = subparsers.add_parser("watch", help="Bind arrow keys in a headed browser and follow page changes")
    p_watch.add_argument("--url", type=str, required=True, metavar="URL")
    p_watch.add_argument("--db", type=str, metavar="PATH", help=f"Override database (default: {DEFAULT_DB_PATH})")
    p_watch.add_argument("--no-store", action="store_true", help="Ignore trained overrides")

    p_train = subparsers.add_parser("train", help="Manage per-site trained elements")
    p_train.add_argument("action", choices=["show", "set", "clear"])
    p_train.add_argument("--site", type=str, required=True, metavar="HOST")
    p_train.add_argument("--intent", choices=[PREVIOUS, NEXT])
    p_train.add_argument("--selector", type=str, metavar="CSS")
    p_train.add_argument("--text", type=str, default="")
    p_train.add_argument("--db", type=str, metavar="PATH", help=f"Override database (default: {DEFAULT_DB_PATH})")

    commands = {
        "classify": cmd_classify,
        "detect": cmd_detect,
        "watch": cmd_watch,
        "train": cmd_train,
    }

    args = parser.parse_args(argv)
    configure_from_env(verbose=args.verbose)

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        label = "Error" if isinstance(e, SideScrollerError) else type(e).__name__
        print(f"{label}: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
