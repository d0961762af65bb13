# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed trained-override store.

Uses ``aiosqlite`` with a single long-lived connection.  WAL journal mode
lets a running ``watch`` session read while ``train set`` writes.  Schema
versioned via ``PRAGMA user_version``.
"""

from __future__ import annotations

from contextlib import suppress
from pathlib import Path

import aiosqlite

from . import INTENTS, NEXT, PREVIOUS
from .errors import OverrideStoreError
from .overrides import SiteOverride, TrainedElement, _validate_intent

_SCHEMA_VERSION = 1

_CREATE_TRAINED_ELEMENTS = """
CREATE TABLE IF NOT EXISTS trained_elements (
    site       TEXT NOT NULL,
    intent     TEXT NOT NULL,
    selector   TEXT NOT NULL,
    text       TEXT NOT NULL DEFAULT '',
    timestamp  REAL NOT NULL,
    PRIMARY KEY (site, intent)
)
"""


class SqliteOverrideStore:
    """SQLite store implementing ``OverrideStore``.

    Use the ``create()`` async classmethod factory — never instantiate directly.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def create(cls, db_path: str | Path) -> SqliteOverrideStore:
        """Open (or create) the database and initialise the schema.

        Resolves ``~`` and creates parent directories automatically.

        Raises:
            OverrideStoreError: unreadable database or newer schema version.
        """
        path = Path(db_path).expanduser().resolve()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(str(path))
        except (OSError, aiosqlite.Error) as e:
            raise OverrideStoreError(f"cannot open override database {path}: {e}") from e

        try:
            await db.execute("PRAGMA journal_mode = WAL")

            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise OverrideStoreError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            if current_version < _SCHEMA_VERSION:
                await db.execute(_CREATE_TRAINED_ELEMENTS)
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                await db.commit()
        except aiosqlite.Error as e:
            await db.close()
            raise OverrideStoreError(f"cannot initialise override database {path}: {e}") from e
        except BaseException:
            await db.close()
            raise

        return cls(db)

    # ── OverrideStore methods ─────────────────────────────────────

    async def get(self, site: str) -> SiteOverride | None:
        """Trained pair for ``site``, or ``None`` when nothing is stored."""
        try:
            cursor = await self._db.execute(
                "SELECT intent, selector, text, timestamp FROM trained_elements WHERE site = ?",
                (site,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise OverrideStoreError(f"override lookup failed for {site}: {e}") from e
        if not rows:
            return None
        trained = {
            row[0]: TrainedElement(selector=row[1], text=row[2], timestamp=row[3]) for row in rows if row[0] in INTENTS
        }
        return SiteOverride(site=site, previous=trained.get(PREVIOUS), next=trained.get(NEXT))

    async def set(self, site: str, intent: str, element: TrainedElement) -> None:
        """Store or replace the trained element for one intent."""
        _validate_intent(intent)
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO trained_elements (site, intent, selector, text, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (site, intent, element.selector, element.text, element.timestamp),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise OverrideStoreError(f"override write failed for {site}: {e}") from e

    async def clear(self, site: str) -> bool:
        """Forget both intents for ``site``. Returns ``True`` if anything was removed."""
        try:
            cursor = await self._db.execute("DELETE FROM trained_elements WHERE site = ?", (site,))
            await self._db.commit()
        except aiosqlite.Error as e:
            raise OverrideStoreError(f"override clear failed for {site}: {e}") from e
        return cursor.rowcount > 0

    async def sites(self) -> list[str]:
        try:
            cursor = await self._db.execute("SELECT DISTINCT site FROM trained_elements ORDER BY site")
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise OverrideStoreError(f"override listing failed: {e}") from e
        return [r[0] for r in rows]

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        with suppress(Exception):
            await self._db.close()
