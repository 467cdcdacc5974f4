from __future__ import annotations
import logging
from typing import Dict, Iterable, Mapping

from sqlalchemy import text, bindparam
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..helpers import now_ts
from ..infra.sql import Gated

log = logging.getLogger(__name__)


def _is_missing_settings_table(exc: BaseException) -> bool:
    # judge the driver message only; the wrapped text also carries the SQL
    orig = getattr(exc, "orig", None) or exc
    msg = str(orig).lower()
    # sqlite: "no such table: settings"
    # postgres: 'relation "settings" does not exist'
    return (
        "no such table: settings" in msg
        or 'relation "settings" does not exist' in msg
    )


class SettingsStore:
    """Generic key/value settings shared across the admin panel.

    Values are strings. A database without a ``settings`` table reads as
    empty rather than failing.
    """

    def __init__(self, *, db: AsyncSession, gated: Gated) -> None:
        self.db = db
        self.gated = gated

    async def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = tuple(keys)
        if not keys:
            return {}
        stmt = text(
            "SELECT key, value FROM settings WHERE key IN :keys"
        ).bindparams(bindparam("keys", expanding=True))
        try:
            async with self.gated():
                async with self.db.begin():
                    rows = (await self.db.execute(
                        stmt, {"keys": keys}
                    )).all()
        except DBAPIError as e:
            if _is_missing_settings_table(e):
                log.debug("settings table missing; treating as empty")
                return {}
            raise
        return {r[0]: r[1] or "" for r in rows}

    async def get(self, key: str, default: str = "") -> str:
        values = await self.get_many([key])
        return values.get(key, default)

    async def set_many(self, mapping: Mapping[str, str]) -> None:
        if not mapping:
            return
        ts = now_ts()
        async with self.gated():
            async with self.db.begin():
                for key, value in mapping.items():
                    await self.db.execute(text("""
                      INSERT INTO settings(key, value, updated_at)
                      VALUES(:key, :value, :ts)
                      ON CONFLICT (key) DO UPDATE
                      SET value=EXCLUDED.value, updated_at=EXCLUDED.updated_at
                    """), {"key": key, "value": value, "ts": ts})

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})
