from __future__ import annotations
import logging
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Card
from ..helpers import now_ts, to_iso, error_text
from ..infra.sql import Gated

log = logging.getLogger(__name__)

PG_UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_ERRORS = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")


class CardStoreError(Exception):
    """Insert into the cards table failed."""


class DuplicateCardError(CardStoreError):
    def __init__(self, product_id: str, card_key: str) -> None:
        super().__init__(f"card already stored for product {product_id}")
        self.product_id = product_id
        self.card_key = card_key


def is_unique_violation(exc: BaseException) -> bool:
    """Classify a store error as a uniqueness violation.

    Typed driver info wins: SQLSTATE on asyncpg, the extended error name on
    sqlite3. Drivers that expose neither fall back to matching the text.
    """
    orig = getattr(exc, "orig", None) or exc
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == PG_UNIQUE_VIOLATION
    errname = getattr(orig, "sqlite_errorname", None)
    if errname and errname.startswith("SQLITE_CONSTRAINT"):
        return errname in SQLITE_UNIQUE_ERRORS
    msg = error_text(exc)
    return "unique" in msg or "constraint failed" in msg


class CardStore:
    def __init__(self, *, db: AsyncSession, gated: Gated) -> None:
        self.db = db
        self.gated = gated

    async def insert(self, product_id: str, card_key: str) -> None:
        try:
            async with self.gated():
                async with self.db.begin():
                    self.db.add(Card(
                        product_id=product_id,
                        card_key=card_key,
                        created_at=now_ts(),
                    ))
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateCardError(product_id, card_key) from e
            raise CardStoreError(str(e.orig or e)) from e
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise DuplicateCardError(product_id, card_key) from e
            raise CardStoreError(str(e)) from e

    async def list_cards(
        self, product_id: str, limit: int = 100
    ) -> List[Dict[str, Any]]:
        async with self.gated():
            async with self.db.begin():
                rows = (await self.db.execute(text("""
                    SELECT id, product_id, card_key, created_at
                    FROM cards
                    WHERE product_id = :pid
                    ORDER BY created_at DESC, id DESC
                    LIMIT :lim
                """), {"pid": product_id, "lim": int(limit)})).mappings().all()
        return [
            {
                "id": r["id"],
                "product_id": r["product_id"],
                "card_key": r["card_key"],
                "created_at": to_iso(r["created_at"]),
            }
            for r in rows
        ]
