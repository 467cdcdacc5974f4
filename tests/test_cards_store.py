import pytest

from cardpull.model.cards import (
    CardStore, DuplicateCardError, is_unique_violation,
)


class _PgError(Exception):
    def __init__(self, msg, sqlstate):
        super().__init__(msg)
        self.sqlstate = sqlstate


class _SqliteError(Exception):
    def __init__(self, msg, errorname):
        super().__init__(msg)
        self.sqlite_errorname = errorname


class _Wrapped(Exception):
    def __init__(self, orig):
        super().__init__(str(orig))
        self.orig = orig


class TestUniqueViolation:

    def test_postgres_sqlstate(self):
        assert is_unique_violation(_Wrapped(_PgError("dup", "23505")))
        # not-null violation mentioning a unique index name is still not one
        assert not is_unique_violation(
            _Wrapped(_PgError("null value; see cards_unique_idx", "23502"))
        )

    def test_sqlite_errorname(self):
        assert is_unique_violation(_Wrapped(_SqliteError(
            "UNIQUE constraint failed", "SQLITE_CONSTRAINT_UNIQUE"
        )))
        assert not is_unique_violation(_Wrapped(_SqliteError(
            "NOT NULL constraint failed: cards.card_key",
            "SQLITE_CONSTRAINT_NOTNULL",
        )))

    @pytest.mark.parametrize("msg", [
        "UNIQUE constraint failed: cards.card_key",
        "duplicate key value violates unique constraint",
        "D1_ERROR: constraint failed",
    ])
    def test_text_fallback(self, msg):
        assert is_unique_violation(RuntimeError(msg))

    def test_unrelated(self):
        assert not is_unique_violation(RuntimeError("disk I/O error"))


@pytest.mark.asyncio
async def test_insert_and_list_newest_first(db, database):
    store = CardStore(db=db, gated=database.gated)
    await store.insert("p1", "K1")
    await store.insert("p1", "K2")
    await store.insert("p2", "K1")

    items = await store.list_cards("p1")
    assert [i["card_key"] for i in items] == ["K2", "K1"]
    assert all(i["product_id"] == "p1" for i in items)
    assert items[0]["created_at"].endswith("+00:00")

    assert len(await store.list_cards("p1", limit=1)) == 1


@pytest.mark.asyncio
async def test_duplicate_insert_raises_and_session_recovers(db, database):
    store = CardStore(db=db, gated=database.gated)
    await store.insert("p1", "K1")
    with pytest.raises(DuplicateCardError) as exc_info:
        await store.insert("p1", "K1")
    assert exc_info.value.card_key == "K1"
    # same session still usable after the rollback
    await store.insert("p1", "K2")
    assert len(await store.list_cards("p1")) == 2
