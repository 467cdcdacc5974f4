# tests/conftest.py
import os
import tempfile

import pytest
import pytest_asyncio

# server.py reads its config at import time
_TMP = tempfile.mkdtemp(prefix="cardpull-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/server.db"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "supasecret"
os.environ["APP_VERSION"] = "1.2.0"

from cardpull.infra.sql import make_database  # noqa: E402
from cardpull.infra import pullstats  # noqa: E402
from cardpull.model.db import create_schema  # noqa: E402

from tests.upstream import Upstream  # noqa: E402


@pytest_asyncio.fixture
async def upstream():
    made = []

    def _make(handler) -> Upstream:
        u = Upstream(handler)
        made.append(u)
        return u

    yield _make
    for u in made:
        await u.client.aclose()


@pytest_asyncio.fixture
async def database(tmp_path):
    database = make_database(f"sqlite:///{tmp_path}/cards.db")
    await create_schema(database.engine)
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture(autouse=True)
def _clear_pullstats():
    pullstats.reset()
    yield
    pullstats.reset()
