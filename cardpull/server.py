from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import Form
from fastapi.responses import RedirectResponse, ORJSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.sessions import SessionMiddleware
from starlette.status import HTTP_303_SEE_OTHER

from . import __version__
from .cardapi import (
    ProductCardApiConfig, API_URL_INVALID,
    get_product_card_api_config, save_product_card_api_config,
    pull_one_card_from_api,
)
from .fetcher import InvalidApiUrl, resolve_api_url
from .helpers import ct_equal
from .infra.sql import make_database
from .infra import pullstats
from .model.cards import CardStore
from .model.db import create_schema
from .model.settings import SettingsStore
from .update_check import UPSTREAM_REPO as DEFAULT_UPSTREAM_REPO
from .update_check import check_for_updates

# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./cardpull.db")
SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "supasecret")
APP_VERSION = os.environ.get("APP_VERSION", __version__)
UPSTREAM_REPO = os.environ.get("UPSTREAM_REPO", DEFAULT_UPSTREAM_REPO)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

DISMISSED_UPDATE_KEY = "dismissed_update_version"

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

database = make_database(DATABASE_URL)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with database.session() as session:
        yield session


# ---
# startup / shutdown
# ---
def _say_hello() -> None:
    print('\n' * 2)
    print('=' * 50)
    print(f'cardpull {APP_VERSION} is starting up...')
    print(f'   - Database: {database.engine.url.render_as_string()}')
    print(f'   - Update source: {UPSTREAM_REPO}')
    print('=' * 50)
    print('\n' * 2)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    _say_hello()
    await create_schema(database.engine)
    # shared client; the card pull overrides the timeout per request
    app.state.http = httpx.AsyncClient(
        timeout=10.0,
        limits=httpx.Limits(max_connections=64, max_keepalive_connections=16),
    )
    try:
        yield
    finally:
        await app.state.http.aclose()
        app.state.http = None
        await database.dispose()


app = FastAPI(
    title="cardpull",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET)


def get_http() -> httpx.AsyncClient:
    client = getattr(app.state, "http", None)
    if client is None:
        raise RuntimeError("HTTP client not initialized")
    return client


# ----------------------------
# Helpers
# ----------------------------
def is_admin(request: Request) -> bool:
    return bool(request.session.get("admin_user"))


def require_admin(request: Request) -> None:
    if not is_admin(request):
        # preserve where we wanted to go
        dest = request.url.path
        raise HTTPException(status_code=307, detail="redirect to login",
                            headers={"Location": f"/admin/login?next={dest}"})


def _config_from_payload(payload: dict) -> ProductCardApiConfig:
    url = str(payload.get("url") or "").strip()
    try:
        resolve_api_url(url)
    except InvalidApiUrl:
        raise HTTPException(400, detail=API_URL_INVALID)
    return ProductCardApiConfig(
        enabled=bool(payload.get("enabled")),
        url=url,
        token=str(payload.get("token") or ""),
    )


# ----------------------------
# Admin login
# ----------------------------
@app.get("/admin/login")
async def admin_login_get(request: Request, next: str | None = "/admin"):
    return {"login_required": not is_admin(request), "next": next}


@app.post("/admin/login")
async def admin_login_post(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    next: str = Form("/admin"),
):
    ok_user = ct_equal(username.strip(), ADMIN_USERNAME)
    ok_pass = ct_equal(password, ADMIN_PASSWORD)
    if ok_user and ok_pass:
        request.session["admin_user"] = username.strip()
        return RedirectResponse(
            url=(next or "/admin"),
            status_code=HTTP_303_SEE_OTHER
        )
    log.warning("admin login failed for %r", username.strip())
    return ORJSONResponse(
        {"detail": "Invalid credentials.", "next": next},
        status_code=401,
    )


@app.get("/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/admin/login", status_code=HTTP_303_SEE_OTHER)


@app.get("/admin")
async def admin_page(request: Request):
    if not is_admin(request):
        dest = request.url.path
        return RedirectResponse(
            url=f"/admin/login?next={dest}",
            status_code=307
        )
    return {
        "admin_user": request.session["admin_user"],
        "version": APP_VERSION,
    }


# ----------------------------
# API: per-product card API
# ----------------------------
@app.get("/api/admin/products/{product_id}/card-api",
         dependencies=[Depends(require_admin)])
async def api_get_card_api_config(
    product_id: str, db: AsyncSession = Depends(get_db)
):
    settings = SettingsStore(db=db, gated=database.gated)
    config = await get_product_card_api_config(settings, product_id)
    return {"product_id": product_id, **config.to_dict()}


@app.put("/api/admin/products/{product_id}/card-api",
         dependencies=[Depends(require_admin)])
async def api_save_card_api_config(
    product_id: str, payload: dict, db: AsyncSession = Depends(get_db)
):
    config = _config_from_payload(payload)
    settings = SettingsStore(db=db, gated=database.gated)
    saved = await save_product_card_api_config(settings, product_id, config)
    log.info("card api config saved for %s (enabled=%s)",
             product_id, saved.enabled)
    return {"product_id": product_id, **saved.to_dict()}


@app.post("/api/admin/products/{product_id}/card-api/pull",
          dependencies=[Depends(require_admin)])
async def api_pull_card(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http),
):
    outcome = await pull_one_card_from_api(
        db, http, product_id, gated=database.gated
    )
    return outcome.to_dict()


@app.get("/api/admin/products/{product_id}/cards",
         dependencies=[Depends(require_admin)])
async def api_list_cards(
    product_id: str, limit: int = 100, db: AsyncSession = Depends(get_db)
):
    limit = max(1, min(limit, 500))
    cards = CardStore(db=db, gated=database.gated)
    items = await cards.list_cards(product_id, limit=limit)
    return {"items": items, "limit": limit}


# ----------------------------
# API: update notice
# ----------------------------
@app.get("/api/admin/update-check", dependencies=[Depends(require_admin)])
async def api_update_check(
    request: Request, http: httpx.AsyncClient = Depends(get_http)
):
    result = await check_for_updates(http, APP_VERSION, repo=UPSTREAM_REPO)
    dismissed: Optional[str] = request.session.get(DISMISSED_UPDATE_KEY)
    return {**result.to_dict(), "show": result.should_show(dismissed)}


@app.post("/api/admin/update-check/dismiss",
          dependencies=[Depends(require_admin)])
async def api_update_dismiss(request: Request, payload: dict):
    version = str(payload.get("version") or "").strip()
    if not version:
        raise HTTPException(400, detail="version is required")
    request.session[DISMISSED_UPDATE_KEY] = version
    return {"ok": True, "dismissed": version}


@app.get("/api/admin/pull-stats", dependencies=[Depends(require_admin)])
async def api_pull_stats():
    return pullstats.snapshot()
