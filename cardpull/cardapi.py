"""
Per-product card API: config resolution and the single-card pull.

A pull is one linear attempt:
  config -> fetch upstream -> extract card code -> insert -> outcome
Every failure becomes an error code on the returned PullOutcome; nothing in
here raises out to the caller and nothing retries.
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .extract import extract_card_key
from .fetcher import InvalidApiUrl, fetch_card_payload, resolve_api_url
from .infra.sql import Gated
from .infra import pullstats
from .model.cards import CardStore, CardStoreError, DuplicateCardError
from .model.settings import SettingsStore

log = logging.getLogger(__name__)

Field = Literal["enabled", "url", "token"]

# error codes
API_DISABLED = "api_disabled"
API_URL_MISSING = "api_url_missing"
API_URL_INVALID = "api_url_invalid"
API_CARD_MISSING = "api_card_missing"
API_CARD_DUPLICATE = "api_card_duplicate"
API_REQUEST_FAILED = "api_request_failed"
API_INSERT_FAILED = "api_insert_failed"
API_CONFIG_FAILED = "api_config_failed"


def key_of(product_id: str, field: Field) -> str:
    return f"cards_api_{field}_{product_id}"


@dataclass
class ProductCardApiConfig:
    enabled: bool = False
    url: str = ""
    token: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "url": self.url, "token": self.token}


@dataclass
class PullOutcome:
    ok: bool
    card_key: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None

    @classmethod
    def success(cls, card_key: str) -> "PullOutcome":
        return cls(ok=True, card_key=card_key)

    @classmethod
    def failure(cls, error: str, *, skipped: bool = False) -> "PullOutcome":
        return cls(ok=False, error=error, skipped=skipped)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok}
        if self.card_key is not None:
            out["cardKey"] = self.card_key
        if self.skipped:
            out["skipped"] = True
        if self.error is not None:
            out["error"] = self.error
        return out


# ----------------------------
# Config
# ----------------------------
async def get_product_card_api_config(
    settings: SettingsStore, product_id: str
) -> ProductCardApiConfig:
    enabled_key = key_of(product_id, "enabled")
    url_key = key_of(product_id, "url")
    token_key = key_of(product_id, "token")
    values = await settings.get_many([enabled_key, url_key, token_key])
    return ProductCardApiConfig(
        enabled=values.get(enabled_key) == "true",
        url=(values.get(url_key) or "").strip(),
        token=(values.get(token_key) or "").strip(),
    )


async def save_product_card_api_config(
    settings: SettingsStore, product_id: str, config: ProductCardApiConfig
) -> ProductCardApiConfig:
    saved = ProductCardApiConfig(
        enabled=bool(config.enabled),
        url=(config.url or "").strip(),
        token=(config.token or "").strip(),
    )
    await settings.set_many({
        key_of(product_id, "enabled"): "true" if saved.enabled else "false",
        key_of(product_id, "url"): saved.url,
        key_of(product_id, "token"): saved.token,
    })
    return saved


# ----------------------------
# Pull
# ----------------------------
async def pull_one_card_from_api(
    db: AsyncSession,
    http: httpx.AsyncClient,
    product_id: str,
    *,
    gated: Gated,
) -> PullOutcome:
    t0 = time.perf_counter()
    outcome = await _pull_one(db, http, product_id, gated)
    pullstats.record_pull(
        product_id, outcome.ok, outcome.error, time.perf_counter() - t0
    )
    return outcome


async def _pull_one(
    db: AsyncSession, http: httpx.AsyncClient, product_id: str, gated: Gated
) -> PullOutcome:
    settings = SettingsStore(db=db, gated=gated)
    try:
        config = await get_product_card_api_config(settings, product_id)
    except SQLAlchemyError as e:
        return _failed(
            product_id, str(getattr(e, "orig", None) or e) or API_CONFIG_FAILED
        )
    if not config.enabled:
        log.info("card pull skipped for %s: api disabled", product_id)
        return PullOutcome.failure(API_DISABLED, skipped=True)
    if not config.url:
        return _failed(product_id, API_URL_MISSING)

    try:
        request_url = resolve_api_url(config.url)
    except InvalidApiUrl:
        return _failed(product_id, API_URL_INVALID)

    try:
        fetched = await fetch_card_payload(http, request_url, config.token)
    except (httpx.HTTPError, ValueError) as e:
        # transport error or undecodable json body
        return _failed(product_id, str(e) or API_REQUEST_FAILED)

    if not fetched.ok:
        return _failed(product_id, f"{API_REQUEST_FAILED}_{fetched.status}")

    card_key = extract_card_key(fetched.body)
    if not card_key:
        return _failed(product_id, API_CARD_MISSING)

    cards = CardStore(db=db, gated=gated)
    try:
        await cards.insert(product_id, card_key)
    except DuplicateCardError:
        # overlapping pulls or upstream handing out the same code again
        log.info("card pull for %s: card already stored", product_id)
        return PullOutcome.failure(API_CARD_DUPLICATE)
    except CardStoreError as e:
        return _failed(product_id, str(e) or API_INSERT_FAILED)

    log.info("card pulled for %s", product_id)
    return PullOutcome.success(card_key)


def _failed(product_id: str, error: str) -> PullOutcome:
    log.warning("card pull failed for %s: %s", product_id, error)
    return PullOutcome.failure(error)
