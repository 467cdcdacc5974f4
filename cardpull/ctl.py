#!/usr/bin/env python3
"""
cardpull operator CLI

  cardpull-ctl pull <product_id>
  cardpull-ctl config get <product_id>
  cardpull-ctl config set <product_id> [--enabled|--disabled] [--url U]
                                       [--token T]

`pull` exits 0 on success or when the product's API is disabled, 1 on any
other outcome, so a cron job can simply rerun it.
"""
from __future__ import annotations
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

import httpx

from .cardapi import (
    get_product_card_api_config, save_product_card_api_config,
    pull_one_card_from_api,
)
from .fetcher import InvalidApiUrl, resolve_api_url
from .infra.sql import Database, make_database
from .model.db import create_schema
from .model.settings import SettingsStore


async def _pull(database: Database, product_id: str) -> int:
    async with httpx.AsyncClient() as http:
        async with database.session() as db:
            outcome = await pull_one_card_from_api(
                db, http, product_id, gated=database.gated
            )
    print(json.dumps(outcome.to_dict()))
    return 0 if (outcome.ok or outcome.skipped) else 1


async def _config_get(database: Database, product_id: str) -> int:
    async with database.session() as db:
        settings = SettingsStore(db=db, gated=database.gated)
        config = await get_product_card_api_config(settings, product_id)
    print(json.dumps({"product_id": product_id, **config.to_dict()}))
    return 0


async def _config_set(database: Database, args: argparse.Namespace) -> int:
    async with database.session() as db:
        settings = SettingsStore(db=db, gated=database.gated)
        config = await get_product_card_api_config(settings, args.product_id)
        if args.enabled is not None:
            config.enabled = args.enabled
        if args.url is not None:
            try:
                resolve_api_url(args.url)
            except InvalidApiUrl as e:
                print(f"invalid url: {e}", file=sys.stderr)
                return 2
            config.url = args.url
        if args.token is not None:
            config.token = args.token
        saved = await save_product_card_api_config(
            settings, args.product_id, config
        )
    print(json.dumps({"product_id": args.product_id, **saved.to_dict()}))
    return 0


async def _run(args: argparse.Namespace) -> int:
    database = make_database(args.database_url)
    try:
        await create_schema(database.engine)
        if args.cmd == "pull":
            return await _pull(database, args.product_id)
        if args.config_cmd == "get":
            return await _config_get(database, args.product_id)
        return await _config_set(database, args)
    finally:
        await database.dispose()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cardpull-ctl")
    p.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", "sqlite:///./cardpull.db"),
    )
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    pull = sub.add_parser("pull", help="pull one card from the product's API")
    pull.add_argument("product_id")

    cfg = sub.add_parser("config", help="read or change a product's config")
    cfg_sub = cfg.add_subparsers(dest="config_cmd", required=True)
    get = cfg_sub.add_parser("get")
    get.add_argument("product_id")
    st = cfg_sub.add_parser("set")
    st.add_argument("product_id")
    toggle = st.add_mutually_exclusive_group()
    toggle.add_argument("--enabled", dest="enabled", action="store_const",
                        const=True, default=None)
    toggle.add_argument("--disabled", dest="enabled", action="store_const",
                        const=False)
    st.add_argument("--url")
    st.add_argument("--token")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
