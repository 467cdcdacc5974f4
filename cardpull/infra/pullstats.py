"""In-process pull statistics for the admin view.

Every pull is bucketed by its outcome kind: "ok", one of the fixed error
codes, "api_request_failed_<status>", or "unclassified" for pass-through
messages. Alongside the buckets, the last outcome per product is kept.
Nothing is persisted; a restart starts from zero.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..helpers import now_ts, to_iso

KNOWN_ERRORS = frozenset({
    "api_disabled", "api_url_missing", "api_url_invalid",
    "api_card_missing", "api_card_duplicate",
    "api_request_failed", "api_insert_failed", "api_config_failed",
})
_HTTP_FAILURE = re.compile(r"^api_request_failed_\d{3}$")


@dataclass
class _Bucket:
    n: int = 0
    total: float = 0.0
    slowest: float = 0.0

    def add(self, seconds: float) -> None:
        self.n += 1
        self.total += seconds
        self.slowest = max(self.slowest, seconds)


# single event loop, no locks
_BY_KIND: Dict[str, _Bucket] = {}
_LAST: Dict[str, Dict[str, Any]] = {}


def outcome_kind(ok: bool, error: Optional[str]) -> str:
    if ok:
        return "ok"
    if error in KNOWN_ERRORS or _HTTP_FAILURE.match(error or ""):
        return error
    return "unclassified"


def record_pull(
    product_id: str, ok: bool, error: Optional[str], seconds: float
) -> str:
    kind = outcome_kind(ok, error)
    _BY_KIND.setdefault(kind, _Bucket()).add(seconds)
    _LAST[product_id] = {"kind": kind, "error": error, "at": now_ts()}
    return kind


def snapshot() -> Dict[str, Any]:
    outcomes = {
        kind: {
            "n": b.n,
            "mean_ms": round(b.total / b.n * 1000, 3),
            "max_ms": round(b.slowest * 1000, 3),
        }
        for kind, b in _BY_KIND.items()
    }
    products = {
        pid: {"last": last["kind"], "error": last["error"],
              "at": to_iso(last["at"])}
        for pid, last in _LAST.items()
    }
    return {"outcomes": outcomes, "products": products}


def reset() -> None:
    _BY_KIND.clear()
    _LAST.clear()
