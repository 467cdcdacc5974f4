"""Find a card code in whatever an upstream card API returned.

Providers disagree on response shape: some return the bare code as text,
some ``{"code": ...}``, some wrap it in ``data``/``result``/``item``, some
return a list. The search is depth-first and the first hit wins. Direct keys
are checked before nested containers, and lists are scanned left to right.
"""
from __future__ import annotations
from collections.abc import Mapping
from typing import Any

DIRECT_KEYS = ("cardKey", "card", "key", "code")
NESTED_KEYS = ("data", "result", "item")


def extract_card_key(payload: Any) -> str:
    """Return the first plausible card code in ``payload`` or ``""``."""
    if isinstance(payload, str):
        return payload.strip()

    if isinstance(payload, (list, tuple)):
        for item in payload:
            value = extract_card_key(item)
            if value:
                return value
        return ""

    if isinstance(payload, Mapping):
        for k in DIRECT_KEYS:
            v = payload.get(k)
            if isinstance(v, str) and v.strip():
                return v.strip()
        for k in NESTED_KEYS:
            value = extract_card_key(payload.get(k))
            if value:
                return value
        return ""

    # numbers, bools, None
    return ""
