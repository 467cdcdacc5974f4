import httpx
import pytest

from cardpull.fetcher import (
    ACCEPT, InvalidApiUrl, build_headers, fetch_card_payload, resolve_api_url,
)


class TestResolveApiUrl:

    def test_blank(self):
        assert resolve_api_url("   ") == ""

    def test_trims_and_normalizes(self):
        assert resolve_api_url("  https://cards.example.com/next?sku=1 ") == \
            "https://cards.example.com/next?sku=1"

    @pytest.mark.parametrize("raw", [
        "not a url", "/relative/path", "ftp://example.com/x", "https://",
        "example.com/cards",
    ])
    def test_rejects(self, raw):
        with pytest.raises(InvalidApiUrl):
            resolve_api_url(raw)


def test_headers_with_and_without_token():
    h = build_headers()
    assert h["Accept"] == ACCEPT
    assert h["Cache-Control"] == "no-cache"
    assert "Authorization" not in h
    assert build_headers("t0k")["Authorization"] == "Bearer t0k"


@pytest.mark.asyncio
async def test_json_body_decoded(upstream):
    u = upstream(lambda req: httpx.Response(200, json={"code": "A1"}))
    res = await fetch_card_payload(u.client, "https://x/y", "secret")
    assert res.ok
    assert res.status == 200
    assert "application/json" in res.content_type
    assert res.body == {"code": "A1"}
    sent = u.requests[0]
    assert sent.method == "GET"
    assert sent.headers["authorization"] == "Bearer secret"
    assert sent.headers["accept"] == ACCEPT


@pytest.mark.asyncio
async def test_text_body_kept_raw(upstream):
    u = upstream(lambda req: httpx.Response(
        200, text="  CODE-9  ", headers={"content-type": "text/plain"}
    ))
    res = await fetch_card_payload(u.client, "https://x/y")
    assert res.body == "  CODE-9  "
    assert "authorization" not in u.requests[0].headers


@pytest.mark.asyncio
async def test_non_2xx_not_decoded(upstream):
    u = upstream(lambda req: httpx.Response(
        503, text="{broken", headers={"content-type": "application/json"}
    ))
    res = await fetch_card_payload(u.client, "https://x/y")
    assert not res.ok
    assert res.status == 503
    assert res.body is None


@pytest.mark.asyncio
async def test_bad_json_raises_value_error(upstream):
    u = upstream(lambda req: httpx.Response(
        200, content=b"{nope", headers={"content-type": "application/json"}
    ))
    with pytest.raises(ValueError):
        await fetch_card_payload(u.client, "https://x/y")
