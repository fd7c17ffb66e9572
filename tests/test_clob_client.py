import asyncio
import base64
import json
from decimal import Decimal

import httpx
import pytest

from joly_trader.auth import build_hmac_signature
from joly_trader.errors import ClobApiError, ClobProtocolError, NetworkError
from joly_trader.exchange.clob import ClobClient
from joly_trader.types import ApiCredentials, SignedOrder

SECRET = base64.urlsafe_b64encode(b"0123456789abcdef").decode()
CREDS = ApiCredentials(key="api-key", secret=SECRET, passphrase="pass")
ADDRESS = "0x1111111111111111111111111111111111111111"


def _order() -> SignedOrder:
    return SignedOrder(
        salt=7,
        maker=ADDRESS,
        signer=ADDRESS,
        taker="0x0000000000000000000000000000000000000000",
        token_id="123",
        maker_amount=65_000_000,
        taker_amount=100_000_000,
        expiration=1_700_086_400,
        nonce=9,
        fee_rate_bps=0,
        side="BUY",
        signature_type=0,
        signature="0xdead",
    )


def test_derive_api_key_sends_signed_nonce_as_query() -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["nonce_query"] = request.url.params.get("nonce", "")
        captured["nonce_header"] = request.headers.get("POLY_NONCE", "")
        return httpx.Response(200, json={"apiKey": "k", "secret": "s", "passphrase": "p"})

    client = ClobClient(transport=httpx.MockTransport(handler))
    l1 = {
        "POLY_ADDRESS": ADDRESS,
        "POLY_SIGNATURE": "0xsig",
        "POLY_TIMESTAMP": "1700000000",
        "POLY_NONCE": "0",
    }
    try:
        data = asyncio.run(client.derive_api_key(l1))
    finally:
        asyncio.run(client.aclose())

    assert data["apiKey"] == "k"
    assert captured["path"] == "/auth/derive-api-key"
    assert captured["nonce_query"] == captured["nonce_header"] == "0"


def test_post_order_signs_upstream_path_behind_proxy_prefix() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = request.content.decode()
        captured["headers"] = dict(request.headers)
        return httpx.Response(200, json={"success": True, "orderID": "0xabc", "status": "live"})

    client = ClobClient(
        base_url="http://localhost:3001/clob",
        transport=httpx.MockTransport(handler),
    )
    try:
        data = asyncio.run(client.post_order(CREDS, address=ADDRESS, order=_order()))
    finally:
        asyncio.run(client.aclose())

    headers = captured["headers"]
    assert isinstance(headers, dict)
    assert data["orderID"] == "0xabc"
    assert captured["path"] == "/clob/order"
    expected = build_hmac_signature(
        SECRET, headers["poly_timestamp"], "POST", "/order", str(captured["body"])
    )
    assert headers["poly_signature"] == expected
    assert headers["poly_api_key"] == "api-key"

    body = json.loads(str(captured["body"]))
    assert body["owner"] == "api-key"
    assert body["orderType"] == "GTC"
    assert body["order"]["makerAmount"] == "65000000"
    assert body["order"]["side"] == "BUY"
    assert body["order"]["signature"] == "0xdead"


def test_post_order_error_preserves_upstream_body() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, text='{"error":"bad price"}')

    client = ClobClient(max_retries=3, retry_base_seconds=0, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(ClobApiError) as exc_info:
            asyncio.run(client.post_order(CREDS, address=ADDRESS, order=_order()))
    finally:
        asyncio.run(client.aclose())

    assert exc_info.value.status_code == 400
    assert exc_info.value.text == '{"error":"bad price"}'
    assert '{"error":"bad price"}' in str(exc_info.value)
    assert calls["n"] == 1


def test_post_order_is_not_retried_on_5xx() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, json={"error": "unavailable"})

    client = ClobClient(max_retries=3, retry_base_seconds=0, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(ClobApiError):
            asyncio.run(client.post_order(CREDS, address=ADDRESS, order=_order()))
    finally:
        asyncio.run(client.aclose())

    assert calls["n"] == 1


def test_order_book_retries_on_5xx_then_succeeds() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(500, json={"error": "internal"})
        assert request.url.params.get("token_id") == "123"
        return httpx.Response(
            200,
            json={
                "bids": [{"price": "0.64", "size": "10"}, {"price": "0.63", "size": "5"}],
                "asks": [{"price": "0.66", "size": "7"}],
            },
        )

    client = ClobClient(max_retries=1, retry_base_seconds=0, transport=httpx.MockTransport(handler))
    try:
        book = asyncio.run(client.get_order_book("123"))
    finally:
        asyncio.run(client.aclose())

    assert calls["n"] == 2
    assert book.best_bid() == Decimal("0.64")
    assert book.best_ask() == Decimal("0.66")


def test_timeout_after_retries_raises_network_error() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ReadTimeout("timeout", request=request)

    client = ClobClient(max_retries=1, retry_base_seconds=0, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(NetworkError):
            asyncio.run(client.get_trades(CREDS, address=ADDRESS))
    finally:
        asyncio.run(client.aclose())

    assert calls["n"] == 2


def test_price_history_parses_points() -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(dict(request.url.params))
        return httpx.Response(200, json={"history": [{"t": 1, "p": 0.5}, {"t": 2, "p": 0.55}]})

    client = ClobClient(transport=httpx.MockTransport(handler))
    try:
        points = asyncio.run(client.get_price_history("123", interval="1w", fidelity=5))
    finally:
        asyncio.run(client.aclose())

    assert captured == {"market": "123", "interval": "1w", "fidelity": "5"}
    assert [p.t for p in points] == [1, 2]
    assert points[1].p == Decimal("0.55")


def test_cancel_order_uses_order_id_path() -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["signature"] = request.headers["POLY_SIGNATURE"]
        captured["ts"] = request.headers["POLY_TIMESTAMP"]
        return httpx.Response(200, json={"canceled": ["0xabc"]})

    client = ClobClient(transport=httpx.MockTransport(handler))
    try:
        asyncio.run(client.cancel_order(CREDS, address=ADDRESS, order_id="0xabc"))
    finally:
        asyncio.run(client.aclose())

    assert captured["method"] == "DELETE"
    assert captured["path"] == "/order/0xabc"
    assert captured["signature"] == build_hmac_signature(
        SECRET, captured["ts"], "DELETE", "/order/0xabc"
    )


def test_non_json_success_body_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>blocked</html>")

    client = ClobClient(transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(ClobProtocolError):
            asyncio.run(client.get_open_orders(CREDS, address=ADDRESS))
    finally:
        asyncio.run(client.aclose())
