import json

import httpx
from fastapi.testclient import TestClient

from joly_trader.proxy import create_app


def test_health_endpoint() -> None:
    app = create_app(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    with TestClient(app) as client:
        resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "joly-trader-proxy"}


def test_forwards_path_query_auth_headers_and_body() -> None:
    seen: list[httpx.Request] = []

    def upstream(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"orderID": "0xabc"})

    app = create_app(
        upstream_url="https://clob.example",
        transport=httpx.MockTransport(upstream),
    )
    body = json.dumps({"order": {"salt": 1}}, separators=(",", ":"))
    with TestClient(app) as client:
        resp = client.post(
            "/clob/order?foo=1&foo=2",
            content=body,
            headers={"poly_api_key": "k", "POLY_SIGNATURE": "sig", "X-Other": "drop"},
        )

    assert resp.status_code == 201
    assert resp.json() == {"orderID": "0xabc"}
    request = seen[0]
    assert request.method == "POST"
    assert request.url.host == "clob.example"
    assert request.url.path == "/order"
    assert request.url.params.get_list("foo") == ["1", "2"]
    assert request.headers["POLY_API_KEY"] == "k"
    assert request.headers["POLY_SIGNATURE"] == "sig"
    assert "x-other" not in request.headers
    assert request.content.decode() == body


def test_passes_upstream_errors_through() -> None:
    app = create_app(
        transport=httpx.MockTransport(lambda r: httpx.Response(400, json={"error": "bad price"}))
    )
    with TestClient(app) as client:
        resp = client.delete("/clob/order/0xabc")
    assert resp.status_code == 400
    assert resp.json() == {"error": "bad price"}


def test_unreachable_upstream_returns_502() -> None:
    def upstream(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    app = create_app(transport=httpx.MockTransport(upstream))
    with TestClient(app) as client:
        resp = client.get("/clob/book", params={"token_id": "123"})

    assert resp.status_code == 502
    data = resp.json()
    assert data["error"] == "proxy failed"
    assert "ConnectError" in data["details"]
