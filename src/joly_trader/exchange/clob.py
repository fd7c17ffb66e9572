from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, cast

import httpx

from joly_trader.auth import POLY_NONCE, build_l2_headers
from joly_trader.errors import ClobApiError, ClobProtocolError, NetworkError
from joly_trader.types import ApiCredentials, SignedOrder

logger = logging.getLogger("joly_trader.clob")

_DEFAULT_MAX_RETRIES = 2
_DEFAULT_RETRY_BASE_SECONDS = 0.5
_DEFAULT_RETRY_MAX_SECONDS = 8.0


@dataclass(frozen=True)
class PricePoint:
    t: int
    p: Decimal


@dataclass(frozen=True)
class BookLevel:
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderBook:
    token_id: str
    bids: list[BookLevel]
    asks: list[BookLevel]

    def best_bid(self) -> Decimal | None:
        return max((b.price for b in self.bids), default=None)

    def best_ask(self) -> Decimal | None:
        return min((a.price for a in self.asks), default=None)


def _levels(raw: Any) -> list[BookLevel]:
    if not isinstance(raw, list):
        return []
    levels: list[BookLevel] = []
    for row in raw:
        if not isinstance(row, dict):
            continue
        levels.append(
            BookLevel(price=Decimal(str(row.get("price", "0"))), size=Decimal(str(row.get("size", "0"))))
        )
    return levels


def encode_body(payload: dict[str, Any]) -> str:
    # The L2 signature covers these exact bytes, so serialize once and send as-is.
    return json.dumps(payload, separators=(",", ":"))


class ClobClient:
    """Async client for the Polymarket CLOB REST API.

    ``base_url`` may be the upstream host or a proxy prefix such as
    ``http://localhost:3001/clob``; L2 signatures always cover the upstream
    request path (``/order``), never the prefix.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://clob.polymarket.com",
        timeout_seconds: float = 10.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = _DEFAULT_RETRY_BASE_SECONDS,
        retry_max_seconds: float = _DEFAULT_RETRY_MAX_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = int(max(0, max_retries))
        self._retry_base_seconds = float(max(0.0, retry_base_seconds))
        self._retry_max_seconds = float(max(self._retry_base_seconds, retry_max_seconds))
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def health(self) -> Any:
        return await self._request("GET", "/", retry=True, context="health")

    # L1 (wallet-signed) endpoints

    async def derive_api_key(self, l1_headers: dict[str, str]) -> Any:
        # The query nonce must be byte-identical to the signed POLY_NONCE.
        return await self._request(
            "GET",
            "/auth/derive-api-key",
            params={"nonce": l1_headers[POLY_NONCE]},
            headers=l1_headers,
            quiet_statuses=(404,),
            context="derive api key",
        )

    async def create_api_key(self, l1_headers: dict[str, str]) -> Any:
        return await self._request(
            "POST",
            "/auth/api-key",
            headers=l1_headers,
            context="create api key",
        )

    # Public market data

    async def get_order_book(self, token_id: str) -> OrderBook:
        raw = await self._request(
            "GET",
            "/book",
            params={"token_id": token_id},
            retry=True,
            context="order book",
        )
        if not isinstance(raw, dict):
            raise ClobProtocolError(f"order book: expected an object, got {type(raw).__name__}")
        return OrderBook(token_id=token_id, bids=_levels(raw.get("bids")), asks=_levels(raw.get("asks")))

    async def get_price_history(
        self,
        token_id: str,
        *,
        interval: str = "1d",
        fidelity: int = 60,
    ) -> list[PricePoint]:
        raw = await self._request(
            "GET",
            "/prices-history",
            params={"market": token_id, "interval": interval, "fidelity": fidelity},
            retry=True,
            context="price history",
        )
        history = raw.get("history", []) if isinstance(raw, dict) else []
        points: list[PricePoint] = []
        for row in history:
            if not isinstance(row, dict):
                continue
            points.append(PricePoint(t=int(row.get("t", 0)), p=Decimal(str(row.get("p", "0")))))
        return points

    # L2 (HMAC) endpoints

    async def post_order(
        self,
        credentials: ApiCredentials,
        *,
        address: str,
        order: SignedOrder,
        order_type: str = "GTC",
    ) -> dict[str, Any]:
        body = encode_body(
            {"order": order.to_payload(), "owner": credentials.key, "orderType": order_type}
        )
        data = await self._request(
            "POST",
            "/order",
            headers=build_l2_headers(
                credentials, address=address, method="POST", path="/order", body=body
            ),
            content=body,
            context="post order",
        )
        if not isinstance(data, dict):
            raise ClobProtocolError(f"post order: expected an object, got {type(data).__name__}")
        return data

    async def cancel_order(
        self,
        credentials: ApiCredentials,
        *,
        address: str,
        order_id: str,
    ) -> Any:
        path = f"/order/{order_id}"
        return await self._request(
            "DELETE",
            path,
            headers=build_l2_headers(credentials, address=address, method="DELETE", path=path),
            context="cancel order",
        )

    async def get_open_orders(self, credentials: ApiCredentials, *, address: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/orders",
            headers=build_l2_headers(credentials, address=address, method="GET", path="/orders"),
            retry=True,
            context="open orders",
        )
        return cast(list[dict[str, Any]], data if isinstance(data, list) else [])

    async def get_trades(self, credentials: ApiCredentials, *, address: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/trades",
            headers=build_l2_headers(credentials, address=address, method="GET", path="/trades"),
            retry=True,
            context="trades",
        )
        return cast(list[dict[str, Any]], data if isinstance(data, list) else [])

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        content: str | None = None,
        retry: bool = False,
        quiet_statuses: tuple[int, ...] = (),
        context: str = "",
    ) -> Any:
        max_retries = self._max_retries if retry else 0
        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method,
                    path,
                    params=params,
                    headers=headers,
                    content=content,
                )
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt >= max_retries:
                    raise NetworkError(
                        f"{context or path}: {method} {path} failed: {type(e).__name__}: {e}",
                        method=method,
                        path=path,
                    ) from e
                await asyncio.sleep(self._retry_delay_seconds(attempt=attempt, response=None))
                attempt += 1
                continue

            if response.status_code >= 400:
                if _should_retry_http_error(status_code=response.status_code) and attempt < max_retries:
                    await asyncio.sleep(self._retry_delay_seconds(attempt=attempt, response=response))
                    attempt += 1
                    continue

                payload: Any
                try:
                    payload = response.json()
                except ValueError:
                    payload = response.text
                # Statuses the caller treats as a normal outcome stay at DEBUG.
                level = logging.DEBUG if response.status_code in quiet_statuses else logging.WARNING
                logger.log(
                    level,
                    "clob_http_error",
                    extra={"method": method, "path": path, "status_code": response.status_code},
                )
                raise ClobApiError(
                    status_code=response.status_code,
                    payload=payload,
                    text=response.text,
                    context=context,
                )

            try:
                return response.json()
            except ValueError as e:
                raise ClobProtocolError(
                    f"{context or path}: invalid JSON from CLOB: {response.text[:200]!r}"
                ) from e

    def _retry_delay_seconds(
        self,
        *,
        attempt: int,
        response: httpx.Response | None,
    ) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    value = float(retry_after)
                    if value > 0:
                        return value
                except ValueError:
                    pass
        delay = self._retry_base_seconds * (2**attempt)
        return float(min(delay, self._retry_max_seconds))


def _should_retry_http_error(*, status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
