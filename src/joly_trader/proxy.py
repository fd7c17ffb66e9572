from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

logger = logging.getLogger("joly_trader.proxy")

_USER_AGENT = "joly-trader-proxy/1.0"


def _forwarded_headers(request: Request) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "User-Agent": _USER_AGENT}
    for key, value in request.headers.items():
        if key.lower().startswith("poly_"):
            headers[key.upper()] = value
    return headers


def create_app(
    *,
    upstream_url: str = "https://clob.polymarket.com",
    timeout_seconds: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Same-origin passthrough to the CLOB host, mounted under ``/clob``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.upstream = httpx.AsyncClient(
            base_url=upstream_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )
        logger.info("proxy_started")
        try:
            yield
        finally:
            await app.state.upstream.aclose()
            logger.info("proxy_stopped")

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "joly-trader-proxy"}

    @app.api_route("/clob/{path:path}", methods=["GET", "POST", "DELETE"])
    async def forward(path: str, request: Request) -> Response:
        upstream: httpx.AsyncClient = request.app.state.upstream
        body = await request.body()
        target = "/" + path
        try:
            resp = await upstream.request(
                request.method,
                target,
                params=list(request.query_params.multi_items()),
                headers=_forwarded_headers(request),
                content=body or None,
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning("proxy_upstream_failed", extra={"method": request.method, "path": target})
            return JSONResponse(
                status_code=502,
                content={"error": "proxy failed", "details": f"{type(e).__name__}: {e}"},
            )

        logger.info(
            "proxied",
            extra={"method": request.method, "path": target, "status_code": resp.status_code},
        )
        return Response(
            content=resp.content,
            status_code=resp.status_code,
            media_type=resp.headers.get("content-type", "application/json"),
        )

    return app
