from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import typer
from web3 import AsyncHTTPProvider, AsyncWeb3

from joly_trader.chain.allowance import AllowanceManager
from joly_trader.chain.wallet import LocalWallet
from joly_trader.credentials import CredentialDeriver
from joly_trader.engine.trader import TradeOrchestrator
from joly_trader.errors import TradeError, describe_error
from joly_trader.exchange import ClobClient
from joly_trader.logging_utils import configure_logging
from joly_trader.orders import OrderBuilder, compute_amounts
from joly_trader.settings import Settings
from joly_trader.submitter import OrderSubmitter
from joly_trader.types import ApiCredentials, TradeParams, TradeState

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("joly_trader")


@dataclass
class _Stack:
    client: ClobClient
    wallet: LocalWallet
    deriver: CredentialDeriver
    builder: OrderBuilder
    orchestrator: TradeOrchestrator


def _client(settings: Settings) -> ClobClient:
    return ClobClient(
        base_url=settings.clob_base_url,
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )


def _build_stack(settings: Settings, *, listener: Any = None) -> _Stack:
    if not settings.private_key:
        raise typer.BadParameter("PRIVATE_KEY is not set")
    client = _client(settings)
    w3 = AsyncWeb3(AsyncHTTPProvider(settings.polygon_rpc_url))
    wallet = LocalWallet(private_key=settings.private_key, w3=w3)
    deriver = CredentialDeriver(client=client, chain_id=settings.chain_id)
    builder = OrderBuilder(
        chain_id=settings.chain_id,
        exchange_address=settings.exchange_address,
        expiration_seconds=settings.order_expiration_seconds,
    )
    orchestrator = TradeOrchestrator(
        wallet=wallet,
        deriver=deriver,
        allowance=AllowanceManager(
            w3=w3,
            token_address=settings.collateral_token_address,
            spender_address=settings.exchange_address,
            receipt_timeout_seconds=settings.approval_timeout_seconds,
        ),
        builder=builder,
        submitter=OrderSubmitter(client=client),
        chain_id=settings.chain_id,
        listener=listener,
    )
    return _Stack(
        client=client,
        wallet=wallet,
        deriver=deriver,
        builder=builder,
        orchestrator=orchestrator,
    )


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _echo_state(state: TradeState) -> None:
    line = f"[{state.phase.value}] {state.status}".rstrip()
    if state.tx_hash:
        line += f" tx={state.tx_hash}"
    if state.error:
        line += f" error={state.error}"
    typer.echo(line)


@app.command()
def show_config() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    redacted = settings.model_dump()
    redacted["private_key"] = "***" if redacted["private_key"] else ""
    logger.info("loaded_config")
    typer.echo(redacted)


@app.command()
def health() -> None:
    """
    Ping the CLOB (through the proxy prefix if CLOB_BASE_URL points at one).
    """
    settings = Settings()
    configure_logging(settings.log_level)

    async def _run() -> None:
        client = _client(settings)
        try:
            data = await client.health()
            typer.echo({"ok": True, "response": data, "base_url": settings.clob_base_url})
        finally:
            await client.aclose()

    asyncio.run(_run())


@app.command()
def book(token_id: str = typer.Argument(..., help="Outcome token id.")) -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    async def _run() -> None:
        client = _client(settings)
        try:
            ob = await client.get_order_book(token_id)
        finally:
            await client.aclose()
        _echo_json(
            {
                "token_id": ob.token_id,
                "best_bid": ob.best_bid(),
                "best_ask": ob.best_ask(),
                "bids": [[lvl.price, lvl.size] for lvl in ob.bids],
                "asks": [[lvl.price, lvl.size] for lvl in ob.asks],
            }
        )

    asyncio.run(_run())


@app.command()
def price_history(
    token_id: str = typer.Argument(..., help="Outcome token id."),
    interval: str = typer.Option("1d", help="1m, 1h, 6h, 1d, 1w or max."),
    fidelity: int = typer.Option(60, help="Resolution in minutes."),
) -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    async def _run() -> None:
        client = _client(settings)
        try:
            points = await client.get_price_history(token_id, interval=interval, fidelity=fidelity)
        finally:
            await client.aclose()
        _echo_json([{"t": p.t, "p": p.p} for p in points])

    asyncio.run(_run())


@app.command()
def trade(
    token_id: str = typer.Option(..., help="Outcome token id."),
    price: str = typer.Option(..., help="Limit price in (0, 1)."),
    size: str = typer.Option(..., help="Number of outcome shares."),
    side: str = typer.Option("BUY", help="BUY or SELL."),
) -> None:
    """
    Place a limit order. Without TRADING_MODE=live and CONFIRM_LIVE_TRADING=YES
    the order is only built and signed, then printed.
    """
    settings = Settings()
    configure_logging(settings.log_level)

    try:
        params = TradeParams(
            token_id=token_id,
            price=Decimal(price),
            side=side.strip().upper(),  # type: ignore[arg-type]
            size=Decimal(size),
        )
        compute_amounts(side=params.side, price=params.price, size=params.size)
    except (ValueError, ArithmeticError) as e:
        raise typer.BadParameter(str(e)) from e

    stack = _build_stack(settings, listener=_echo_state)

    async def _run() -> bool:
        try:
            if not settings.live_trading_enabled():
                order = await stack.builder.build_and_sign(stack.wallet, params)
                typer.echo("[DRY_RUN] signed order (not submitted):")
                _echo_json(order.to_payload())
                return True
            ok = await stack.orchestrator.execute_trade(params)
            state = stack.orchestrator.state
            _echo_json(
                {
                    "ok": ok,
                    "order_id": state.order_id,
                    "tx_hash": state.tx_hash,
                    "error": state.error,
                }
            )
            return ok
        finally:
            await stack.client.aclose()

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)


async def _with_credentials(settings: Settings) -> tuple[_Stack, ApiCredentials, str]:
    stack = _build_stack(settings)
    address = await stack.wallet.get_address()
    try:
        creds = await stack.deriver.derive_or_create(stack.wallet)
    except Exception:
        await stack.client.aclose()
        raise
    return stack, creds, address


def _run_authenticated(settings: Settings, action: str, order_id: str = "") -> None:
    async def _run() -> Any:
        stack, creds, address = await _with_credentials(settings)
        try:
            if action == "orders":
                return await stack.client.get_open_orders(creds, address=address)
            if action == "trades":
                return await stack.client.get_trades(creds, address=address)
            return await stack.client.cancel_order(creds, address=address, order_id=order_id)
        finally:
            await stack.client.aclose()

    try:
        _echo_json(asyncio.run(_run()))
    except TradeError as e:
        typer.echo(f"error: {describe_error(e)}", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def orders() -> None:
    """List open orders for the configured wallet."""
    settings = Settings()
    configure_logging(settings.log_level)
    _run_authenticated(settings, "orders")


@app.command()
def trades() -> None:
    """List trade history for the configured wallet."""
    settings = Settings()
    configure_logging(settings.log_level)
    _run_authenticated(settings, "trades")


@app.command()
def cancel(order_id: str = typer.Argument(..., help="Order id to cancel.")) -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    _run_authenticated(settings, "cancel", order_id=order_id)


@app.command()
def proxy(
    host: str | None = typer.Option(None, help="Bind host (default PROXY_HOST)."),
    port: int | None = typer.Option(None, help="Bind port (default PROXY_PORT)."),
) -> None:
    """
    Serve the same-origin CLOB passthrough under /clob.
    """
    import uvicorn

    from joly_trader.proxy import create_app

    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(
            upstream_url=settings.clob_upstream_url,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        host=host or settings.proxy_host,
        port=port or settings.proxy_port,
        log_config=None,
    )


if __name__ == "__main__":
    app()
