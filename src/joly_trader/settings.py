from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

POLYGON_CHAIN_ID = 137
POLYGON_USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
CTF_EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # CLOB. Point CLOB_BASE_URL at a proxy prefix (e.g. http://localhost:3001/clob)
    # when the upstream host is not reachable directly.
    clob_base_url: str = Field(
        default="https://clob.polymarket.com",
        validation_alias="CLOB_BASE_URL",
    )
    clob_upstream_url: str = Field(
        default="https://clob.polymarket.com",
        validation_alias="CLOB_UPSTREAM_URL",
    )
    http_timeout_seconds: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    http_max_retries: int = Field(default=2, validation_alias="HTTP_MAX_RETRIES")

    # Chain
    polygon_rpc_url: str = Field(default="https://polygon-rpc.com", validation_alias="POLYGON_RPC_URL")
    chain_id: int = Field(default=POLYGON_CHAIN_ID, validation_alias="CHAIN_ID")
    collateral_token_address: str = Field(
        default=POLYGON_USDC_ADDRESS,
        validation_alias="COLLATERAL_TOKEN_ADDRESS",
    )
    exchange_address: str = Field(default=CTF_EXCHANGE_ADDRESS, validation_alias="EXCHANGE_ADDRESS")
    approval_timeout_seconds: float = Field(
        default=180.0,
        validation_alias="APPROVAL_TIMEOUT_SECONDS",
    )

    # Wallet
    private_key: str = Field(default="", validation_alias="PRIVATE_KEY")

    # Orders
    order_expiration_seconds: int = Field(
        default=24 * 60 * 60,
        validation_alias="ORDER_EXPIRATION_SECONDS",
    )
    trading_mode: Literal["dry_run", "live"] = Field(
        default="dry_run",
        validation_alias="TRADING_MODE",
    )
    confirm_live_trading: str = Field(default="", validation_alias="CONFIRM_LIVE_TRADING")

    # Proxy
    proxy_host: str = Field(default="127.0.0.1", validation_alias="PROXY_HOST")
    proxy_port: int = Field(default=3001, validation_alias="PROXY_PORT")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def live_trading_enabled(self) -> bool:
        return self.trading_mode == "live" and self.confirm_live_trading.strip().upper() == "YES"
