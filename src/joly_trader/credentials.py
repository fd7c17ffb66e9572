from __future__ import annotations

import logging
from typing import Any

from joly_trader.auth import POLY_ADDRESS, build_l1_headers
from joly_trader.chain.wallet import Signer
from joly_trader.errors import AccessRestrictedError, ClobApiError, ClobProtocolError
from joly_trader.exchange.clob import ClobClient
from joly_trader.types import ApiCredentials

logger = logging.getLogger("joly_trader.credentials")


class CredentialStore:
    """Session-scoped cache of derived API credentials, keyed by wallet address.

    Lives as long as the orchestrator that owns it; ``clear()`` is the
    logout/disconnect path. Not safe for two orchestrators deriving for the
    same address at once: use one orchestrator per session.
    """

    def __init__(self) -> None:
        self._by_address: dict[str, ApiCredentials] = {}

    def get(self, address: str) -> ApiCredentials | None:
        return self._by_address.get(address.lower())

    def set(self, address: str, credentials: ApiCredentials) -> None:
        self._by_address[address.lower()] = credentials

    def clear(self) -> None:
        self._by_address.clear()

    def __len__(self) -> int:
        return len(self._by_address)


def parse_credentials(data: Any) -> ApiCredentials:
    if not isinstance(data, dict):
        raise ClobProtocolError(f"credentials: expected an object, got {type(data).__name__}")
    creds = ApiCredentials(
        key=str(data.get("apiKey") or data.get("key") or ""),
        secret=str(data.get("secret") or ""),
        passphrase=str(data.get("passphrase") or ""),
    )
    if not creds.is_complete():
        missing = [name for name in ("key", "secret", "passphrase") if not getattr(creds, name)]
        raise AccessRestrictedError(f"credentials missing fields: {', '.join(missing)}")
    return creds


class CredentialDeriver:
    def __init__(self, *, client: ClobClient, chain_id: int) -> None:
        self._client = client
        self._chain_id = chain_id

    async def derive_or_create(self, signer: Signer) -> ApiCredentials:
        headers = await build_l1_headers(signer, chain_id=self._chain_id)
        address = headers[POLY_ADDRESS]
        try:
            data = await self._client.derive_api_key(headers)
        except ClobApiError as e:
            if e.status_code != 404:
                raise
            logger.info("credentials_not_found", extra={"address": address})
            data = await self._create(signer)
        creds = parse_credentials(data)
        logger.info("credentials_derived", extra={"address": address})
        return creds

    async def _create(self, signer: Signer) -> Any:
        # Fresh timestamp and signature; the derive headers are not reused.
        headers = await build_l1_headers(signer, chain_id=self._chain_id)
        try:
            return await self._client.create_api_key(headers)
        except ClobApiError as e:
            if e.status_code == 400:
                raise AccessRestrictedError(e.text) from e
            raise
