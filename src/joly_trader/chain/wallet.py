"""Signer and wallet capabilities consumed by the trading core.

Any wallet integration (browser extension bridge, custodial API, hardware
device) is an adapter that satisfies :class:`Wallet`. Adapters must raise
:class:`~joly_trader.errors.UserDeclinedError` when the user rejects a prompt
so the orchestrator can tell a refusal apart from a failure.
"""

from __future__ import annotations

from typing import Any, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3

from joly_trader.errors import TradeError


class Signer(Protocol):
    async def get_address(self) -> str: ...

    async def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        value: dict[str, Any],
    ) -> str: ...


class Wallet(Signer, Protocol):
    async def get_chain_id(self) -> int: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    async def send_transaction(self, tx: dict[str, Any]) -> str: ...


def _hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


class LocalWallet:
    """Private-key wallet backed by a JSON-RPC endpoint.

    Typed-data signing is purely local; chain id and transactions go through
    the RPC node, so the wallet is "on" whatever chain the node serves.
    """

    def __init__(self, *, private_key: str, w3: AsyncWeb3) -> None:
        if not private_key:
            raise ValueError("PRIVATE_KEY is required for a local wallet")
        self._account: LocalAccount = Account.from_key(private_key)
        self._w3 = w3

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> str:
        return self._account.address

    async def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        value: dict[str, Any],
    ) -> str:
        signed = self._account.sign_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=value,
        )
        return _hex(signed.signature)

    async def get_chain_id(self) -> int:
        return int(await self._w3.eth.chain_id)

    async def switch_chain(self, chain_id: int) -> None:
        current = await self.get_chain_id()
        if current != chain_id:
            raise TradeError(
                f"local wallet cannot switch networks: rpc serves chain {current}, "
                f"expected {chain_id}; point POLYGON_RPC_URL at the right network"
            )

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        prepared = dict(tx)
        prepared.setdefault("from", self._account.address)
        if "nonce" not in prepared:
            prepared["nonce"] = await self._w3.eth.get_transaction_count(
                self._account.address,
                "pending",
            )
        if "chainId" not in prepared:
            prepared["chainId"] = await self._w3.eth.chain_id
        signed = self._account.sign_transaction(prepared)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return _hex(tx_hash)
