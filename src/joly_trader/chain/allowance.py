from __future__ import annotations

import logging
from typing import Any

from eth_utils import to_checksum_address
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from joly_trader.chain.wallet import Wallet
from joly_trader.errors import TransactionFailedError

logger = logging.getLogger("joly_trader.allowance")

MAX_UINT256 = 2**256 - 1

ERC20_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class AllowanceManager:
    """One-time "infinite" collateral approval for the exchange contract."""

    def __init__(
        self,
        *,
        w3: AsyncWeb3,
        token_address: str,
        spender_address: str,
        receipt_timeout_seconds: float = 180.0,
    ) -> None:
        self._w3 = w3
        self._spender = to_checksum_address(spender_address)
        self._token = w3.eth.contract(address=to_checksum_address(token_address), abi=ERC20_ABI)
        self._receipt_timeout_seconds = float(max(1.0, receipt_timeout_seconds))

    async def allowance(self, owner: str) -> int:
        value = await self._token.functions.allowance(
            to_checksum_address(owner),
            self._spender,
        ).call()
        return int(value)

    async def has_allowance(self, owner: str) -> bool:
        return await self.allowance(owner) > 0

    async def approve(self, wallet: Wallet) -> str:
        owner = to_checksum_address(await wallet.get_address())
        tx = await self._token.functions.approve(self._spender, MAX_UINT256).build_transaction(
            {"from": owner}
        )
        tx_hash = await wallet.send_transaction(tx)
        logger.info("approval_sent", extra={"address": owner, "tx_hash": tx_hash})

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._receipt_timeout_seconds,
            )
        except TimeExhausted as e:
            raise TransactionFailedError(
                f"approval transaction {tx_hash} not confirmed after "
                f"{self._receipt_timeout_seconds:.0f}s",
                tx_hash=tx_hash,
            ) from e

        if int(receipt.get("status", 0)) != 1:
            raise TransactionFailedError(
                f"approval transaction {tx_hash} reverted",
                tx_hash=tx_hash,
            )
        logger.info("approval_confirmed", extra={"address": owner, "tx_hash": tx_hash})
        return tx_hash
