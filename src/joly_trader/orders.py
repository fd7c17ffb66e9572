from __future__ import annotations

import secrets
import time
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable

from eth_utils import to_checksum_address

from joly_trader.chain.wallet import Signer
from joly_trader.types import Side, SignedOrder, TradeParams

COLLATERAL_DECIMALS = 6
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
EXCHANGE_DOMAIN_NAME = "Polymarket CTF Exchange"
EXCHANGE_DOMAIN_VERSION = "1"
SIGNATURE_TYPE_EOA = 0
DEFAULT_EXPIRATION_SECONDS = 24 * 60 * 60

_SCALE = Decimal(10) ** COLLATERAL_DECIMALS
_SIDE_CODES: dict[str, int] = {"BUY": 0, "SELL": 1}

ORDER_TYPES: dict[str, list[dict[str, str]]] = {
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "signer", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "makerAmount", "type": "uint256"},
        {"name": "takerAmount", "type": "uint256"},
        {"name": "expiration", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "feeRateBps", "type": "uint256"},
        {"name": "side", "type": "uint8"},
        {"name": "signatureType", "type": "uint8"},
    ],
}


def to_units(value: Decimal) -> int:
    return int((value * _SCALE).to_integral_value(rounding=ROUND_DOWN))


def compute_amounts(*, side: Side, price: Decimal, size: Decimal) -> tuple[int, int]:
    """Return ``(maker_amount, taker_amount)`` in 6-decimal base units.

    A BUY pays ``price * size`` collateral for ``size`` outcome tokens; a SELL
    gives ``size`` outcome tokens for ``price * size`` collateral.
    Raises ``ValueError`` when either amount truncates to zero base units.
    """
    price_units = to_units(price)
    size_units = to_units(size)
    notional_units = (price_units * size_units) // (10**COLLATERAL_DECIMALS)
    if notional_units == 0 or size_units == 0:
        raise ValueError(
            f"order amounts round to zero at {COLLATERAL_DECIMALS} decimals: "
            f"price={price} size={size}"
        )
    if side == "BUY":
        return notional_units, size_units
    return size_units, notional_units


def _random_uint() -> int:
    # Kept below 2**53 so JavaScript consumers of the payload read it exactly.
    return secrets.randbelow(2**53 - 1) + 1


class OrderBuilder:
    def __init__(
        self,
        *,
        chain_id: int,
        exchange_address: str,
        expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS,
        fee_rate_bps: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if expiration_seconds <= 0:
            raise ValueError("expiration_seconds must be > 0")
        self._chain_id = chain_id
        self._exchange_address = to_checksum_address(exchange_address)
        self._expiration_seconds = int(expiration_seconds)
        self._fee_rate_bps = int(fee_rate_bps)
        self._clock = clock

    def domain(self) -> dict[str, Any]:
        return {
            "name": EXCHANGE_DOMAIN_NAME,
            "version": EXCHANGE_DOMAIN_VERSION,
            "chainId": self._chain_id,
            "verifyingContract": self._exchange_address,
        }

    async def build_and_sign(self, signer: Signer, params: TradeParams) -> SignedOrder:
        address = to_checksum_address(await signer.get_address())
        maker_amount, taker_amount = compute_amounts(
            side=params.side,
            price=params.price,
            size=params.size,
        )
        salt = _random_uint()
        nonce = _random_uint()
        expiration = int(self._clock()) + self._expiration_seconds

        message = {
            "salt": salt,
            "maker": address,
            "signer": address,
            "taker": ZERO_ADDRESS,
            "tokenId": int(params.token_id),
            "makerAmount": maker_amount,
            "takerAmount": taker_amount,
            "expiration": expiration,
            "nonce": nonce,
            "feeRateBps": self._fee_rate_bps,
            "side": _SIDE_CODES[params.side],
            "signatureType": SIGNATURE_TYPE_EOA,
        }
        signature = await signer.sign_typed_data(self.domain(), ORDER_TYPES, message)

        return SignedOrder(
            salt=salt,
            maker=address,
            signer=address,
            taker=ZERO_ADDRESS,
            token_id=params.token_id,
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            expiration=expiration,
            nonce=nonce,
            fee_rate_bps=self._fee_rate_bps,
            side=params.side,
            signature_type=SIGNATURE_TYPE_EOA,
            signature=signature,
        )


def order_message(order: SignedOrder) -> dict[str, Any]:
    """The typed-data message a :class:`SignedOrder` was signed over."""
    return {
        "salt": order.salt,
        "maker": order.maker,
        "signer": order.signer,
        "taker": order.taker,
        "tokenId": int(order.token_id),
        "makerAmount": order.maker_amount,
        "takerAmount": order.taker_amount,
        "expiration": order.expiration,
        "nonce": order.nonce,
        "feeRateBps": order.fee_rate_bps,
        "side": _SIDE_CODES[order.side],
        "signatureType": order.signature_type,
    }
