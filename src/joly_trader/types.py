from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal

Side = Literal["BUY", "SELL"]


class TradePhase(str, Enum):
    IDLE = "idle"
    SWITCHING_NETWORK = "switching-network"
    DERIVING_CREDENTIALS = "deriving-credentials"
    CHECKING_ALLOWANCE = "checking-allowance"
    APPROVING = "approving"
    BUILDING_ORDER = "building-order"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ApiCredentials:
    key: str
    secret: str
    passphrase: str

    def is_complete(self) -> bool:
        return bool(self.key and self.secret and self.passphrase)

    def redacted(self) -> dict[str, str]:
        return {"key": self.key, "secret": "***", "passphrase": "***"}


def _to_decimal(value: Decimal | float | int | str, name: str) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
    if not number.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


@dataclass(frozen=True)
class TradeParams:
    token_id: str
    price: Decimal
    side: Side
    size: Decimal

    def __post_init__(self) -> None:
        token_id = str(self.token_id).strip()
        if not token_id.isdigit():
            raise ValueError(f"token_id must be a decimal uint256 string, got {self.token_id!r}")
        if self.side not in ("BUY", "SELL"):
            raise ValueError(f"side must be BUY or SELL, got {self.side!r}")
        price = _to_decimal(self.price, "price")
        size = _to_decimal(self.size, "size")
        if not (Decimal("0") < price < Decimal("1")):
            raise ValueError(f"price must be in (0, 1), got {price}")
        if size <= 0:
            raise ValueError(f"size must be > 0, got {size}")
        object.__setattr__(self, "token_id", token_id)
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "size", size)


@dataclass(frozen=True)
class SignedOrder:
    salt: int
    maker: str
    signer: str
    taker: str
    token_id: str
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: Side
    signature_type: int
    signature: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": str(self.maker_amount),
            "takerAmount": str(self.taker_amount),
            "expiration": str(self.expiration),
            "nonce": str(self.nonce),
            "feeRateBps": str(self.fee_rate_bps),
            "side": self.side,
            "signatureType": self.signature_type,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class OrderReceipt:
    order_id: str
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TradeState:
    phase: TradePhase = TradePhase.IDLE
    status: str = ""
    error: str | None = None
    tx_hash: str | None = None
    order_id: str | None = None
    is_loading: bool = False
