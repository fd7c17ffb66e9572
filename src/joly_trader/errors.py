from __future__ import annotations

from typing import Any

ACCESS_RESTRICTED_PREFIX = "REGION_BLOCKED:"
ACCESS_RESTRICTED_MESSAGE = (
    "Trading is not currently available in your region. Polymarket restricts access "
    "from the United States and certain other locations."
)


class TradeError(RuntimeError):
    """Base class for every failure the trading core classifies."""


class UserDeclinedError(TradeError):
    """The wallet (or its user) refused a signature, network switch or transaction."""


class AccessRestrictedError(TradeError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(f"{ACCESS_RESTRICTED_PREFIX} {ACCESS_RESTRICTED_MESSAGE}")
        self.detail = detail


class NetworkError(TradeError):
    def __init__(self, message: str, *, method: str = "", path: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.path = path


class ClobApiError(TradeError):
    def __init__(self, *, status_code: int, payload: Any, text: str, context: str = "") -> None:
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}CLOB API error: status={status_code} body={text}")
        self.status_code = status_code
        self.payload = payload
        self.text = text


class ClobProtocolError(TradeError):
    """The CLOB answered with a body that is not the JSON we expect."""


class OrderRejectedError(TradeError):
    """The CLOB accepted the request but reported the order as failed."""


class TransactionFailedError(TradeError):
    def __init__(self, message: str, *, tx_hash: str = "") -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


def strip_access_prefix(message: str) -> str:
    text = message.strip()
    if text.startswith(ACCESS_RESTRICTED_PREFIX):
        return text[len(ACCESS_RESTRICTED_PREFIX) :].strip()
    return text


def describe_error(error: BaseException) -> str:
    """Human-readable message for a failed trade, safe to show to a user."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return strip_access_prefix(message)
