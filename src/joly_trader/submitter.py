from __future__ import annotations

import logging

from joly_trader.errors import OrderRejectedError
from joly_trader.exchange.clob import ClobClient
from joly_trader.types import ApiCredentials, OrderReceipt, SignedOrder

logger = logging.getLogger("joly_trader.submitter")


class OrderSubmitter:
    """Posts signed orders. Never retries: a resubmission needs a fresh order."""

    def __init__(self, *, client: ClobClient, order_type: str = "GTC") -> None:
        self._client = client
        self._order_type = order_type

    async def submit(self, credentials: ApiCredentials, order: SignedOrder) -> OrderReceipt:
        data = await self._client.post_order(
            credentials,
            address=order.maker,
            order=order,
            order_type=self._order_type,
        )
        error_msg = str(data.get("errorMsg") or "").strip()
        if data.get("success") is False or error_msg:
            raise OrderRejectedError(error_msg or "order rejected by the CLOB")

        order_id = str(data.get("orderID") or data.get("orderId") or "").strip()
        if not order_id:
            raise OrderRejectedError("order accepted without an order id")

        receipt = OrderReceipt(order_id=order_id, status=str(data.get("status", "")), raw=data)
        logger.info(
            "order_submitted",
            extra={"order_id": order_id, "token_id": order.token_id, "side": order.side},
        )
        return receipt
