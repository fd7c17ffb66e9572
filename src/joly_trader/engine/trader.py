from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional

from joly_trader.chain.allowance import AllowanceManager
from joly_trader.chain.wallet import Wallet
from joly_trader.credentials import CredentialDeriver, CredentialStore
from joly_trader.errors import UserDeclinedError, describe_error
from joly_trader.orders import OrderBuilder
from joly_trader.submitter import OrderSubmitter
from joly_trader.types import ApiCredentials, OrderReceipt, TradeParams, TradePhase, TradeState

logger = logging.getLogger("joly_trader.trader")

StateListener = Callable[[TradeState], None]

_PHASE_STATUS: dict[TradePhase, str] = {
    TradePhase.SWITCHING_NETWORK: "switching network...",
    TradePhase.DERIVING_CREDENTIALS: "deriving credentials...",
    TradePhase.CHECKING_ALLOWANCE: "checking usdc approval...",
    TradePhase.APPROVING: "requesting usdc approval...",
    TradePhase.BUILDING_ORDER: "signing order...",
    TradePhase.SUBMITTING: "submitting order...",
    TradePhase.SUCCESS: "order submitted!",
}


class TradeOrchestrator:
    """Runs one trade at a time: network, credentials, allowance, order, submit.

    The orchestrator owns the session's :class:`CredentialStore`. Overlapping
    calls to :meth:`execute_trade` are rejected, not queued.
    """

    def __init__(
        self,
        *,
        wallet: Optional[Wallet],
        deriver: CredentialDeriver,
        allowance: AllowanceManager,
        builder: OrderBuilder,
        submitter: OrderSubmitter,
        chain_id: int,
        credential_store: CredentialStore | None = None,
        listener: StateListener | None = None,
    ) -> None:
        self._wallet = wallet
        self._deriver = deriver
        self._allowance = allowance
        self._builder = builder
        self._submitter = submitter
        self._chain_id = chain_id
        self._store = credential_store if credential_store is not None else CredentialStore()
        self._listener = listener
        self._state = TradeState()
        self._executing = False

    @property
    def state(self) -> TradeState:
        return self._state

    @property
    def is_executing(self) -> bool:
        return self._executing

    @property
    def credential_store(self) -> CredentialStore:
        return self._store

    def connect(self, wallet: Wallet) -> None:
        self._wallet = wallet

    def reset(self) -> None:
        self._set_state(TradeState())

    def logout(self) -> None:
        self._store.clear()
        self.reset()
        logger.info("logged_out")

    def disconnect(self) -> None:
        self.logout()
        self._wallet = None

    async def execute_trade(self, params: TradeParams) -> bool:
        # Checked and set before the first await, so overlapping calls on the
        # same loop cannot both get through.
        if self._executing:
            logger.warning(
                "trade_rejected_in_flight",
                extra={"token_id": params.token_id, "side": params.side},
            )
            return False

        wallet = self._wallet
        if wallet is None:
            self._set_state(TradeState(phase=TradePhase.FAILED, error="wallet not connected"))
            return False

        self._executing = True
        self._set_state(TradeState(status="preparing trade...", is_loading=True))
        logger.info(
            "trade_started",
            extra={"token_id": params.token_id, "side": params.side},
        )
        try:
            receipt = await self._run(wallet=wallet, params=params)
        except asyncio.CancelledError:
            self._fail("trade cancelled")
            raise
        except UserDeclinedError as e:
            logger.info(
                "trade_declined",
                extra={
                    "token_id": params.token_id,
                    "side": params.side,
                    "phase": self._state.phase.value,
                },
            )
            self._fail(describe_error(e))
            return False
        except Exception as e:
            logger.exception(
                "trade_failed",
                extra={
                    "token_id": params.token_id,
                    "side": params.side,
                    "phase": self._state.phase.value,
                },
            )
            self._fail(describe_error(e))
            return False
        finally:
            self._executing = False

        self._set_state(
            replace(
                self._state,
                phase=TradePhase.SUCCESS,
                status=_PHASE_STATUS[TradePhase.SUCCESS],
                error=None,
                order_id=receipt.order_id,
                is_loading=False,
            )
        )
        logger.info(
            "trade_succeeded",
            extra={"token_id": params.token_id, "side": params.side, "order_id": receipt.order_id},
        )
        return True

    async def _run(self, *, wallet: Wallet, params: TradeParams) -> OrderReceipt:
        address = await wallet.get_address()

        current_chain = await wallet.get_chain_id()
        if current_chain != self._chain_id:
            self._enter(TradePhase.SWITCHING_NETWORK)
            await wallet.switch_chain(self._chain_id)
            logger.info("network_switched", extra={"address": address})

        credentials = await self._credentials(wallet=wallet, address=address)

        self._enter(TradePhase.CHECKING_ALLOWANCE)
        if not await self._allowance.has_allowance(address):
            self._enter(TradePhase.APPROVING)
            tx_hash = await self._allowance.approve(wallet)
            self._set_state(replace(self._state, tx_hash=tx_hash, status="usdc approved"))

        self._enter(TradePhase.BUILDING_ORDER)
        order = await self._builder.build_and_sign(wallet, params)

        self._enter(TradePhase.SUBMITTING)
        return await self._submitter.submit(credentials, order)

    async def _credentials(self, *, wallet: Wallet, address: str) -> ApiCredentials:
        cached = self._store.get(address)
        if cached is not None:
            return cached
        self._enter(TradePhase.DERIVING_CREDENTIALS)
        credentials = await self._deriver.derive_or_create(wallet)
        self._store.set(address, credentials)
        return credentials

    def _enter(self, phase: TradePhase) -> None:
        self._set_state(replace(self._state, phase=phase, status=_PHASE_STATUS[phase]))

    def _fail(self, message: str) -> None:
        self._set_state(
            replace(
                self._state,
                phase=TradePhase.FAILED,
                status="",
                error=message,
                order_id=None,
                is_loading=False,
            )
        )

    def _set_state(self, state: TradeState) -> None:
        self._state = state
        if self._listener is None:
            return
        try:
            self._listener(state)
        except Exception:
            logger.exception("state_listener_failed", extra={"phase": state.phase.value})
