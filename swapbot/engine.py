# swapbot/engine.py
import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from . import __version__
from .cache import SimulationCache
from .config import BotConfig
from .errors import BroadcastError
from .logger import AsyncAuditLogger
from .messages import SwapMessageBuilder
from .models import (DERIVATIVE_DENOM, MICRO_MULTIPLIER, NATIVE_DENOM, STABLE_DENOM, Balance,
                     Direction, EngineStatus, ExecuteContract, OperationBatch, Simulation,
                     TxReceipt)
from .notifier import Notifier
from .rates import RateEvaluator

ASSET_NAMES = {Direction.FORWARD: "Luna", Direction.REVERSE: "bLuna"}


class ExecutionEngine:
    """
    Single-flight swap state machine.

    One call to `execute` is one cycle: evaluate both directions, swap in at
    most one of them, then clear the cache and the pending batch. The engine
    starts PAUSED; `start` makes it IDLE and only an IDLE engine runs a cycle.
    A `pause` issued while a cycle is in flight is kept when the cycle ends.
    """
    def __init__(self, config: BotConfig, cache: SimulationCache, rates: RateEvaluator,
                 builder: SwapMessageBuilder, wallet, notifier: Notifier, logger: logging.Logger,
                 audit_log: Optional[AsyncAuditLogger] = None):
        self.cfg = config
        self.cache = cache
        self.rates = rates
        self.builder = builder
        self.wallet = wallet
        self.notifier = notifier
        self.logger = logger
        self.audit_log = audit_log

        self._status = EngineStatus.PAUSED
        self._pending: List[ExecuteContract] = []
        self._in_cycle = False
        self.last_simulations: Dict[Direction, Simulation] = {}
        self.last_trade: Optional[str] = None

    # --- control surface ---

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def pending(self) -> OperationBatch:
        return list(self._pending)

    def start(self):
        if self._status is EngineStatus.PAUSED:
            self._status = EngineStatus.RUNNING if self._in_cycle else EngineStatus.IDLE
        self.notifier.notify("Bot started")

    def pause(self):
        self._status = EngineStatus.PAUSED
        self.clear_queue()
        self.clear_cache()
        self.notifier.notify("Bot paused")

    def clear_queue(self):
        self._pending.clear()

    def clear_cache(self):
        self.cache.clear()

    def queue(self, operations: OperationBatch):
        self._pending.extend(operations)

    async def get_balances_snapshot(self) -> Dict[str, Balance]:
        """Fresh balances of the three assets the wallet cares about."""
        self.clear_cache()
        try:
            natives, bluna = await asyncio.gather(self.rates.get_wallet_balance(), self.rates.get_bluna_balance())
        finally:
            self.clear_cache()

        return {
            NATIVE_DENOM: natives.get(NATIVE_DENOM, Balance(NATIVE_DENOM, Decimal(0))),
            DERIVATIVE_DENOM: bluna,
            STABLE_DENOM: natives.get(STABLE_DENOM, Balance(STABLE_DENOM, Decimal(0))),
        }

    async def format_balances(self) -> str:
        balances = await self.get_balances_snapshot()
        return (
            "Your balance is\n"
            f"- <code>{balances[NATIVE_DENOM].display:.3f} Luna</code>\n"
            f"- <code>{balances[DERIVATIVE_DENOM].display:.3f} bLuna</code>\n"
            f"- <code>{balances[STABLE_DENOM].display:.3f} KRW</code>"
        )

    def info(self) -> str:
        """Sends (and returns) an HTML summary of the bot and its thresholds."""
        network = "Mainnet" if self.cfg.is_mainnet else "Testnet"
        address = self.wallet.address
        cap = f"{self.cfg.max_token_per_swap}" if self.cfg.max_token_per_swap > 0 else "unlimited"
        message = (
            f"<b>v{__version__} - Luna &lt;&gt; bLuna Swap Bot</b>\n\n"
            f"<b>Network:</b> <code>{network}</code>\n"
            f"<b>Address:</b>\n"
            f"<a href=\"https://finder.terra.money/{self.cfg.chain_id}/address/{address}\">{address}</a>\n\n"
            f"<b>Status:</b> <code>{self._status.value}</code>\n\n"
            f"<u>Configuration:</u>\n"
            f"  - <b>SWAP:</b> <code>{self.cfg.swap_threshold_pct}%</code>\n"
            f"  - <b>REVERSE SWAP:</b> <code>{self.cfg.reverse_swap_threshold_pct}%</code>\n"
            f"  - <b>MAX SPREAD:</b> <code>{self.cfg.max_spread_pct}%</code>\n"
            f"  - <b>MAX PER SWAP:</b> <code>{cap}</code>"
        )
        self.notifier.notify(message, rich=True)
        return message

    # --- cycle ---

    async def execute(self):
        if self._status is not EngineStatus.IDLE or self._in_cycle:
            return

        self._status = EngineStatus.RUNNING
        self._in_cycle = True
        try:
            # return_exceptions=True keeps both evaluations running to the end,
            # so neither can refill the cache after cleanup
            results = await asyncio.gather(
                self.rates.evaluate(Direction.FORWARD),
                self.rates.evaluate(Direction.REVERSE),
                return_exceptions=True,
            )
            for res in results:
                if isinstance(res, Exception):
                    raise res
            forward, reverse = results
            self.last_simulations = {Direction.FORWARD: forward, Direction.REVERSE: reverse}

            if self._status is not EngineStatus.RUNNING:
                self.logger.info("Paused during evaluation, skipping decision")
                return

            if forward.percentage > self.cfg.swap_threshold_pct:
                await self._swap(forward)
            elif reverse.percentage > self.cfg.reverse_swap_threshold_pct:
                await self._swap(reverse)

        except Exception as e:
            self.logger.exception(f"Cycle aborted: {e!r}")
            self.notifier.notify(f"An error occurred: {e}")
        finally:
            self.clear_cache()
            self.clear_queue()
            self._in_cycle = False
            if self._status is EngineStatus.RUNNING:
                self._status = EngineStatus.IDLE

    async def _swap(self, simulation: Simulation):
        direction = simulation.direction
        size = await self.rates.offer_amount(direction)
        if size <= 0:
            self.logger.info(f"{direction.value} is profitable ({simulation.percentage:.3f}%) but nothing to swap")
            return

        if direction is Direction.FORWARD:
            batch = self.builder.build_forward(size, simulation.belief_price)
        else:
            batch = self.builder.build_reverse(size, simulation.belief_price)

        asset = ASSET_NAMES[direction]
        amount_display = size / MICRO_MULTIPLIER
        self.notifier.notify(
            f"Swapping {direction.value} [{amount_display:.3f} {asset} @ {simulation.percentage:.3f}%]"
        )

        self.queue(batch)
        try:
            receipt = await self.broadcast()
        except BroadcastError as e:
            self.logger.error(f"Swap {direction.value} failed: {e} | payload: {e.payload}")
            self.notifier.notify(f"Swap {direction.value} failed: {e}")
            self.last_trade = f"FAILED {direction.value} {amount_display:.3f} {asset}"
            await self._audit(direction, amount_display, simulation.percentage, "FAILED", e.payload or str(e))
            return

        self.notifier.notify(
            f"Swapped {amount_display:.3f} {asset} ({direction.value}) @ {simulation.percentage:.3f}% "
            f"- tx <code>{receipt.txhash}</code>",
            rich=True,
        )
        self.last_trade = f"SUCCESS {direction.value} {amount_display:.3f} {asset}"
        await self._audit(direction, amount_display, simulation.percentage, "SUCCESS", receipt.txhash)

    async def broadcast(self) -> TxReceipt:
        """Signs and submits the pending batch as one transaction. The batch is emptied either way."""
        try:
            return await self.wallet.sign_and_broadcast(list(self._pending))
        finally:
            self.clear_queue()

    async def _audit(self, direction: Direction, amount: Decimal, percentage: Decimal, outcome: str, detail):
        if self.audit_log is None:
            return
        await self.audit_log.log_trade([
            datetime.now(timezone.utc).isoformat(),
            direction.name,
            f"{amount:.6f}",
            f"{percentage:.4f}",
            outcome,
            str(detail),
        ])

    async def run_loop(self, interval: float, on_cycle: Optional[Callable[["ExecutionEngine"], None]] = None):
        """
        Runs a cycle, waits `interval` seconds, repeats. The next cycle is only
        scheduled once the previous one has finished.
        """
        while True:
            await self.execute()
            if on_cycle is not None:
                on_cycle(self)
            await asyncio.sleep(interval)
