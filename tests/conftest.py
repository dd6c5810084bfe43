import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import pytest

from swapbot.cache import SimulationCache
from swapbot.config import BotConfig
from swapbot.engine import ExecutionEngine
from swapbot.errors import BroadcastError, QueryError
from swapbot.messages import SwapMessageBuilder
from swapbot.models import (NATIVE_DENOM, Balance, OperationBatch, SimulationResult,
                            TxReceipt)
from swapbot.rates import RateEvaluator

ADDRESS = "terra1wallet"
PAIR = "terra1pair"
BLUNA = "terra1bluna"
MNEMONIC = " ".join(["word"] * 24)


class DummyLcd:
    """In-memory stand-in for LcdClient. Simulations return `offer * ratio`."""

    def __init__(self, luna: Decimal = Decimal(0), bluna: Decimal = Decimal(0),
                 forward_ratio: Decimal = Decimal(1), reverse_ratio: Decimal = Decimal(1)):
        self.luna = Decimal(luna)
        self.bluna = Decimal(bluna)
        self.forward_ratio = Decimal(forward_ratio)
        self.reverse_ratio = Decimal(reverse_ratio)
        self.balance_calls = 0
        self.token_balance_calls = 0
        self.simulations: List[tuple] = []
        self.fail_simulation = False
        self.on_simulate: Optional[Callable[[], None]] = None

    async def get_native_balances(self, address: str) -> Dict[str, Balance]:
        self.balance_calls += 1
        balances = {"ukrw": Balance("ukrw", Decimal(5_000_000))}
        if self.luna > 0:
            balances[NATIVE_DENOM] = Balance(NATIVE_DENOM, self.luna)
        return balances

    async def get_token_balance(self, token: str, address: str, denom: str) -> Balance:
        self.token_balance_calls += 1
        return Balance(denom, self.bluna)

    async def simulate(self, pair: str, offer_info: dict, amount: Decimal) -> SimulationResult:
        self.simulations.append((offer_info, amount))
        if self.on_simulate is not None:
            self.on_simulate()
        if self.fail_simulation:
            raise QueryError("LCD request to /cosmwasm/wasm/v1/contract failed: timeout")

        ratio = self.forward_ratio if "native_token" in offer_info else self.reverse_ratio
        return SimulationResult(
            return_amount=(amount * ratio).to_integral_value(),
            spread_amount=Decimal(0),
            commission_amount=Decimal(0),
        )


class DummyWallet:
    address = ADDRESS

    def __init__(self, error: Optional[BroadcastError] = None):
        self.error = error
        self.batches: List[OperationBatch] = []

    async def sign_and_broadcast(self, batch: OperationBatch) -> TxReceipt:
        self.batches.append(batch)
        if self.error is not None:
            raise self.error
        return TxReceipt(txhash="ABCDEF", height=42)


class DummyNotifier:
    def __init__(self):
        self.messages: List[str] = []

    def notify(self, message: str, rich: bool = False):
        self.messages.append(message)


def make_config(**overrides) -> BotConfig:
    values = dict(
        lcd_url="https://lcd.terra.dev",
        chain_id="phoenix-1",
        mnemonic=MNEMONIC,
        pair_address=PAIR,
        bluna_token_address=BLUNA,
        swap_threshold_pct=Decimal(5),
        reverse_swap_threshold_pct=Decimal(-5),
    )
    values.update(overrides)
    return BotConfig(**values)


@pytest.fixture
def logger():
    return logging.getLogger("swapbot-tests")


@pytest.fixture
def build_engine(logger):
    def _build(lcd: DummyLcd, wallet: Optional[DummyWallet] = None, audit_log=None,
               **config_overrides) -> ExecutionEngine:
        config = make_config(**config_overrides)
        cache = SimulationCache()
        rates = RateEvaluator(lcd, cache, ADDRESS, PAIR, BLUNA, logger,
                              max_token_per_swap=config.max_token_per_swap)
        builder = SwapMessageBuilder(ADDRESS, PAIR, BLUNA, config.max_spread_pct)
        engine = ExecutionEngine(config, cache, rates, builder, wallet or DummyWallet(),
                                 DummyNotifier(), logger, audit_log=audit_log)
        return engine

    return _build
