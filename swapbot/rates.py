# swapbot/rates.py
import logging
from decimal import ROUND_DOWN, Decimal
from typing import Dict

from .cache import DERIVATIVE_BALANCE, WALLET_BALANCE, SimulationCache
from .errors import InvalidAmountError
from .lcd import LcdClient
from .models import (DERIVATIVE_DENOM, MICRO_MULTIPLIER, NATIVE_DENOM, Balance, Direction,
                     Simulation)

# Used to read a price when the wallet holds nothing of the offered asset
PROBE_AMOUNT = Decimal(100 * MICRO_MULTIPLIER)


def compute_percentage(return_amount: Decimal, offer_amount: Decimal) -> Decimal:
    """(return - offer) / offer * 100"""
    if offer_amount <= 0:
        raise InvalidAmountError(f"Cannot compute a rate for offer amount {offer_amount}")
    return (return_amount - offer_amount) / offer_amount * 100


class RateEvaluator:
    """
    Turns pool simulations into profitability figures.

    Balances are read through the cycle cache, so the amount a rate is evaluated
    at is the same amount the engine later sizes the trade with.
    """
    def __init__(self, lcd: LcdClient, cache: SimulationCache, address: str, pair_address: str,
                 bluna_token_address: str, logger: logging.Logger,
                 max_token_per_swap: Decimal = Decimal("0")):
        self.lcd = lcd
        self.cache = cache
        self.address = address
        self.pair_address = pair_address
        self.bluna_token_address = bluna_token_address
        self.logger = logger
        self.max_offer = (Decimal(max_token_per_swap) * MICRO_MULTIPLIER).to_integral_value(rounding=ROUND_DOWN)

    async def get_wallet_balance(self) -> Dict[str, Balance]:
        if self.cache.has(WALLET_BALANCE):
            return self.cache.get(WALLET_BALANCE)

        balances = await self.lcd.get_native_balances(self.address)
        self.cache.set(WALLET_BALANCE, balances)
        return balances

    async def get_bluna_balance(self) -> Balance:
        if self.cache.has(DERIVATIVE_BALANCE):
            return self.cache.get(DERIVATIVE_BALANCE)

        balance = await self.lcd.get_token_balance(self.bluna_token_address, self.address, DERIVATIVE_DENOM)
        self.cache.set(DERIVATIVE_BALANCE, balance)
        return balance

    async def get_balance(self, direction: Direction) -> Decimal:
        """Live (cached) balance of the asset offered in `direction`, in micro units."""
        if direction is Direction.FORWARD:
            luna = (await self.get_wallet_balance()).get(NATIVE_DENOM)
            return luna.amount if luna else Decimal(0)
        return (await self.get_bluna_balance()).amount

    async def offer_amount(self, direction: Direction) -> Decimal:
        """
        Size of a swap in `direction`: the wallet balance, clamped to the
        per-swap cap when one is configured. Zero when the wallet is empty.
        """
        balance = await self.get_balance(direction)
        if self.max_offer > 0 and balance > self.max_offer:
            return self.max_offer
        return balance

    def offer_info(self, direction: Direction) -> Dict:
        if direction is Direction.FORWARD:
            return {"native_token": {"denom": NATIVE_DENOM}}
        return {"token": {"contract_addr": self.bluna_token_address}}

    async def evaluate(self, direction: Direction) -> Simulation:
        amount = await self.offer_amount(direction)
        if amount <= 0:
            amount = PROBE_AMOUNT

        result = await self.lcd.simulate(self.pair_address, self.offer_info(direction), amount)
        percentage = compute_percentage(result.return_amount, amount)

        self.logger.debug(f"{direction.value}: offer {amount} -> {result.return_amount} ({percentage:.3f}%)")
        return Simulation(direction=direction, offer_amount=amount,
                          belief_price=result.return_amount, percentage=percentage)
