# swapbot/messages.py
import base64
import json
from decimal import Decimal

from .errors import InvalidAmountError
from .models import NATIVE_DENOM, Coin, ExecuteContract, OperationBatch

# Extra bLuna (micro units) granted on top of the expected return
ALLOWANCE_MARGIN = Decimal(10)
DEFAULT_MAX_SPREAD = Decimal("0.01")

_PRICE_QUANTUM = Decimal("1e-18")


class SwapMessageBuilder:
    """
    Builds the contract executions for one swap. Nothing here talks to the chain;
    the engine queues and broadcasts what these methods return.
    """
    def __init__(self, sender: str, pair_address: str, bluna_token_address: str,
                 max_spread_pct: Decimal = Decimal("1")):
        self.sender = sender
        self.pair_address = pair_address
        self.bluna_token_address = bluna_token_address
        if max_spread_pct:
            self.max_spread = Decimal(max_spread_pct) / 100
        else:
            self.max_spread = DEFAULT_MAX_SPREAD

    def _swap_terms(self, amount: Decimal, belief_price: Decimal) -> dict:
        if amount <= 0:
            raise InvalidAmountError(f"Swap amount must be positive, got {amount}")
        if belief_price <= 0:
            raise InvalidAmountError(f"Belief price must be positive, got {belief_price}")

        # the pool expects offer units per unit received
        price = (Decimal(amount) / Decimal(belief_price)).quantize(_PRICE_QUANTUM)
        return {"belief_price": str(price), "max_spread": str(self.max_spread)}

    def build_forward(self, amount: Decimal, belief_price: Decimal) -> OperationBatch:
        """Luna → bLuna: allowance grant followed by the native swap."""
        terms = self._swap_terms(amount, belief_price)

        increase_allowance = ExecuteContract(
            sender=self.sender,
            contract=self.bluna_token_address,
            msg={
                "increase_allowance": {
                    "amount": str(Decimal(belief_price) + ALLOWANCE_MARGIN),
                    "spender": self.pair_address,
                }
            },
        )
        swap = ExecuteContract(
            sender=self.sender,
            contract=self.pair_address,
            msg={
                "swap": {
                    "offer_asset": {
                        "info": {"native_token": {"denom": NATIVE_DENOM}},
                        "amount": str(amount),
                    },
                    **terms,
                }
            },
            coins=[Coin(NATIVE_DENOM, Decimal(amount))],
        )
        return [increase_allowance, swap]

    def build_reverse(self, amount: Decimal, belief_price: Decimal) -> OperationBatch:
        """bLuna → Luna: a CW20 send whose hook message performs the swap."""
        terms = self._swap_terms(amount, belief_price)
        hook = json.dumps({"swap": terms}, separators=(",", ":"))

        send = ExecuteContract(
            sender=self.sender,
            contract=self.bluna_token_address,
            msg={
                "send": {
                    "amount": str(amount),
                    "contract": self.pair_address,
                    "msg": base64.b64encode(hook.encode()).decode(),
                }
            },
        )
        return [send]
