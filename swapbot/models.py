# swapbot/models.py
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List

MICRO_MULTIPLIER = 1_000_000

NATIVE_DENOM = "uluna"
DERIVATIVE_DENOM = "ubluna"
STABLE_DENOM = "ukrw"


class EngineStatus(Enum):
    """
    Lifecycle states of the execution engine.
    """
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"


class Direction(Enum):
    FORWARD = "Luna → bLuna"
    REVERSE = "bLuna → Luna"


@dataclass(slots=True)
class Balance:
    """
    Snapshot of one asset held by the wallet, in micro units.
    """
    denom: str
    amount: Decimal

    @property
    def display(self) -> Decimal:
        """Returns the amount in whole tokens."""
        return self.amount / MICRO_MULTIPLIER


@dataclass(slots=True, frozen=True)
class SimulationResult:
    """
    Decoded answer of the pool 'simulation' query.
    """
    return_amount: Decimal
    spread_amount: Decimal
    commission_amount: Decimal


@dataclass(slots=True, frozen=True)
class Simulation:
    """
    Profitability of offering `offer_amount` in one direction.
    `belief_price` is the simulated return amount.
    """
    direction: Direction
    offer_amount: Decimal
    belief_price: Decimal
    percentage: Decimal


@dataclass(slots=True)
class Coin:
    denom: str
    amount: Decimal

    def to_data(self) -> Dict[str, str]:
        return {"denom": self.denom, "amount": str(self.amount)}


@dataclass(slots=True)
class ExecuteContract:
    """
    One signable contract execution. A transaction carries a list of these.
    """
    sender: str
    contract: str
    msg: Dict[str, Any]
    coins: List[Coin] = field(default_factory=list)


OperationBatch = List[ExecuteContract]


@dataclass(slots=True)
class TxReceipt:
    txhash: str
    height: int = 0
    code: int = 0
    raw_log: str = ""

    @property
    def succeeded(self) -> bool:
        return self.code == 0
