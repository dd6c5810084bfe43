# swapbot/cache.py
from typing import Any, Dict, Optional

WALLET_BALANCE = "wallet-balance"
DERIVATIVE_BALANCE = "derivative-balance"


class SimulationCache:
    """
    Per-cycle memo of ledger lookups.
    Entries are never refreshed in place; the engine clears the whole cache
    at the end of each cycle, so a hit is at most one cycle old.
    """
    def __init__(self):
        self._entries: Dict[str, Any] = {}

    def has(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Any]:
        return self._entries.get(key)

    def set(self, key: str, value: Any):
        self._entries[key] = value

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
