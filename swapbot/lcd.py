# swapbot/lcd.py
import asyncio
import base64
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import aiohttp

from .errors import QueryError
from .models import Balance, SimulationResult


class LcdClient:
    """
    Read-only access to a Terra LCD node over REST.
    Every payload is decoded into a typed structure here; anything that does
    not have the expected shape is turned into a QueryError.
    """
    def __init__(self, base_url: str, logger: logging.Logger, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def start(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def shutdown(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _get(self, path: str, field: str) -> Any:
        """GETs `path` and returns `field` of the JSON body."""
        if self._session is None:
            await self.start()

        url = f"{self.base_url}{path}"
        try:
            async with self._session.get(url) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise QueryError(f"LCD returned HTTP {resp.status} for {path}: {body}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise QueryError(f"LCD request to {path} failed: {e!r}") from e
        except json.JSONDecodeError as e:
            raise QueryError(f"LCD returned invalid JSON for {path}") from e

        if not isinstance(data, dict) or field not in data:
            raise QueryError(f"LCD response for {path} has no '{field}' field: {data!r}")
        return data[field]

    async def get_native_balances(self, address: str) -> Dict[str, Balance]:
        """Bank balances of `address`, keyed by denom."""
        result = await self._get(f"/cosmos/bank/v1beta1/balances/{address}", "balances")
        if not isinstance(result, list):
            raise QueryError(f"Unexpected bank balance payload: {result!r}")

        balances = {}
        for coin in result:
            try:
                balances[coin["denom"]] = Balance(coin["denom"], _to_decimal(coin["amount"]))
            except (KeyError, TypeError) as e:
                raise QueryError(f"Malformed coin in bank balance payload: {coin!r}") from e
        return balances

    async def contract_query(self, contract: str, query: Dict[str, Any]) -> Dict[str, Any]:
        """CosmWasm smart query; the query message travels base64-encoded in the path."""
        encoded = base64.urlsafe_b64encode(json.dumps(query, separators=(",", ":")).encode()).decode()
        result = await self._get(f"/cosmwasm/wasm/v1/contract/{contract}/smart/{encoded}", "data")
        if not isinstance(result, dict):
            raise QueryError(f"Unexpected contract query payload from {contract}: {result!r}")
        return result

    async def get_token_balance(self, token: str, address: str, denom: str) -> Balance:
        """CW20 balance of `address` in the `token` contract."""
        result = await self.contract_query(token, {"balance": {"address": address}})
        try:
            return Balance(denom, _to_decimal(result["balance"]))
        except KeyError as e:
            raise QueryError(f"Token balance payload has no 'balance': {result!r}") from e

    async def simulate(self, pair: str, offer_info: Dict[str, Any], amount: Decimal) -> SimulationResult:
        """Asks the pool what offering `amount` of `offer_info` would return."""
        result = await self.contract_query(pair, {
            "simulation": {
                "offer_asset": {
                    "amount": str(amount),
                    "info": offer_info,
                }
            }
        })
        try:
            return SimulationResult(
                return_amount=_to_decimal(result["return_amount"]),
                spread_amount=_to_decimal(result["spread_amount"]),
                commission_amount=_to_decimal(result["commission_amount"]),
            )
        except KeyError as e:
            raise QueryError(f"Simulation payload is missing {e}: {result!r}") from e


def _to_decimal(value: Any) -> Decimal:
    # amounts travel as strings to keep full precision
    if not isinstance(value, (str, int)):
        raise QueryError(f"Expected a decimal string, got {value!r}")
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise QueryError(f"Expected a decimal string, got {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise QueryError(f"Expected a non-negative amount, got {value!r}")
    return amount
