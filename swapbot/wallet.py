# swapbot/wallet.py
import logging
from typing import Dict

from terra_sdk.client.lcd import AsyncLCDClient
from terra_sdk.client.lcd.api.tx import CreateTxOptions
from terra_sdk.core import Coins
from terra_sdk.core.wasm import MsgExecuteContract
from terra_sdk.key.mnemonic import MnemonicKey

from .errors import BroadcastError
from .models import ExecuteContract, OperationBatch, TxReceipt


class TerraWallet:
    """
    Mnemonic-derived account that signs and broadcasts operation batches.
    All operations of a batch go into a single transaction.
    """
    def __init__(self, lcd_url: str, chain_id: str, mnemonic: str, gas_prices: Dict[str, str],
                 logger: logging.Logger):
        self.logger = logger
        self._client = AsyncLCDClient(
            url=lcd_url,
            chain_id=chain_id,
            gas_prices=Coins(gas_prices),
        )
        self._key = MnemonicKey(mnemonic=mnemonic)
        self._wallet = self._client.wallet(self._key)

    @property
    def address(self) -> str:
        return self._key.acc_address

    def _to_msg(self, op: ExecuteContract) -> MsgExecuteContract:
        coins = Coins({c.denom: int(c.amount) for c in op.coins}) if op.coins else Coins()
        return MsgExecuteContract(op.sender, op.contract, op.msg, coins)

    async def sign_and_broadcast(self, batch: OperationBatch) -> TxReceipt:
        if not batch:
            raise BroadcastError("Refusing to broadcast an empty batch.")

        try:
            tx = await self._wallet.create_and_sign_tx(CreateTxOptions(msgs=[self._to_msg(op) for op in batch]))
            result = await self._client.tx.broadcast(tx)
        except Exception as e:
            # LCDResponseError carries the node's answer in `message`
            payload = getattr(e, "message", None) or str(e)
            raise BroadcastError(f"Transaction rejected: {payload}", payload=payload) from e

        receipt = TxReceipt(
            txhash=result.txhash,
            height=int(getattr(result, "height", 0) or 0),
            code=int(getattr(result, "code", 0) or 0),
            raw_log=str(getattr(result, "raw_log", "") or ""),
        )
        if not receipt.succeeded:
            raise BroadcastError(f"Transaction {receipt.txhash} failed with code {receipt.code}",
                                 payload=receipt.raw_log)
        return receipt

    async def shutdown(self):
        await self._client.session.close()
