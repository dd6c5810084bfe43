import asyncio
import base64
import csv
import json
from decimal import Decimal

from conftest import BLUNA, PAIR, DummyLcd, DummyWallet
from swapbot.errors import BroadcastError, QueryError
from swapbot.logger import TRADE_LOG_HEADER, AsyncAuditLogger
from swapbot.models import DERIVATIVE_DENOM, NATIVE_DENOM, STABLE_DENOM, Direction, EngineStatus


def test_engine_starts_paused_and_start_makes_it_idle(build_engine):
    engine = build_engine(DummyLcd())

    assert engine.status is EngineStatus.PAUSED
    engine.start()
    assert engine.status is EngineStatus.IDLE


def test_execute_is_a_noop_unless_idle(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)

    asyncio.run(engine.execute())

    assert engine.status is EngineStatus.PAUSED
    assert lcd.balance_calls == 0
    assert lcd.token_balance_calls == 0
    assert lcd.simulations == []
    assert wallet.batches == []


def test_forward_swap_end_to_end(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), bluna=Decimal(0),
                   forward_ratio=Decimal("1.06"), reverse_ratio=Decimal("0.95"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert len(wallet.batches) == 1
    allowance, swap = wallet.batches[0]

    assert allowance.contract == BLUNA
    assert Decimal(allowance.msg["increase_allowance"]["amount"]) >= Decimal(1060) + 10
    assert allowance.msg["increase_allowance"]["spender"] == PAIR

    assert swap.contract == PAIR
    assert swap.msg["swap"]["offer_asset"]["amount"] == "1000"
    assert Decimal(swap.msg["swap"]["max_spread"]) <= Decimal("0.01")
    assert [(c.denom, c.amount) for c in swap.coins] == [(NATIVE_DENOM, Decimal(1000))]

    assert len(engine.cache) == 0
    assert engine.pending == []
    assert engine.status is EngineStatus.IDLE


def test_forward_takes_priority_over_reverse(build_engine):
    # forward 6% > 5%, reverse -2% > -5%: both qualify, only forward fires
    lcd = DummyLcd(luna=Decimal(100_000_000), bluna=Decimal(100_000_000),
                   forward_ratio=Decimal("1.06"), reverse_ratio=Decimal("0.98"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert len(wallet.batches) == 1
    assert len(wallet.batches[0]) == 2
    assert "swap" in wallet.batches[0][1].msg


def test_reverse_swap_fires_when_forward_is_below_threshold(build_engine):
    lcd = DummyLcd(luna=Decimal(100_000_000), bluna=Decimal(30_000_000),
                   forward_ratio=Decimal("0.97"), reverse_ratio=Decimal("1.02"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet, reverse_swap_threshold_pct=Decimal(1))
    engine.start()

    asyncio.run(engine.execute())

    assert len(wallet.batches) == 1
    (send,) = wallet.batches[0]
    assert send.contract == BLUNA
    assert send.msg["send"]["amount"] == "30000000"
    hook = json.loads(base64.b64decode(send.msg["send"]["msg"]))
    assert set(hook["swap"]) == {"belief_price", "max_spread"}


def test_nothing_happens_below_both_thresholds(build_engine):
    lcd = DummyLcd(luna=Decimal(100_000_000), bluna=Decimal(100_000_000),
                   forward_ratio=Decimal("1.01"), reverse_ratio=Decimal("0.90"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert wallet.batches == []
    assert engine.status is EngineStatus.IDLE
    assert engine.last_simulations[Direction.FORWARD].percentage == Decimal(1)


def test_profitable_rate_with_empty_wallet_does_not_trade(build_engine):
    # both rates come from the probe amount, nothing to sell
    lcd = DummyLcd(forward_ratio=Decimal("1.10"), reverse_ratio=Decimal("1.10"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert wallet.batches == []
    assert engine.status is EngineStatus.IDLE


def test_cap_is_used_for_both_rate_and_swap_size(build_engine):
    lcd = DummyLcd(luna=Decimal(120_000_000), forward_ratio=Decimal("1.06"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet, max_token_per_swap=Decimal(50))
    engine.start()

    asyncio.run(engine.execute())

    forward_offers = [amount for info, amount in lcd.simulations if "native_token" in info]
    assert forward_offers == [Decimal(50_000_000)]
    assert engine.last_simulations[Direction.FORWARD].offer_amount == Decimal(50_000_000)

    swap = wallet.batches[0][1]
    assert swap.msg["swap"]["offer_asset"]["amount"] == "50000000"
    assert swap.coins[0].amount == Decimal(50_000_000)


def test_cache_is_empty_after_successful_submission(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    engine = build_engine(lcd)
    engine.start()

    asyncio.run(engine.execute())
    calls_after_cycle = lcd.balance_calls
    asyncio.run(engine.rates.get_wallet_balance())

    assert lcd.balance_calls == calls_after_cycle + 1


def test_failed_submission_clears_state_and_recovers(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    wallet = DummyWallet(error=BroadcastError("Transaction rejected", payload={"code": 5}))
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert len(wallet.batches) == 1
    assert engine.pending == []
    assert len(engine.cache) == 0
    assert engine.status is EngineStatus.IDLE
    assert any("failed" in m for m in engine.notifier.messages)

    calls_after_cycle = lcd.balance_calls
    asyncio.run(engine.rates.get_wallet_balance())
    assert lcd.balance_calls == calls_after_cycle + 1


def test_query_failure_aborts_cycle_without_raising(build_engine):
    lcd = DummyLcd(luna=Decimal(1000))
    lcd.fail_simulation = True
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    asyncio.run(engine.execute())

    assert wallet.batches == []
    assert engine.status is EngineStatus.IDLE
    assert len(engine.cache) == 0


def test_pause_during_cycle_wins(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()
    lcd.on_simulate = engine.pause

    asyncio.run(engine.execute())

    assert engine.status is EngineStatus.PAUSED
    assert wallet.batches == []

    # a later tick stays a no-op until the bot is resumed
    lcd.on_simulate = None
    submitted = len(wallet.batches)
    asyncio.run(engine.execute())
    assert len(wallet.batches) == submitted


def test_clear_cache_and_queue_are_idempotent(build_engine):
    engine = build_engine(DummyLcd(luna=Decimal(1000)))
    asyncio.run(engine.rates.get_wallet_balance())
    engine.queue(engine.builder.build_reverse(Decimal(10), Decimal(10)))

    engine.clear_cache()
    engine.clear_queue()
    once = (len(engine.cache), engine.pending)
    engine.clear_cache()
    engine.clear_queue()

    assert (len(engine.cache), engine.pending) == once == (0, [])


def test_balances_snapshot_reads_fresh_values(build_engine):
    lcd = DummyLcd(luna=Decimal(2_500_000), bluna=Decimal(1_000_000))
    engine = build_engine(lcd)

    first = asyncio.run(engine.get_balances_snapshot())
    lcd.luna = Decimal(3_000_000)
    second = asyncio.run(engine.get_balances_snapshot())

    assert first[NATIVE_DENOM].amount == Decimal(2_500_000)
    assert first[DERIVATIVE_DENOM].amount == Decimal(1_000_000)
    assert first[STABLE_DENOM].amount == Decimal(5_000_000)
    assert second[NATIVE_DENOM].amount == Decimal(3_000_000)


def test_format_balances_shows_whole_tokens(build_engine):
    engine = build_engine(DummyLcd(luna=Decimal(2_500_000), bluna=Decimal(0)))

    text = asyncio.run(engine.format_balances())

    assert "2.500 Luna" in text
    assert "0.000 bLuna" in text
    assert "5.000 KRW" in text


def test_info_reports_network_and_thresholds(build_engine):
    engine = build_engine(DummyLcd(), chain_id="pisco-1")

    message = engine.info()

    assert "Testnet" in message
    assert "terra1wallet" in message
    assert "<code>5%</code>" in message
    assert "<code>PAUSED</code>" in message
    assert engine.notifier.messages[-1] == message


class SlowTokenLcd(DummyLcd):
    """Forward quote fails at once while the bLuna balance read is still in flight."""

    async def get_token_balance(self, token, address, denom):
        await asyncio.sleep(0.01)
        return await super().get_token_balance(token, address, denom)

    async def simulate(self, pair, offer_info, amount):
        if "native_token" in offer_info:
            raise QueryError("LCD request to /cosmwasm/wasm/v1/contract failed: timeout")
        return await super().simulate(pair, offer_info, amount)


def test_failed_evaluation_leaves_no_cached_balance_behind(build_engine):
    lcd = SlowTokenLcd(luna=Decimal(1000), bluna=Decimal(1000))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet)
    engine.start()

    async def run():
        await engine.execute()
        # give any straggling evaluation time to finish
        await asyncio.sleep(0.05)

    asyncio.run(run())

    assert wallet.batches == []
    assert engine.status is EngineStatus.IDLE
    assert len(engine.cache) == 0
    assert lcd.token_balance_calls == 1


def test_swap_message_reports_rate_and_txhash(build_engine):
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    engine = build_engine(lcd)
    engine.start()

    asyncio.run(engine.execute())

    swapped = [m for m in engine.notifier.messages if m.startswith("Swapped")]
    assert len(swapped) == 1
    assert "@ 6.000%" in swapped[0]
    assert "ABCDEF" in swapped[0]


def test_swap_outcomes_are_written_to_audit_log(tmp_path, build_engine):
    path = tmp_path / "trades.csv"
    audit = AsyncAuditLogger(str(path))
    lcd = DummyLcd(luna=Decimal(1000), forward_ratio=Decimal("1.06"))
    wallet = DummyWallet()
    engine = build_engine(lcd, wallet, audit_log=audit)
    engine.start()

    async def run():
        await audit.start()
        await engine.execute()
        wallet.error = BroadcastError("Transaction rejected", payload="out of gas")
        await engine.execute()
        await audit.stop()

    asyncio.run(run())

    rows = list(csv.reader(path.read_text().splitlines()))
    assert rows[0] == TRADE_LOG_HEADER
    assert rows[1][1:] == ["FORWARD", "0.001000", "6.0000", "SUCCESS", "ABCDEF"]
    assert rows[2][1:] == ["FORWARD", "0.001000", "6.0000", "FAILED", "out of gas"]
    assert len(rows) == 3
