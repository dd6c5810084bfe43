# main.py
import argparse
import asyncio
import sys

import questionary
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from swapbot import __version__
from swapbot.cache import SimulationCache
from swapbot.config import BotConfig, load_config
from swapbot.engine import ExecutionEngine
from swapbot.errors import ConfigError
from swapbot.lcd import LcdClient
from swapbot.logger import AsyncAuditLogger, setup_console_logger
from swapbot.messages import SwapMessageBuilder
from swapbot.models import Direction, EngineStatus
from swapbot.notifier import Notifier
from swapbot.rates import RateEvaluator

STATUS_STYLES = {
    EngineStatus.IDLE: "green",
    EngineStatus.RUNNING: "yellow",
    EngineStatus.PAUSED: "red",
}

# --- UI HELPER FUNCTIONS ---

def generate_dashboard(engine: ExecutionEngine):
    """
    Live panel: last evaluated rate per direction against its threshold,
    engine status and the outcome of the last swap.
    """
    rate_table = Table(title="📡 Pool Simulation")
    rate_table.add_column("Direction", style="cyan")
    rate_table.add_column("Offer", justify="right")
    rate_table.add_column("Rate", justify="right", style="green")
    rate_table.add_column("Threshold", justify="right")

    thresholds = {
        Direction.FORWARD: engine.cfg.swap_threshold_pct,
        Direction.REVERSE: engine.cfg.reverse_swap_threshold_pct,
    }
    for direction in Direction:
        sim = engine.last_simulations.get(direction)
        if sim is None:
            rate_table.add_row(direction.value, "-", "-", f"{thresholds[direction]}%")
            continue
        rate_table.add_row(direction.value, f"{sim.offer_amount / 1_000_000:,.3f}",
                           f"{sim.percentage:.3f}%", f"{thresholds[direction]}%")

    style = STATUS_STYLES[engine.status]
    status_text = f"[bold {style}]{engine.status.value}[/bold {style}]"
    if engine.last_trade:
        status_text += f"  |  last swap: {engine.last_trade}"

    layout = Layout()
    layout.split_column(Layout(name="top"), Layout(name="bottom"))
    layout["top"].update(Panel(rate_table))
    layout["bottom"].update(Panel(status_text, style="white on blue"))
    layout["bottom"].size = 3
    return layout

# --- MAIN CONTROLLER ---

class SwapBotApp:
    def __init__(self, config: BotConfig):
        # imported here so the rest of the package works without the chain extra
        from swapbot.wallet import TerraWallet

        self.config = config
        self.logger = setup_console_logger("SwapBot", config.log_level)
        self.audit_log = AsyncAuditLogger(config.trade_log)
        self.notifier = Notifier(self.logger, config.telegram_api_key, config.telegram_chat_id,
                                 tty=config.notify_tty, telegram=config.notify_telegram)

        self.wallet = TerraWallet(config.lcd_url, config.chain_id, config.mnemonic, config.gas_prices, self.logger)
        self.lcd = LcdClient(config.lcd_url, self.logger, timeout=config.network_timeout_seconds)

        cache = SimulationCache()
        rates = RateEvaluator(self.lcd, cache, self.wallet.address, config.pair_address,
                              config.bluna_token_address, self.logger,
                              max_token_per_swap=config.max_token_per_swap)
        builder = SwapMessageBuilder(self.wallet.address, config.pair_address,
                                     config.bluna_token_address, config.max_spread_pct)
        self.engine = ExecutionEngine(config, cache, rates, builder, self.wallet, self.notifier,
                                      self.logger, audit_log=self.audit_log)

    async def run(self, start_paused: bool):
        try:
            await self.audit_log.start()
            await self.lcd.start()
            self.engine.info()
            if not start_paused:
                self.engine.start()

            console = Console()
            with Live(generate_dashboard(self.engine), console=console, refresh_per_second=4) as live:
                await self.engine.run_loop(
                    self.config.poll_interval_seconds,
                    on_cycle=lambda engine: live.update(generate_dashboard(engine)),
                )
        finally:
            print("Shutting down resources...")
            await self.audit_log.stop()
            await self.notifier.shutdown()
            await self.lcd.shutdown()
            await self.wallet.shutdown()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=f"Luna <> bLuna swap bot v{__version__}")
    parser.add_argument("--config", default="config.yaml", help="Path to the YAML configuration")
    parser.add_argument("--yes", action="store_true", help="Start swapping without asking")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        start_now = args.yes or questionary.confirm(
            f"Start swapping on {config.chain_id} now? (No = start paused)", default=False).ask()
        app = SwapBotApp(config)
        try:
            import uvloop
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass
        asyncio.run(app.run(start_paused=not start_now))
    except KeyboardInterrupt:
        print("\n🛑 Bot Stopped by User.")
        sys.exit()
