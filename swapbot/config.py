# swapbot/config.py
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .models import MICRO_MULTIPLIER

MAINNET_CHAIN_ID = "phoenix-1"


@dataclass(slots=True)
class BotConfig:
    """
    Typed view of config.yaml.

    Thresholds and max spread are percentages. `max_token_per_swap` is in whole
    tokens and 0 disables the cap. Secrets (mnemonic, Telegram key/chat) fall back
    to the MNEMONIC, BOT_API_KEY and BOT_CHAT_ID environment variables.
    """
    lcd_url: str
    chain_id: str
    mnemonic: str
    pair_address: str
    bluna_token_address: str
    swap_threshold_pct: Decimal
    reverse_swap_threshold_pct: Decimal
    max_spread_pct: Decimal = Decimal("1")
    max_token_per_swap: Decimal = Decimal("0")
    poll_interval_seconds: float = 10.0
    gas_prices: Dict[str, str] = field(default_factory=lambda: {"uluna": "0.15"})
    telegram_api_key: str = ""
    telegram_chat_id: str = ""
    notify_tty: bool = True
    notify_telegram: bool = True
    trade_log: str = "logs/trades.csv"
    log_level: str = "INFO"
    network_timeout_seconds: float = 10.0

    @property
    def is_mainnet(self) -> bool:
        return self.chain_id == MAINNET_CHAIN_ID

    @property
    def telegram_enabled(self) -> bool:
        return self.notify_telegram and bool(self.telegram_api_key) and bool(self.telegram_chat_id)

    def validate(self) -> "BotConfig":
        """
        Startup checks. Any failure here must stop the process before the loop starts.
        """
        if len(self.mnemonic.split()) != 24:
            raise ConfigError("Invalid mnemonic key provided.")

        if not self.lcd_url.startswith("https://"):
            raise ConfigError("Invalid LCD URL provided.")

        if len(self.chain_id.split("-")) != 2:
            raise ConfigError("Invalid CHAIN ID provided.")

        if not self.pair_address or not self.bluna_token_address:
            raise ConfigError("Both contracts.pair and contracts.bluna_token must be set.")

        if self.max_spread_pct < 0:
            raise ConfigError("rate.max_spread cannot be negative.")

        if self.max_token_per_swap < 0:
            raise ConfigError("max_token_per_swap cannot be negative (use 0 for unlimited).")

        # a cap below one micro unit would round to 0, which means "unlimited"
        if 0 < self.max_token_per_swap * MICRO_MULTIPLIER < 1:
            raise ConfigError(f"max_token_per_swap {self.max_token_per_swap} is below the smallest on-chain unit.")

        if self.network_timeout_seconds <= 0:
            raise ConfigError("network_timeout_seconds must be positive.")

        if self.poll_interval_seconds <= 0:
            raise ConfigError("poll_interval_seconds must be positive.")

        return self

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BotConfig":
        rate = raw.get("rate") or {}
        contracts = raw.get("contracts") or {}
        telegram = raw.get("telegram") or {}
        notification = raw.get("notification") or {}
        audit = raw.get("audit") or {}

        return cls(
            lcd_url=str(raw.get("lcd_url") or os.getenv("LCD_URL", "")),
            chain_id=str(raw.get("chain_id") or os.getenv("CHAIN_ID", "")),
            mnemonic=str(raw.get("mnemonic") or os.getenv("MNEMONIC", "")),
            pair_address=str(contracts.get("pair") or os.getenv("PAIR_TOKEN_ADDRESS", "")),
            bluna_token_address=str(contracts.get("bluna_token") or os.getenv("BLUNA_TOKEN_ADDRESS", "")),
            swap_threshold_pct=_decimal(rate, "swap", required=True),
            reverse_swap_threshold_pct=_decimal(rate, "reverse_swap", required=True),
            # 0 or missing means "use the 1% default"
            max_spread_pct=_decimal(rate, "max_spread") or Decimal("1"),
            max_token_per_swap=_decimal(raw, "max_token_per_swap") or Decimal("0"),
            poll_interval_seconds=_float(raw, "poll_interval_seconds", 10.0),
            gas_prices={k: str(v) for k, v in (raw.get("gas_prices") or {"uluna": "0.15"}).items()},
            telegram_api_key=str(telegram.get("api_key") or os.getenv("BOT_API_KEY", "")),
            telegram_chat_id=str(telegram.get("chat_id") or os.getenv("BOT_CHAT_ID", "")),
            notify_tty=bool(notification.get("tty", True)),
            notify_telegram=bool(notification.get("telegram", True)),
            trade_log=str(audit.get("trade_log", "logs/trades.csv")),
            log_level=str(raw.get("log_level", "INFO")).upper(),
            network_timeout_seconds=_float(raw, "network_timeout_seconds", 10.0),
        )


def _decimal(section: Dict[str, Any], key: str, required: bool = False) -> Optional[Decimal]:
    value = section.get(key)
    if value is None or value == "":
        if required:
            raise ConfigError(f"Missing required setting '{key}'.")
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"Setting '{key}' must be a number, got {value!r}.") from None


def _float(section: Dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Setting '{key}' must be a number, got {value!r}.") from None


def load_config(path: str = "config.yaml") -> BotConfig:
    """Reads the YAML file at `path` and returns a validated BotConfig."""
    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from None

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")

    return BotConfig.from_dict(raw).validate()
