# swapbot/notifier.py
import asyncio
import logging
from typing import Optional, Set

import aiohttp

TELEGRAM_API = "https://api.telegram.org"


class Notifier:
    """
    Best-effort message sink: console log plus an optional Telegram chat.

    `notify` never raises and never blocks. Telegram delivery runs in a
    background task with a bounded number of attempts; a message that still
    cannot be delivered is dropped.
    """
    def __init__(self, logger: logging.Logger, api_key: str = "", chat_id: str = "",
                 tty: bool = True, telegram: bool = True, retries: int = 5, backoff: float = 1.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.logger = logger
        self.api_key = api_key
        self.chat_id = chat_id
        self.tty = tty
        self.telegram = telegram and bool(api_key) and bool(chat_id)
        self.retries = retries
        self.backoff = backoff
        self._session = session
        self._owns_session = session is None
        self._tasks: Set[asyncio.Task] = set()

    def notify(self, message: str, rich: bool = False):
        if self.tty:
            self.logger.info(message)

        if not self.telegram:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop, Telegram notification skipped.")
            return

        task = loop.create_task(self._send_telegram(message, rich))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_telegram(self, message: str, rich: bool):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

        url = f"{TELEGRAM_API}/bot{self.api_key}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": message}
        if rich:
            payload["parse_mode"] = "HTML"

        for attempt in range(1, self.retries + 1):
            try:
                async with self._session.post(url, json=payload) as resp:
                    if resp.status < 400:
                        return
                    self.logger.debug(f"Telegram answered HTTP {resp.status} (attempt {attempt}/{self.retries})")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.debug(f"Telegram delivery failed: {e!r} (attempt {attempt}/{self.retries})")

            if attempt < self.retries:
                await asyncio.sleep(self.backoff * attempt)

        self.logger.debug("Telegram notification dropped after retries.")

    async def drain(self):
        """Waits for in-flight deliveries."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        await self.drain()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
