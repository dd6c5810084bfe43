# swapbot/logger.py
import asyncio
import logging
import os
import sys
from typing import Any, List, Optional

import aiofiles
from aiocsv import AsyncWriter

TRADE_LOG_HEADER = ["timestamp", "direction", "amount", "percentage", "outcome", "detail"]


class AsyncAuditLogger:
    """
    Append-only CSV record of every swap attempt.
    Rows are queued and written by a background task so disk I/O never
    delays a cycle.
    """
    def __init__(self, filepath: str):
        self.filepath = filepath
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    async def start(self):
        """
        Creates the file (with a header row when new) and starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        is_new = not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0
        if is_new:
            async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(TRADE_LOG_HEADER)

        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_trade(self, data: List[Any]):
        """
        Non-blocking call to add a trade record to the queue.
        """
        await self._queue.put(data)

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except Exception as e:
                # disk problems must not stop trading
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()

    async def stop(self):
        """Flushes queued rows and stops the writer."""
        if self._worker_task is None:
            return
        await self._queue.join()
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None


def setup_console_logger(name: str, level: str):
    """
    Sets up the standard Python logger for console output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
