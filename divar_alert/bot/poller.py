"""
Telegram Update Poller
======================

Long-polls getUpdates and hands updates to the CommandRouter.

Updates from one batch are grouped by chat: each chat's updates run in
order inside one task, while different chats run in parallel on a thread
pool. A chat's next batch is not started before its previous task ends.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional

from .. import config
from ..alerts import TelegramAlerts
from .handlers import CommandRouter

logger = logging.getLogger(__name__)


class TelegramPoller:
    """Receives updates and dispatches them per chat."""

    def __init__(
        self,
        telegram: TelegramAlerts,
        router: CommandRouter,
        poll_timeout: int = config.TELEGRAM_POLL_TIMEOUT,
        max_workers: int = config.MAX_WORKERS,
    ):
        self.telegram = telegram
        self.router = router
        self.poll_timeout = poll_timeout
        self.max_workers = max_workers
        self._offset: Optional[int] = None
        self._pending: Dict[object, Future] = {}

    def _handle_chat(self, updates: List[dict]):
        for update in updates:
            try:
                self.router.handle_update(update)
            except Exception:
                logger.exception(f"Failed to handle update {update.get('update_id')}")

    def dispatch(self, updates: List[dict], executor: ThreadPoolExecutor):
        """Group `updates` by chat and submit one ordered task per chat."""
        by_chat: Dict[object, List[dict]] = {}
        for update in updates:
            by_chat.setdefault(self.router.chat_of(update), []).append(update)

        for chat_id, chat_updates in by_chat.items():
            previous = self._pending.get(chat_id)
            if previous is not None and not previous.done():
                previous.result()
            self._pending[chat_id] = executor.submit(self._handle_chat, chat_updates)

        self._pending = {k: f for k, f in self._pending.items() if not f.done()}

    def poll_once(self, executor: ThreadPoolExecutor, timeout: Optional[int] = None) -> int:
        """Fetch one batch and dispatch it. Returns the number of updates."""
        updates = self.telegram.get_updates(
            offset=self._offset,
            timeout=self.poll_timeout if timeout is None else timeout,
        )
        if not updates:
            return 0

        self._offset = max(u.get("update_id", 0) for u in updates) + 1
        self.dispatch(updates, executor)
        return len(updates)

    def run(self, stop_event: threading.Event):
        """Poll until `stop_event` is set, then wait for in-flight handlers."""
        logger.info("Telegram poller started")
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="handler") as executor:
            while not stop_event.is_set():
                try:
                    received = self.poll_once(executor)
                except Exception:
                    logger.exception("Unexpected error while polling updates")
                    received = 0
                if not received:
                    # get_updates already blocked for the long-poll window unless it failed fast
                    stop_event.wait(1)
        logger.info("Telegram poller stopped")
