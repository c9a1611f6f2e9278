"""
Alert Bot Service
=================

Wires the components together and runs the two activities:

- Scheduler thread: sweeps due watches forever (DedupPollingScheduler)
- Main thread: long-polls Telegram updates (TelegramPoller)

Both stop on SIGINT/SIGTERM through a shared threading.Event.
"""

import logging
import signal
import threading
from pathlib import Path
from typing import Optional, Union

from . import config
from .alerts import TelegramAlerts
from .api import DivarClient
from .bot import CommandRouter, ConversationEngine, TelegramPoller, build_set_alert_process
from .context import AppContext
from .db import KeyValueStore, WatchStore
from .monitor import DedupPollingScheduler

logger = logging.getLogger(__name__)


class AlertBotService:
    """
    Divar alert bot: conversation handling plus background polling.

    Built from an explicit AppContext; nothing is read from module globals
    after construction.
    """

    def __init__(
        self,
        context: AppContext,
        telegram: Optional[TelegramAlerts] = None,
        sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
    ):
        """
        Initialize the service.

        Args:
            context: Store, sink and source handles
            telegram: Transport for inbound updates and replies; when None
                only the scheduler runs
            sweep_interval: Pause between scheduler sweeps (seconds)
        """
        self.context = context
        self.stop_event = threading.Event()

        self.watch_store = WatchStore(context)
        self.engine = ConversationEngine(context)
        self.engine.register(build_set_alert_process(self.watch_store))
        self.scheduler = DedupPollingScheduler(context, self.watch_store, sweep_interval=sweep_interval)

        self.poller = None
        if telegram is not None:
            router = CommandRouter(self.engine, self.watch_store, telegram)
            self.poller = TelegramPoller(telegram, router)

        self._scheduler_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        db_path: Union[str, Path] = config.DB_PATH,
        dry_run: bool = False,
        sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
    ) -> "AlertBotService":
        """
        Build the service from configuration.

        Raises:
            StorageError: If the database cannot be opened
        """
        store = KeyValueStore(db_path)
        telegram = TelegramAlerts.from_env(dry_run=dry_run)
        context = AppContext(store=store, sink=telegram, source=DivarClient())

        # Without a token there is nothing to poll; dry runs still sweep
        inbound = telegram if config.TELEGRAM_BOT_TOKEN else None
        return cls(context, telegram=inbound, sweep_interval=sweep_interval)

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received, stopping bot...")
        self.stop_event.set()

    def start_scheduler(self):
        """Start the sweep loop on a background thread."""
        self._scheduler_thread = threading.Thread(
            target=self.scheduler.run,
            args=(self.stop_event,),
            daemon=True,
            name="DedupPollingScheduler",
        )
        self._scheduler_thread.start()

    def stop(self, timeout: float = 10.0):
        self.stop_event.set()
        if self._scheduler_thread is not None:
            self._scheduler_thread.join(timeout)

    def run(self):
        """Run until a shutdown signal arrives."""
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

        self.start_scheduler()
        try:
            if self.poller is not None:
                self.poller.run(self.stop_event)
            else:
                logger.warning("No Telegram token configured, running scheduler only")
                self.stop_event.wait()
        finally:
            self.stop()
        logger.info("Bot stopped")
