"""
Dedup Polling Scheduler
=======================

Periodic sweep over due watches:

    list_due -> fetch (newest first) -> reverse -> drop seen tokens
             -> render + send each new post -> mark seen + checkpoint

Delivery is best effort: a post whose send fails is still marked seen and
is not retried. Dedup records and the checkpoint are committed together
after the sends, so a crash mid-watch replays that watch's new posts on the
next run (at-least-once) instead of losing them.

A fetch failure leaves the checkpoint untouched, so the watch is retried on
the next sweep.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .. import config, messages
from ..context import AppContext
from ..db import DedupLedger, WatchStore
from ..errors import DeliveryError, SourceError, StorageError
from ..models import ListingItem, Watch

logger = logging.getLogger(__name__)


def render_post(watch: Watch, item: ListingItem) -> str:
    """Notification text for one new post."""
    lines = [messages.NEW_POST_HEADER.format(title=watch.title), ""]
    body = [
        item.title,
        item.top_description,
        item.bottom_description,
        item.middle_description,
    ]
    lines.extend(line for line in body if line)
    lines.append("")
    lines.append(config.DIVAR_POST_URL.format(token=item.token))
    return "\n".join(lines)


@dataclass
class SweepStats:
    """Counters for one sweep."""
    due: int = 0
    checked: int = 0
    fetch_failures: int = 0
    storage_failures: int = 0
    new_items: int = 0
    delivered: int = 0
    delivery_failures: int = 0


class DedupPollingScheduler:
    """
    Polls due watches and notifies owners about posts they have not seen.

    Runs on its own thread via run(stop_event); each loop iteration is one
    sweep followed by a fixed pause.
    """

    def __init__(
        self,
        context: AppContext,
        watch_store: WatchStore,
        sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the scheduler.

        Args:
            context: Store, sink and source handles
            watch_store: Watch persistence
            sweep_interval: Pause between sweeps (seconds)
            clock: Wall-clock source, unix seconds
        """
        self.store = context.store
        self.source = context.source
        self.sink = context.sink
        self.watch_store = watch_store
        self.dedup = DedupLedger(context)
        self.sweep_interval = sweep_interval
        self._clock = clock

    def run(self, stop_event: threading.Event):
        """Sweep until `stop_event` is set."""
        logger.info(f"Scheduler started (sweep interval {self.sweep_interval}s)")
        while not stop_event.is_set():
            try:
                stats = self.sweep()
                if stats.due:
                    logger.info(
                        f"Sweep done: {stats.checked}/{stats.due} watches checked, "
                        f"{stats.new_items} new posts, {stats.delivered} delivered, "
                        f"{stats.fetch_failures} fetch failures"
                    )
            except StorageError as e:
                logger.error(f"Sweep aborted, store unavailable: {e}")
            except Exception:
                logger.exception("Unexpected error during sweep")

            stop_event.wait(self.sweep_interval)
        logger.info("Scheduler stopped")

    def sweep(self, now: Optional[float] = None) -> SweepStats:
        """
        Check every due watch once.

        Args:
            now: Due-check reference time (default: clock)

        Returns:
            SweepStats for this pass

        Raises:
            StorageError: If the due watches cannot be listed
        """
        now = self._clock() if now is None else now
        stats = SweepStats()

        due = self.watch_store.list_due(now)
        stats.due = len(due)

        for watch in due:
            try:
                self._check_watch(watch, stats)
            except StorageError as e:
                stats.storage_failures += 1
                logger.error(f"Store failure while checking watch {watch.id} '{watch.title}': {e}")

        return stats

    def _check_watch(self, watch: Watch, stats: SweepStats):
        logger.debug(f"Checking for new posts for watch {watch.id} '{watch.title}'")

        try:
            items = self.source.fetch(watch.query)
        except SourceError as e:
            stats.fetch_failures += 1
            logger.error(f"Failed to search for watch {watch.id} '{watch.title}': {e}")
            return

        # Source order is newest first; notify oldest first
        items = list(reversed(items))
        by_token = {}
        for item in items:
            by_token.setdefault(item.token, item)
        fresh = [by_token[token] for token in self.dedup.unseen(watch.id, [i.token for i in items])]

        if not fresh:
            logger.debug(f"No new posts for watch {watch.id} '{watch.title}'")

        for item in fresh:
            stats.new_items += 1
            try:
                self._deliver(watch, item)
                stats.delivered += 1
            except Exception as e:
                stats.delivery_failures += 1
                logger.error(f"Failed to deliver post {item.token} for watch {watch.id}: {e}")

        checked_at = int(self._clock())
        with self.store.transaction() as txn:
            if self.watch_store.get(watch.owner_id, watch.id, txn=txn) is None:
                logger.info(f"Watch {watch.id} was deleted during the sweep, dropping its results")
                return
            for item in fresh:
                self.dedup.mark(watch.id, item.token, txn=txn, now=checked_at)
            watch.last_checked_at = checked_at
            self.watch_store.update_checkpoint(watch, txn=txn)

        stats.checked += 1

    def _deliver(self, watch: Watch, item: ListingItem):
        text = render_post(watch, item)
        message_id = self.sink.send(watch.owner_id, item.image_url, text)
        if message_id is None:
            raise DeliveryError(f"sink refused post {item.token}")
        logger.info(f"Sent post {item.token} to {watch.owner_id} for watch '{watch.title}'")
