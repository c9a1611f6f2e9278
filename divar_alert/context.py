"""
Application Context
===================

Explicit handles shared by the components. Every component receives the
context in its constructor; there are no module-level store or transport
singletons.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from .db.kv_store import KeyValueStore
from .models import ListingItem


class ListingSource(Protocol):
    """Fetches candidate items for a query descriptor, newest first."""

    def fetch(self, query: str) -> List[ListingItem]:
        """Raises SourceError on transport or parse failure."""
        ...


class NotificationSink(Protocol):
    """Delivers one rendered message. Returns a message id, or None on failure."""

    def send(self, destination: int, image_ref: Optional[str], text: str) -> Optional[int]:
        ...


@dataclass
class AppContext:
    """Store, sink and source handles for one running bot."""
    store: KeyValueStore
    sink: NotificationSink
    source: ListingSource
