"""
Watch Model
===========

A stored recurring Divar search plus its delivery target and interval.
"""

from dataclasses import asdict, dataclass


@dataclass
class Watch:
    """
    A recurring query owned by one chat.

    last_checked_at is unix seconds; 0 means never checked, so a new watch
    is due on the first sweep.
    """
    owner_id: int
    title: str
    query: str          # opaque descriptor handed to the listing source
    interval: int       # seconds between checks, always > 0
    id: int = 0         # assigned by WatchStore.create
    last_checked_at: int = 0

    def is_due(self, now: float) -> bool:
        """Whether at least `interval` seconds passed since the last check."""
        return now - self.last_checked_at >= self.interval

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Watch":
        return cls(
            owner_id=int(data["owner_id"]),
            title=data["title"],
            query=data["query"],
            interval=int(data["interval"]),
            id=int(data.get("id", 0)),
            last_checked_at=int(data.get("last_checked_at", 0)),
        )
