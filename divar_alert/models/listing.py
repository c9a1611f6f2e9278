"""
Listing Models
==============

Minimal projection of a Divar post-list widget. Only the fields the alert
message needs are kept; everything else in the upstream payload is ignored.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ListingItem:
    """A candidate post returned by the listing source."""
    token: str
    title: str = ""
    top_description: str = ""
    middle_description: str = ""
    bottom_description: str = ""
    image_url: Optional[str] = None
    sort_date: Optional[str] = None  # recency signal, informational only
