"""
Shared Data Models
==================

Dataclasses persisted in the key-value store or passed between components.
"""

from .listing import ListingItem
from .process import ConversationState, Step
from .watch import Watch

__all__ = [
    "ConversationState",
    "ListingItem",
    "Step",
    "Watch",
]
