"""
SET_ALERT Process
=================

Collects title, Divar search link and check interval, then creates the
watch in the same transaction that closes the conversation.
"""

import logging
from typing import List, Optional

from .. import messages
from ..api.divar import parse_search_request
from ..db import WatchStore
from ..db.kv_store import Transaction
from ..errors import ValidationError
from ..models import ConversationState, Watch
from .process import ProcessDefinition, ProcessKind

logger = logging.getLogger(__name__)

STEPS = [
    ("title", messages.PROMPT_TITLE),
    ("link", messages.PROMPT_LINK),
    ("interval", messages.PROMPT_INTERVAL),
    ("end", messages.ALERT_SET_DONE),
]


def validate_title(text: str) -> str:
    title = (text or "").strip()
    if not title:
        raise ValidationError(messages.INVALID_TITLE)
    return title


def validate_interval(text: str) -> str:
    """Positive whole number of seconds; Persian/Arabic digits are accepted."""
    try:
        interval = int((text or "").strip())
    except ValueError:
        raise ValidationError(messages.INVALID_INTERVAL)
    if interval <= 0:
        raise ValidationError(messages.INVALID_INTERVAL)
    return str(interval)


def make_link_validator(allowed_hosts: Optional[List[str]] = None):
    def validate_link(text: str) -> str:
        descriptor = (text or "").strip()
        parse_search_request(descriptor, allowed_hosts)
        return descriptor
    return validate_link


def build_set_alert_process(
    watch_store: WatchStore,
    allowed_hosts: Optional[List[str]] = None,
) -> ProcessDefinition:
    """
    Create the SET_ALERT definition bound to a WatchStore.

    Args:
        watch_store: Store the completed watch is written to
        allowed_hosts: Override for the Divar host allow-list

    Returns:
        ProcessDefinition ready for ConversationEngine.register
    """

    def on_complete(state: ConversationState, txn: Transaction):
        watch = Watch(
            owner_id=state.owner_id,
            title=state.value_of("title"),
            query=state.value_of("link"),
            interval=int(validate_interval(state.value_of("interval"))),
        )
        watch_store.create(watch, txn=txn)

    return ProcessDefinition(
        kind=ProcessKind.SET_ALERT,
        steps=STEPS,
        on_complete=on_complete,
        validators={
            "title": validate_title,
            "link": make_link_validator(allowed_hosts),
            "interval": validate_interval,
        },
    )
