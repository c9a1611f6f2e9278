"""
Record Key Scheme
=================

    watch:{owner_id}:{watch_id}        -> Watch JSON
    dedup:{watch_id}:{token}           -> first-seen unix time
    current-process:{owner_id}         -> active process kind
    process:{owner_id}:{kind}          -> ConversationState JSON

Prefixes end with ":" so owner 12 never matches owner 123.
"""

from typing import Optional

WATCH = "watch"
DEDUP = "dedup"
CURRENT_PROCESS = "current-process"
PROCESS = "process"


def _key(*parts) -> bytes:
    return ":".join(str(p) for p in parts).encode("utf-8")


def watch_key(owner_id: int, watch_id: int) -> bytes:
    return _key(WATCH, owner_id, watch_id)


def watch_prefix(owner_id: Optional[int] = None) -> bytes:
    if owner_id is None:
        return _key(WATCH) + b":"
    return _key(WATCH, owner_id) + b":"


def dedup_key(watch_id: int, token: str) -> bytes:
    return _key(DEDUP, watch_id, token)


def dedup_prefix(watch_id: int) -> bytes:
    return _key(DEDUP, watch_id) + b":"


def current_process_key(owner_id: int) -> bytes:
    return _key(CURRENT_PROCESS, owner_id)


def process_key(owner_id: int, kind: str) -> bytes:
    return _key(PROCESS, owner_id, kind)


def process_prefix(owner_id: int) -> bytes:
    return _key(PROCESS, owner_id) + b":"
