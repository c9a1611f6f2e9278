"""
Bot Package
===========

Chat-side of the alert bot.

Components:
- process.py: ConversationEngine (resumable multi-step input per chat)
- set_alert.py: SET_ALERT process definition (creates watches)
- handlers.py: CommandRouter (commands, callbacks, conversation input)
- poller.py: TelegramPoller (getUpdates loop, per-chat ordering)
"""

from .handlers import CommandRouter
from .poller import TelegramPoller
from .process import ConversationEngine, ProcessDefinition, ProcessKind
from .set_alert import build_set_alert_process

__all__ = [
    "CommandRouter",
    "ConversationEngine",
    "ProcessDefinition",
    "ProcessKind",
    "TelegramPoller",
    "build_set_alert_process",
]
