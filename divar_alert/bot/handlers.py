"""
Command Router
==============

Maps Telegram updates to bot actions:

    /start                  -> help
    /alertSet               -> start SET_ALERT conversation
    /alertList              -> list watches with one delete button each
    /cancel                 -> drop running conversation
    delete_alert-{id}       -> (callback) delete a watch
    any other text          -> input for the running conversation
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

import pytz

from .. import config, messages
from ..db import WatchStore
from ..errors import NotActiveError, StorageError, ValidationError
from ..models import Watch
from .process import ConversationEngine, ProcessKind

logger = logging.getLogger(__name__)


class ReplyChannel(Protocol):
    """What the router needs from the transport."""

    def send_message(self, chat_id: int, text: str, reply_markup: Optional[dict] = None) -> Optional[int]:
        ...

    def answer_callback_query(self, callback_query_id: str) -> bool:
        ...


def _command_of(text: str) -> Optional[str]:
    """'/alertSet@SomeBot extra' -> '/alertSet'; None for plain text."""
    if not text.startswith("/"):
        return None
    return text.split()[0].split("@")[0]


class CommandRouter:
    """Dispatches updates for all chats; safe to call from several threads."""

    def __init__(
        self,
        engine: ConversationEngine,
        watch_store: WatchStore,
        replies: ReplyChannel,
        display_timezone: str = config.DISPLAY_TIMEZONE,
    ):
        self.engine = engine
        self.watch_store = watch_store
        self.replies = replies
        self.tz = pytz.timezone(display_timezone)

    def chat_of(self, update: dict) -> Optional[int]:
        """Chat id an update belongs to, used to keep per-chat ordering."""
        if "message" in update:
            return (update["message"].get("chat") or {}).get("id")
        if "callback_query" in update:
            message = update["callback_query"].get("message") or {}
            return (message.get("chat") or {}).get("id")
        return None

    def handle_update(self, update: dict):
        if "callback_query" in update:
            self.handle_callback(update["callback_query"])
            return

        message = update.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")
        text = message.get("text")
        if chat_id is None or text is None:
            logger.debug(f"Ignoring update {update.get('update_id')} without text")
            return
        self.handle_message(chat_id, text)

    def handle_message(self, chat_id: int, text: str):
        command = _command_of(text)

        if command == messages.CMD_ALERT_SET:
            self._alert_set(chat_id)
        elif command == messages.CMD_ALERT_LIST:
            self._alert_list(chat_id)
        elif command == messages.CMD_CANCEL:
            self._cancel(chat_id)
        elif command == messages.CMD_START:
            self.replies.send_message(chat_id, messages.HELP)
        else:
            self._continue(chat_id, text)

    def handle_callback(self, callback_query: dict):
        self.replies.answer_callback_query(callback_query.get("id"))

        data = callback_query.get("data") or ""
        chat_id = ((callback_query.get("message") or {}).get("chat") or {}).get("id")
        if chat_id is None or not data.startswith(messages.DELETE_CALLBACK_PREFIX):
            logger.debug(f"Ignoring callback {data!r}")
            return

        try:
            watch_id = int(data[len(messages.DELETE_CALLBACK_PREFIX):])
        except ValueError:
            logger.error(f"Failed to parse watch id from callback {data!r}")
            self.replies.send_message(chat_id, messages.ERR_DELETE_ALERT)
            return

        try:
            self.watch_store.delete(chat_id, watch_id)
        except StorageError as e:
            logger.error(f"Failed to delete watch {watch_id} of {chat_id}: {e}")
            self.replies.send_message(chat_id, messages.ERR_DELETE_ALERT)
            return

        self.replies.send_message(chat_id, messages.ALERT_DELETED)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _alert_set(self, chat_id: int):
        try:
            prompt = self.engine.start(ProcessKind.SET_ALERT, chat_id)
        except StorageError as e:
            logger.error(f"Failed to start alert process for {chat_id}: {e}")
            self.replies.send_message(chat_id, messages.ERR_START_PROCESS)
            return
        self.replies.send_message(chat_id, prompt)

    def _alert_list(self, chat_id: int):
        try:
            watches = self.watch_store.list(chat_id)
        except StorageError as e:
            logger.error(f"Failed to list watches for {chat_id}: {e}")
            self.replies.send_message(chat_id, messages.ERR_LIST_ALERTS)
            return

        if not watches:
            self.replies.send_message(chat_id, messages.NO_ALERTS)
            return

        text, keyboard = self.render_watch_list(watches)
        self.replies.send_message(chat_id, text, reply_markup=keyboard)

    def _cancel(self, chat_id: int):
        try:
            cancelled = self.engine.cancel(chat_id)
        except StorageError as e:
            logger.error(f"Failed to cancel process for {chat_id}: {e}")
            self.replies.send_message(chat_id, messages.ERR_CONTINUE_PROCESS)
            return
        self.replies.send_message(chat_id, messages.CANCELLED if cancelled else messages.NOTHING_TO_CANCEL)

    def _continue(self, chat_id: int, text: str):
        try:
            reply = self.engine.advance(chat_id, text)
        except NotActiveError:
            reply = messages.CHOOSE_COMMAND
        except ValidationError as e:
            reply = str(e)
        except StorageError as e:
            logger.error(f"Failed to go to next step for {chat_id}: {e}")
            reply = messages.ERR_CONTINUE_PROCESS
        self.replies.send_message(chat_id, reply)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _format_checked(self, watch: Watch) -> str:
        if not watch.last_checked_at:
            return messages.NEVER_CHECKED
        local = datetime.fromtimestamp(watch.last_checked_at, self.tz)
        return messages.LAST_CHECKED.format(time=local.strftime("%Y-%m-%d %H:%M"))

    def render_watch_list(self, watches: List[Watch]) -> Tuple[str, dict]:
        """Numbered watch list plus an inline keyboard with one delete button per watch."""
        lines = []
        keyboard = []
        for index, watch in enumerate(watches, start=1):
            lines.append(messages.ALERT_LINE.format(index=index, title=watch.title, interval=watch.interval))
            lines.append(f"   {self._format_checked(watch)}")
            keyboard.append([{
                "text": messages.DELETE_BUTTON.format(title=watch.title),
                "callback_data": f"{messages.DELETE_CALLBACK_PREFIX}{watch.id}",
            }])
        return "\n".join(lines), {"inline_keyboard": keyboard}
