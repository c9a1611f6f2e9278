"""Tests for the CommandRouter."""

import pytest

from divar_alert import messages
from divar_alert.bot import CommandRouter, ConversationEngine, build_set_alert_process
from divar_alert.models import Watch

SEARCH_CURL = "curl 'https://api.divar.ir/v8/postlist/w/search' --data-raw '{\"page\": 1}'"


@pytest.fixture
def router(context, watch_store, replies, clock):
    engine = ConversationEngine(context, clock=clock)
    engine.register(build_set_alert_process(watch_store))
    return CommandRouter(engine, watch_store, replies, display_timezone="Asia/Tehran")


def message(chat_id, text, update_id=1):
    return {"update_id": update_id, "message": {"chat": {"id": chat_id}, "text": text}}


def callback(chat_id, data, callback_id="cb-1"):
    return {
        "update_id": 2,
        "callback_query": {"id": callback_id, "data": data, "message": {"chat": {"id": chat_id}}},
    }


class TestCommands:
    """Tests for command routing."""

    def test_start_shows_help(self, router, replies):
        router.handle_update(message(1, "/start"))
        assert replies.last_text == messages.HELP

    def test_text_without_process(self, router, replies):
        router.handle_update(message(1, "سلام"))
        assert replies.last_text == messages.CHOOSE_COMMAND

    def test_unknown_command_without_process(self, router, replies):
        router.handle_update(message(1, "/whatever"))
        assert replies.last_text == messages.CHOOSE_COMMAND

    def test_update_without_text_is_ignored(self, router, replies):
        router.handle_update({"update_id": 3, "message": {"chat": {"id": 1}, "sticker": {}}})
        assert replies.messages == []

    def test_alert_set_conversation(self, router, replies, watch_store):
        router.handle_update(message(1, "/alertSet"))
        assert replies.last_text == messages.PROMPT_TITLE

        router.handle_update(message(1, "آپارتمان"))
        assert replies.last_text == messages.PROMPT_LINK

        router.handle_update(message(1, "https://divar.ir/s/tehran"))
        assert replies.last_text == messages.INVALID_LINK

        router.handle_update(message(1, SEARCH_CURL))
        assert replies.last_text == messages.PROMPT_INTERVAL

        router.handle_update(message(1, "abc"))
        assert replies.last_text == messages.INVALID_INTERVAL

        router.handle_update(message(1, "120"))
        assert replies.last_text == messages.ALERT_SET_DONE

        [watch] = watch_store.list(1)
        assert (watch.title, watch.interval) == ("آپارتمان", 120)

        router.handle_update(message(1, "more text"))
        assert replies.last_text == messages.CHOOSE_COMMAND

    def test_command_with_bot_suffix(self, router, replies):
        router.handle_update(message(1, "/alertSet@DivarAlertBot"))
        assert replies.last_text == messages.PROMPT_TITLE

    def test_alert_set_restarts(self, router, replies, context):
        router.handle_update(message(1, "/alertSet"))
        router.handle_update(message(1, "first"))
        router.handle_update(message(1, "/alertSet"))
        assert replies.last_text == messages.PROMPT_TITLE
        assert router.engine.current(1).value_of("title") == ""

    def test_cancel(self, router, replies):
        router.handle_update(message(1, "/alertSet"))
        router.handle_update(message(1, "/cancel"))
        assert replies.last_text == messages.CANCELLED

        router.handle_update(message(1, "/cancel"))
        assert replies.last_text == messages.NOTHING_TO_CANCEL


class TestAlertList:
    """Tests for listing and deleting watches."""

    def test_empty_list(self, router, replies):
        router.handle_update(message(1, "/alertList"))
        assert replies.last_text == messages.NO_ALERTS

    def test_list_has_delete_buttons(self, router, replies, watch_store):
        first = watch_store.create(Watch(owner_id=1, title="flat", query="q", interval=60))
        second = watch_store.create(Watch(owner_id=1, title="car", query="q", interval=30))
        second.last_checked_at = 1_700_000_000
        watch_store.update_checkpoint(second)
        watch_store.create(Watch(owner_id=2, title="not mine", query="q", interval=5))

        router.handle_update(message(1, "/alertList"))

        _, text, markup = replies.messages[-1]
        assert messages.ALERT_LINE.format(index=1, title="flat", interval=60) in text
        assert messages.ALERT_LINE.format(index=2, title="car", interval=30) in text
        assert messages.NEVER_CHECKED in text
        # 2023-11-14 22:13:20 UTC is 01:43 next day in Tehran
        assert messages.LAST_CHECKED.format(time="2023-11-15 01:43") in text
        assert "not mine" not in text
        assert markup == {"inline_keyboard": [
            [{"text": messages.DELETE_BUTTON.format(title="flat"), "callback_data": f"delete_alert-{first.id}"}],
            [{"text": messages.DELETE_BUTTON.format(title="car"), "callback_data": f"delete_alert-{second.id}"}],
        ]}

    def test_delete_callback(self, router, replies, watch_store):
        watch = watch_store.create(Watch(owner_id=1, title="flat", query="q", interval=60))

        router.handle_update(callback(1, f"delete_alert-{watch.id}"))

        assert replies.answered == ["cb-1"]
        assert replies.last_text == messages.ALERT_DELETED
        assert watch_store.list(1) == []

    def test_delete_is_scoped_to_chat(self, router, watch_store):
        watch = watch_store.create(Watch(owner_id=1, title="flat", query="q", interval=60))
        router.handle_update(callback(2, f"delete_alert-{watch.id}"))
        assert watch_store.get(1, watch.id) is not None

    def test_bad_callback_id(self, router, replies):
        router.handle_update(callback(1, "delete_alert-abc"))
        assert replies.answered == ["cb-1"]
        assert replies.last_text == messages.ERR_DELETE_ALERT

    def test_unknown_callback_is_answered_only(self, router, replies):
        router.handle_update(callback(1, "something-else"))
        assert replies.answered == ["cb-1"]
        assert replies.messages == []


class TestChatOf:
    """Tests for update-to-chat mapping."""

    def test_message_and_callback(self, router):
        assert router.chat_of(message(5, "x")) == 5
        assert router.chat_of(callback(6, "y")) == 6
        assert router.chat_of({"update_id": 1}) is None
