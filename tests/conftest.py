"""Pytest fixtures shared by the bot tests."""

import pytest

from divar_alert.context import AppContext
from divar_alert.db import KeyValueStore, WatchStore
from divar_alert.errors import SourceError
from divar_alert.models import ListingItem


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSource:
    """Listing source returning canned items per query (newest first)."""

    def __init__(self):
        self.results = {}
        self.failing = set()
        self.calls = []

    def set_items(self, query, tokens):
        self.results[query] = [
            ListingItem(token=t, title=f"post {t}", image_url=f"https://img/{t}.jpg")
            for t in tokens
        ]

    def fetch(self, query):
        self.calls.append(query)
        if query in self.failing:
            raise SourceError("boom")
        return list(self.results.get(query, []))


class FakeSink:
    """Notification sink recording deliveries."""

    def __init__(self):
        self.sent = []
        self.fail_containing = set()

    def send(self, destination, image_ref, text):
        if any(marker in text for marker in self.fail_containing):
            return None
        self.sent.append((destination, image_ref, text))
        return len(self.sent)


class FakeReplies:
    """Reply channel recording outgoing bot messages."""

    def __init__(self):
        self.messages = []
        self.answered = []

    def send_message(self, chat_id, text, reply_markup=None):
        self.messages.append((chat_id, text, reply_markup))
        return len(self.messages)

    def answer_callback_query(self, callback_query_id):
        self.answered.append(callback_query_id)
        return True

    @property
    def last_text(self):
        return self.messages[-1][1]


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(tmp_path / "test.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def replies():
    return FakeReplies()


@pytest.fixture
def context(store, sink, source):
    return AppContext(store=store, sink=sink, source=source)


@pytest.fixture
def watch_store(context):
    return WatchStore(context)
