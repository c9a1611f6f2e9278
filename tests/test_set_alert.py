"""Tests for the SET_ALERT process."""

import pytest

from divar_alert import messages
from divar_alert.bot import ConversationEngine, ProcessKind, build_set_alert_process
from divar_alert.bot.set_alert import validate_interval, validate_title
from divar_alert.errors import ValidationError

SEARCH_CURL = (
    "curl 'https://api.divar.ir/v8/postlist/w/search' "
    "-H 'content-type: application/json' "
    "--data-raw '{\"city_ids\":[\"1\"],\"pagination_data\":{\"last_post_date\":\"2025-01-10T08:00:00Z\"}}'"
)


@pytest.fixture
def engine(context, watch_store):
    engine = ConversationEngine(context)
    engine.register(build_set_alert_process(watch_store))
    return engine


class TestValidators:
    """Tests for step validators."""

    def test_title_is_stripped(self):
        assert validate_title("  آپارتمان  ") == "آپارتمان"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_title("   ")
        assert str(exc.value) == messages.INVALID_TITLE

    @pytest.mark.parametrize("text,expected", [("60", "60"), (" 5 ", "5"), ("۶۰", "60")])
    def test_interval_accepted(self, text, expected):
        assert validate_interval(text) == expected

    @pytest.mark.parametrize("text", ["0", "-5", "abc", "1.5", ""])
    def test_interval_rejected(self, text):
        with pytest.raises(ValidationError) as exc:
            validate_interval(text)
        assert str(exc.value) == messages.INVALID_INTERVAL


class TestSetAlertFlow:
    """Tests for the full conversation."""

    def test_completion_creates_watch(self, engine, watch_store):
        assert engine.start(ProcessKind.SET_ALERT, 42) == messages.PROMPT_TITLE
        assert engine.advance(42, "خانه") == messages.PROMPT_LINK
        assert engine.advance(42, SEARCH_CURL) == messages.PROMPT_INTERVAL
        assert engine.advance(42, "30") == messages.ALERT_SET_DONE

        watches = watch_store.list(42)
        assert len(watches) == 1
        assert watches[0].title == "خانه"
        assert watches[0].query == SEARCH_CURL
        assert watches[0].interval == 30
        assert watches[0].last_checked_at == 0
        assert engine.current(42) is None

    def test_foreign_link_is_rejected(self, engine):
        engine.start(ProcessKind.SET_ALERT, 42)
        engine.advance(42, "خانه")

        with pytest.raises(ValidationError) as exc:
            engine.advance(42, "curl 'https://evil.example.com/v8/postlist/w/search'")
        assert str(exc.value) == messages.INVALID_LINK
        assert engine.current(42).current_step.name == "link"

    def test_bad_interval_keeps_step(self, engine, watch_store):
        engine.start(ProcessKind.SET_ALERT, 42)
        engine.advance(42, "خانه")
        engine.advance(42, SEARCH_CURL)

        with pytest.raises(ValidationError):
            engine.advance(42, "0")
        assert engine.current(42).current_step.name == "interval"
        assert watch_store.list(42) == []
