"""Tests for the ConversationEngine state machine."""

import gc
import threading

import pytest

from divar_alert import messages
from divar_alert.bot import ConversationEngine, ProcessDefinition
from divar_alert.db import keys
from divar_alert.errors import NotActiveError, ValidationError


def upper_only(text):
    if not text.isupper():
        raise ValidationError("uppercase please")
    return text


class Recorder:
    """Completion hook that records finished states, optionally failing."""

    def __init__(self, fail=False):
        self.fail = fail
        self.completed = []

    def __call__(self, state, txn):
        txn.set(b"hook:" + str(state.owner_id).encode(), b"ran")
        if self.fail:
            raise RuntimeError("hook failed")
        self.completed.append(state)


@pytest.fixture
def hook():
    return Recorder()


@pytest.fixture
def engine(context, clock, hook):
    engine = ConversationEngine(context, clock=clock)
    engine.register(ProcessDefinition(
        kind="DEMO",
        steps=[("first", "p1"), ("second", "p2"), ("end", "done")],
        on_complete=hook,
        validators={"second": upper_only},
    ))
    engine.register(ProcessDefinition(
        kind="OTHER",
        steps=[("only", "o1"), ("end", "o-done")],
        on_complete=lambda state, txn: None,
    ))
    return engine


class TestProcessDefinition:
    """Tests for definition checks."""

    def test_requires_input_and_terminal_step(self):
        with pytest.raises(ValueError):
            ProcessDefinition(kind="X", steps=[("end", "done")], on_complete=lambda s, t: None)


class TestStart:
    """Tests for starting processes."""

    def test_returns_first_prompt(self, engine):
        assert engine.start("DEMO", 1) == "p1"
        state = engine.current(1)
        assert state.kind == "DEMO"
        assert state.current_step_index == 0

    def test_unknown_kind(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.start("NOPE", 1)
        assert str(exc.value) == messages.UNKNOWN_PROCESS
        assert engine.current(1) is None

    def test_restart_discards_previous_progress(self, engine):
        engine.start("DEMO", 1)
        engine.advance(1, "a")
        assert engine.start("DEMO", 1) == "p1"
        assert engine.current(1).current_step_index == 0
        assert engine.current(1).value_of("first") == ""

    def test_switching_kind_leaves_one_process(self, engine, store):
        engine.start("DEMO", 1)
        engine.start("OTHER", 1)
        with store.transaction(write=False) as t:
            assert t.count_prefix(keys.process_prefix(1)) == 1
        assert engine.current(1).kind == "OTHER"

    def test_records_start_time(self, engine, clock):
        engine.start("DEMO", 1)
        assert engine.current(1).last_action_at == int(clock.now)


class TestAdvance:
    """Tests for stepping through a process."""

    def test_without_process_is_not_active(self, engine):
        with pytest.raises(NotActiveError) as exc:
            engine.advance(1, "hello")
        assert str(exc.value) == messages.CHOOSE_COMMAND

    def test_steps_through_to_completion(self, engine, hook, store, clock):
        """The hook sees every captured value and the records are removed."""
        engine.start("DEMO", 1)
        clock.advance(10)
        assert engine.advance(1, "a") == "p2"
        assert engine.current(1).last_action_at == int(clock.now)

        assert engine.advance(1, "B") == "done"

        assert len(hook.completed) == 1
        state = hook.completed[0]
        assert state.value_of("first") == "a"
        assert state.value_of("second") == "B"
        assert engine.current(1) is None
        with store.transaction(write=False) as t:
            assert t.get(keys.current_process_key(1)) is None
            assert t.count_prefix(keys.process_prefix(1)) == 0
            assert t.get(b"hook:1") == b"ran"

    def test_rejected_input_leaves_state_unchanged(self, engine):
        """User can resend after a validation error."""
        engine.start("DEMO", 1)
        engine.advance(1, "a")
        before = engine.current(1)

        with pytest.raises(ValidationError) as exc:
            engine.advance(1, "lower")
        assert str(exc.value) == "uppercase please"
        assert engine.current(1) == before

    def test_failing_hook_rolls_back(self, context, clock):
        """Hook writes and the step change are undone together."""
        failing = Recorder(fail=True)
        engine = ConversationEngine(context, clock=clock)
        engine.register(ProcessDefinition(
            kind="DEMO",
            steps=[("first", "p1"), ("end", "done")],
            on_complete=failing,
        ))
        engine.start("DEMO", 1)

        with pytest.raises(RuntimeError):
            engine.advance(1, "a")

        state = engine.current(1)
        assert state.current_step_index == 0
        assert state.value_of("first") == ""
        with context.store.transaction(write=False) as t:
            assert t.get(b"hook:1") is None

    def test_owners_are_independent(self, engine):
        engine.start("DEMO", 1)
        engine.start("DEMO", 2)
        engine.advance(1, "a")
        assert engine.current(1).current_step_index == 1
        assert engine.current(2).current_step_index == 0

    def test_dangling_pointer_is_cleared(self, engine, store):
        """A pointer without state should not trap the owner."""
        with store.transaction() as t:
            t.set(keys.current_process_key(1), b"DEMO")

        with pytest.raises(NotActiveError):
            engine.advance(1, "a")

        with store.transaction(write=False) as t:
            assert t.get(keys.current_process_key(1)) is None

    def test_pointer_to_unregistered_kind_is_cleared(self, engine, store):
        with store.transaction() as t:
            t.set(keys.current_process_key(1), b"GONE")
            t.set_json(keys.process_key(1, "GONE"), {"kind": "GONE", "owner_id": 1, "steps": []})

        with pytest.raises(NotActiveError):
            engine.advance(1, "a")

        with store.transaction(write=False) as t:
            assert t.get(keys.current_process_key(1)) is None
            assert t.count_prefix(keys.process_prefix(1)) == 0


class TestConcurrency:
    """Tests for per-owner serialization."""

    def test_parallel_advances_each_take_one_step(self, context, clock):
        """Concurrent input for one owner fills every step exactly once."""
        workers = 8
        hook = Recorder()
        engine = ConversationEngine(context, clock=clock)
        steps = [(f"s{i}", f"p{i}") for i in range(workers)] + [("end", "done")]
        engine.register(ProcessDefinition(kind="WIDE", steps=steps, on_complete=hook))
        engine.start("WIDE", 1)

        barrier = threading.Barrier(workers)
        replies = []
        errors = []

        def send(text):
            barrier.wait()
            try:
                replies.append(engine.advance(1, text))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=send, args=(f"v{i}",)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert sorted(replies) == sorted([f"p{i}" for i in range(1, workers)] + ["done"])
        assert len(hook.completed) == 1
        values = [step.value for step in hook.completed[0].steps[:-1]]
        assert sorted(values) == sorted(f"v{i}" for i in range(workers))
        assert engine.current(1) is None

    def test_owner_locks_are_released(self, engine):
        engine.start("DEMO", 1)
        engine.advance(1, "a")
        engine.cancel(1)
        gc.collect()
        assert len(engine._locks) == 0


class TestCancel:
    """Tests for cancelling."""

    def test_cancel_running_process(self, engine):
        engine.start("DEMO", 1)
        assert engine.cancel(1) is True
        assert engine.current(1) is None
        with pytest.raises(NotActiveError):
            engine.advance(1, "a")

    def test_cancel_without_process(self, engine):
        assert engine.cancel(1) is False
