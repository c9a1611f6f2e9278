"""
Conversation Engine
===================

Durable, resumable multi-step input collection ("processes") per chat.

Each owner has at most one running process, tracked by a pointer record
(current-process:{owner}) next to the process state
(process:{owner}:{kind}). Every transition, including the completion hook
of the last step, runs inside one store transaction, so a failing hook
leaves the conversation exactly where it was.

Flow:
    start(kind, owner)      -> first prompt
    advance(owner, text)    -> next prompt, or terminal prompt after the hook ran
    cancel(owner)           -> drop state and pointer
"""

import logging
import threading
import time
import weakref
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .. import messages
from ..context import AppContext
from ..db import keys
from ..db.kv_store import Transaction
from ..errors import NotActiveError, StorageError, ValidationError
from ..models import ConversationState, Step

logger = logging.getLogger(__name__)

# Validators get the raw text and return the value to store,
# or raise ValidationError with a message for the user.
Validator = Callable[[str], str]
CompletionHook = Callable[[ConversationState, Transaction], None]


class ProcessKind:
    """Known process identifiers."""
    SET_ALERT = "SET_ALERT"


@dataclass
class ProcessDefinition:
    """
    Template for one kind of process.

    `steps` holds (name, prompt) pairs; the last pair is the terminal step
    and only its prompt is ever shown.
    """
    kind: str
    steps: List[Tuple[str, str]]
    on_complete: CompletionHook
    validators: Dict[str, Validator] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.steps) < 2:
            raise ValueError(f"process {self.kind} needs at least one input step and a terminal step")

    def new_state(self, owner_id: int, now: int) -> ConversationState:
        return ConversationState(
            kind=self.kind,
            owner_id=owner_id,
            steps=[Step(name=name, prompt=prompt) for name, prompt in self.steps],
            current_step_index=0,
            last_action_at=now,
        )


class ConversationEngine:
    """
    Per-owner state machine stored in the key-value store.

    Calls for the same owner are serialized with a per-owner lock; calls for
    different owners only contend on the store's write lock.
    """

    def __init__(self, context: AppContext, clock: Callable[[], float] = time.time):
        self.store = context.store
        self._clock = clock
        self._definitions: Dict[str, ProcessDefinition] = {}
        # An entry lives only while some call holds its lock
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def register(self, definition: ProcessDefinition):
        self._definitions[definition.kind] = definition
        logger.debug(f"Registered process {definition.kind}")

    def _owner_lock(self, owner_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            return lock

    def _now(self) -> int:
        return int(self._clock())

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    def start(self, kind: str, owner_id: int) -> str:
        """
        Start a fresh process, discarding whatever the owner had running.

        Returns:
            Prompt of the first step

        Raises:
            ValidationError: Unknown process kind
            StorageError: Store failure (nothing was changed)
        """
        definition = self._definitions.get(kind)
        if definition is None:
            raise ValidationError(messages.UNKNOWN_PROCESS)

        state = definition.new_state(owner_id, self._now())

        with self._owner_lock(owner_id):
            with self.store.transaction() as t:
                t.delete_prefix(keys.process_prefix(owner_id))
                t.delete(keys.current_process_key(owner_id))
                t.set_json(keys.process_key(owner_id, kind), state.to_dict())
                t.set(keys.current_process_key(owner_id), kind.encode("utf-8"))

        logger.info(f"Started process {kind} for {owner_id}")
        return state.current_step.prompt

    def advance(self, owner_id: int, text: str) -> str:
        """
        Feed user input to the current step and move to the next one.

        On reaching the terminal step the completion hook runs in the same
        transaction, then state and pointer are removed.

        Returns:
            Prompt of the new current step (terminal prompt on completion)

        Raises:
            NotActiveError: Owner has no running process
            ValidationError: Input rejected; state unchanged
            StorageError: Store failure; state unchanged
        """
        with self._owner_lock(owner_id):
            stale = False
            reply = None
            completed_kind = None

            with self.store.transaction() as t:
                pointer = t.get(keys.current_process_key(owner_id))
                if pointer is None:
                    raise NotActiveError(messages.CHOOSE_COMMAND)

                kind = pointer.decode("utf-8")
                definition = self._definitions.get(kind)
                raw = t.get_json(keys.process_key(owner_id, kind))

                state = None
                if definition is not None and raw is not None:
                    try:
                        state = ConversationState.from_dict(raw)
                    except (KeyError, TypeError, ValueError) as e:
                        raise StorageError(f"Corrupt process state for {owner_id}: {e}") from e

                if state is None or state.is_terminal:
                    # Dangling pointer: clear it so the owner is not stuck
                    t.delete_prefix(keys.process_prefix(owner_id))
                    t.delete(keys.current_process_key(owner_id))
                    stale = True
                else:
                    step = state.current_step
                    validator = definition.validators.get(step.name)
                    step.value = validator(text) if validator else text
                    state.current_step_index += 1
                    state.last_action_at = self._now()

                    if state.is_terminal:
                        definition.on_complete(state, t)
                        t.delete(keys.process_key(owner_id, kind))
                        t.delete(keys.current_process_key(owner_id))
                        completed_kind = kind
                    else:
                        t.set_json(keys.process_key(owner_id, kind), state.to_dict())

                    reply = state.current_step.prompt

        if stale:
            logger.warning(f"Cleared dangling process pointer for {owner_id}")
            raise NotActiveError(messages.CHOOSE_COMMAND)

        if completed_kind:
            logger.info(f"Completed process {completed_kind} for {owner_id}")
        return reply

    def cancel(self, owner_id: int) -> bool:
        """Drop the running process, if any. Returns whether one was running."""
        with self._owner_lock(owner_id):
            with self.store.transaction() as t:
                existed = t.delete(keys.current_process_key(owner_id))
                t.delete_prefix(keys.process_prefix(owner_id))

        if existed:
            logger.info(f"Cancelled process for {owner_id}")
        return existed

    def current(self, owner_id: int) -> Optional[ConversationState]:
        """The owner's running process, or None."""
        with self.store.transaction(write=False) as t:
            pointer = t.get(keys.current_process_key(owner_id))
            if pointer is None:
                return None
            raw = t.get_json(keys.process_key(owner_id, pointer.decode("utf-8")))

        if raw is None:
            return None
        try:
            return ConversationState.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt process state for {owner_id}: {e}") from e
