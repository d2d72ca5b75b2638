"""Keyed ephemeral store for in-progress call state.

One ``CallState`` per call id, held in process memory only.  Reads hand
out copies, so nothing changes in the store until ``save`` is called.

Turns of the same call must not interleave, otherwise two near-
simultaneous webhooks could both read the old state and one update would
be lost.  ``locked(call_id)`` serializes work on one key::

    with store.locked(call_id):
        state = store.get(call_id)
        ...
        store.save(state)

Different call ids use different locks and never wait on each other.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from callagent.models.call_state import CallState

log = logging.getLogger("callagent.stores.call_states")


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class CallStateStore:
    """Thread-safe in-memory ``CallState`` store keyed by call id."""

    def __init__(self) -> None:
        self._states: dict[str, CallState] = {}
        self._mutex = threading.Lock()
        self._key_locks: dict[str, _KeyLock] = {}

    def get(self, call_id: str) -> CallState:
        """Return a copy of the call's state, creating it on first use."""
        with self._mutex:
            state = self._states.get(call_id)
            if state is None:
                state = CallState(call_id=call_id)
                self._states[call_id] = state
                log.info("Call state created: %s", call_id)
            return state.model_copy(deep=True)

    def peek(self, call_id: str) -> Optional[CallState]:
        """Return a copy of the call's state, or None. Never creates."""
        with self._mutex:
            state = self._states.get(call_id)
            return state.model_copy(deep=True) if state else None

    def save(self, state: CallState) -> None:
        """Insert or replace the state for ``state.call_id``."""
        with self._mutex:
            self._states[state.call_id] = state.model_copy(deep=True)

    def clear(self, call_id: str) -> bool:
        """Remove a call's state. Returns False if there was none."""
        with self._mutex:
            removed = self._states.pop(call_id, None) is not None
        if removed:
            log.info("Call state cleared: %s", call_id)
        return removed

    def active(self) -> list[CallState]:
        """All in-progress call states."""
        with self._mutex:
            return [s.model_copy(deep=True) for s in self._states.values()]

    def __contains__(self, call_id: object) -> bool:
        with self._mutex:
            return call_id in self._states

    def __len__(self) -> int:
        with self._mutex:
            return len(self._states)

    @contextmanager
    def locked(self, call_id: str) -> Iterator[None]:
        """Hold the per-call lock for the duration of the block."""
        with self._mutex:
            key_lock = self._key_locks.get(call_id)
            if key_lock is None:
                key_lock = self._key_locks[call_id] = _KeyLock()
            key_lock.users += 1

        try:
            with key_lock.lock:
                yield
        finally:
            with self._mutex:
                key_lock.users -= 1
                if key_lock.users == 0:
                    del self._key_locks[call_id]
