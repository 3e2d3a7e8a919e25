"""
Session state holder.

One `SessionStore` per tracking session. Readers get immutable `SessionState`
snapshots; writers swap in a whole new snapshot via `replace()`, so a reader never
observes a half-applied update. Position/distance/range fields are written only by
the monitor loop; phase and device fields only by the pairing service.
"""

from __future__ import annotations

from typing import Any

from trackerkeeper.domain.models import SessionState


class SessionStore:
    def __init__(self, initial: SessionState | None = None):
        self._state = initial if initial is not None else SessionState()

    def snapshot(self) -> SessionState:
        return self._state

    def replace(self, **changes: Any) -> SessionState:
        """Atomically publish a copy of the current state with `changes` applied."""
        self._state = self._state.model_copy(update=changes)
        return self._state

    def reset(self) -> SessionState:
        self._state = SessionState()
        return self._state
