"""Restream lifecycle enum."""

from enum import Enum


class RestreamState(str, Enum):
    """Restream lifecycle states of a single platform.

    State Transition Flow:

    IDLE → ACTIVE → IDLE   (encoder exited with code 0, or operator stop)
             ↓
           ERROR → ACTIVE  (operator re-runs start)

    State Descriptions:
    - IDLE: No encoder running. Set on clean exit and on every explicit stop.
    - ACTIVE: Encoder process spawned and running. Set by the start protocol.
    - ERROR: Encoder failed to spawn, exited non-zero or was killed by a signal.
    """

    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


__all__ = ["RestreamState"]
