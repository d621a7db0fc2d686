"""Restream state machine for per-platform lifecycle transitions."""

from app.schemas import RestreamState


class RestreamStateMachine:
    """State machine of a single platform's encoder.

    State flow with triggers:
    - IDLE -> ACTIVE (encoder spawned) | ERROR (key undecryptable or spawn failed)
    - ACTIVE -> IDLE (encoder exited with code 0) | ERROR (any other exit)
    - ERROR -> ACTIVE (next start) | ERROR (next start failed again)
    - any -> IDLE on an explicit stop, see `stop_target`
    """

    TRANSITIONS: dict[RestreamState, set[RestreamState]] = {
        RestreamState.IDLE: {RestreamState.ACTIVE, RestreamState.ERROR},
        RestreamState.ACTIVE: {RestreamState.IDLE, RestreamState.ERROR},
        RestreamState.ERROR: {RestreamState.ACTIVE, RestreamState.ERROR},
    }

    @classmethod
    def can_transition(cls, current: RestreamState, new: RestreamState, *, stopping: bool = False) -> bool:
        if stopping and new == cls.stop_target():
            return True
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def stop_target(cls) -> RestreamState:
        """State forced by an explicit stop, regardless of the prior state."""
        return RestreamState.IDLE

    @classmethod
    def get_valid_transitions(cls, state: RestreamState) -> set[RestreamState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def exit_target(cls, returncode: int | None) -> RestreamState:
        """Only a clean exit is idle; non-zero and signal exits are errors."""
        return RestreamState.IDLE if returncode == 0 else RestreamState.ERROR
