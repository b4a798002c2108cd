"""Custom exceptions for django-episodes."""


class EpisodeError(Exception):
    """Base exception for episode errors."""
    pass


class EpisodeNotFound(EpisodeError):
    """Raised when an episode id does not exist."""

    def __init__(self, episode_id):
        self.episode_id = episode_id
        super().__init__(f"Episode '{episode_id}' not found")


class InvalidTransition(EpisodeError):
    """Raised by the strict transition service when the machine rejects a trigger."""

    def __init__(self, from_state: str, trigger: str, reason: str = None):
        self.from_state = from_state
        self.trigger = trigger
        self.reason = reason or f"Trigger '{trigger}' not allowed from state '{from_state}'"
        super().__init__(self.reason)


class TransitionTableError(EpisodeError):
    """Raised when a transition table fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid transition table: " + "; ".join(errors))


class DirectStateWrite(EpisodeError):
    """Raised when an episode's state is changed outside the transition services."""

    def __init__(self, episode_id, from_state: str, to_state: str):
        self.episode_id = episode_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Episode '{episode_id}' state may only change through a transition "
            f"('{from_state}' -> '{to_state}' written directly)"
        )
