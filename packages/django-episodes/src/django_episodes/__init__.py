"""
django-episodes: Clinical episode workflow engine.

Provides:
- EpisodeMachine: Static, validated (state, trigger, guard) transition table
- Episode: A patient's clinical journey, state changed only through transitions
- apply_transition / transition: Guarded state changes that emit Episode.StateChanged
"""

__version__ = "0.1.0"

__all__ = [
    # Machine
    "EpisodeMachine",
    "EpisodeState",
    "EpisodeTrigger",
    "GuardContext",
    "REJECTED",
    "next_state",
    "can_transition",
    "get_transition_description",
    # Models
    "Episode",
    # Services
    "create_episode",
    "apply_transition",
    "transition",
    # Exceptions
    "EpisodeError",
    "EpisodeNotFound",
    "InvalidTransition",
]


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in (
        "EpisodeMachine",
        "EpisodeState",
        "EpisodeTrigger",
        "GuardContext",
        "REJECTED",
        "next_state",
        "can_transition",
        "get_transition_description",
    ):
        from django_episodes import machine
        return getattr(machine, name)
    if name == "Episode":
        from django_episodes import models
        return models.Episode
    if name in ("create_episode", "apply_transition", "transition"):
        from django_episodes import services
        return getattr(services, name)
    if name in ("EpisodeError", "EpisodeNotFound", "InvalidTransition"):
        from django_episodes import exceptions
        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
