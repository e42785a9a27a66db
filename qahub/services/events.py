"""
In-process domain events.

Services publish logical events inside their unit of work; listeners run
synchronously in the same transaction, so a failing listener rolls the
whole operation back.

Usage:
    @subscribe("bug_created")
    def _notify(bug, project, actor):
        ...

    publish("bug_created", bug=bug, project=project, actor=actor)
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

EVENT_NAMES = ("bug_created", "bug_status_changed", "comment_added")

_listeners: dict[str, list[Callable]] = {name: [] for name in EVENT_NAMES}


def subscribe(event_name: str):
    """Decorator to register a listener for a domain event."""
    if event_name not in _listeners:
        raise ValueError(f"Unknown event: {event_name}")

    def decorator(fn: Callable) -> Callable:
        if fn not in _listeners[event_name]:
            _listeners[event_name].append(fn)
        return fn
    return decorator


def get_listeners(event_name: str) -> list[Callable]:
    return list(_listeners.get(event_name, ()))


def publish(event_name: str, **payload) -> int:
    """Call every listener of ``event_name``; returns how many ran."""
    if event_name not in _listeners:
        raise ValueError(f"Unknown event: {event_name}")
    listeners = get_listeners(event_name)
    for fn in listeners:
        fn(**payload)
    logger.debug("Published %s to %d listener(s)", event_name, len(listeners))
    return len(listeners)
