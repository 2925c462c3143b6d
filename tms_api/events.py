"""In-process domain event bus.

Services call ``emit`` after a state change; listeners registered with ``on``
run synchronously in registration order.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]

_listeners: Dict[str, List[Listener]] = defaultdict(list)


def on(event: str) -> Callable[[Listener], Listener]:
    def register(fn: Listener) -> Listener:
        _listeners[event].append(fn)
        return fn
    return register


def emit(event: str, payload: Dict[str, Any]) -> None:
    logger.info("event %s %s", event, payload)
    for fn in list(_listeners.get(event, [])):
        fn(payload)


def clear() -> None:
    _listeners.clear()
