from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out of named events.

    Handlers subscribe either to one exact name (``system.started``) or to every
    name under a dotted prefix (``crm.``). Handlers run on the publishing thread, in
    subscription order, exact matches first.
    """

    def __init__(self) -> None:
        self._exact: dict[str, list[EventHandler]] = defaultdict(list)
        self._prefixed: list[tuple[str, EventHandler]] = []

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._exact[event_name]:
            self._exact[event_name].append(handler)

    def subscribe_prefix(self, prefix: str, handler: EventHandler) -> None:
        if (prefix, handler) not in self._prefixed:
            self._prefixed.append((prefix, handler))

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        handlers = list(self._exact.get(event_name, []))
        handlers.extend(handler for prefix, handler in self._prefixed if event_name.startswith(prefix))
        return handlers

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in self.handlers_for(event_name):
            handler(event)


event_bus = InProcessEventBus()
