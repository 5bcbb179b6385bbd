from collections import defaultdict
from typing import Any, Callable, Dict, List

Listener = Callable[[str, Any], None]


class Observable:
    """
    Minimal event emitter shared by the Adapter (`sql_exec`) and the
    ObjectDatabase (`dispense`, `open`, `update`, `after_update`,
    `delete`, `after_delete`).
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        """Register `listener(event, subject)` for `event`."""
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def signal(self, event: str, subject: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(event, subject)
