# MIT License
# Copyright (c) 2025 Hashborn

"""
In-process pub/sub for committed contract events.

The runtime publishes each committed ContractEvent under its name
(`TokensStaked`, `Transfer`, ...) with an `event=` keyword, and every call
outcome as `call_succeeded` / `call_reverted` with a `receipt=` keyword.
Listeners run synchronously on the publishing thread, after the call has
released its effects, so a failing listener can never undo a call.
"""
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventBus:
    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, listener: Listener) -> None:
        with self._lock:
            self._listeners[topic].append(listener)

    def unsubscribe(self, topic: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(topic, [])
            if listener in listeners:
                listeners.remove(listener)
            else:
                logger.warning(f"Unsubscribe of unknown listener on {topic}")

    def emit(self, topic: str, **payload: Any) -> None:
        """Delivers `payload` to every listener of `topic`; listener errors are logged, not raised."""
        with self._lock:
            listeners = tuple(self._listeners.get(topic, ()))

        for listener in listeners:
            try:
                listener(**payload)
            except Exception as e:
                logger.error(f"Listener for {topic} failed: {e}", exc_info=True)

    def clear(self, topic: Optional[str] = None) -> None:
        with self._lock:
            if topic is None:
                self._listeners.clear()
            else:
                self._listeners.pop(topic, None)
