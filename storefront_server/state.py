"""Observable state cells.

A ``Signal`` holds a value and notifies subscribers when it is replaced with a
different value. A ``Computed`` derives its value from other cells through a
pure function and is re-evaluated whenever one of its sources changes.
Notification is synchronous, on the caller's thread of control.
"""

import logging
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Any, Any], None]


class Readable(Generic[T]):
    """Common subscription handling for cells."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def __call__(self) -> T:
        return self.get()

    def get(self) -> T:
        raise NotImplementedError

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called as ``listener(new, old)`` on every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, new: T, old: T) -> None:
        for listener in list(self._listeners):
            listener(new, old)


class Signal(Readable[T]):
    """A writable cell."""

    def __init__(self, value: T) -> None:
        super().__init__()
        self._value = value

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        old = self._value
        if value is old or value == old:
            return
        self._value = value
        self._notify(value, old)

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))


class Computed(Readable[T]):
    """A read-only cell derived from other cells."""

    def __init__(self, fn: Callable[[], T], *sources: Readable) -> None:
        super().__init__()
        self._fn = fn
        self._value = fn()
        for source in sources:
            source.subscribe(self._recompute)

    def get(self) -> T:
        return self._value

    def _recompute(self, *_: Any) -> None:
        old = self._value
        new = self._fn()
        if new == old:
            return
        self._value = new
        self._notify(new, old)
