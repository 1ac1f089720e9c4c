"""Observer signals fired when annotations appear, change or disappear."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .model import Annotation

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    """Ordered list of callbacks invoked synchronously on :meth:`dispatch`."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._handlers)

    def connect(self, handler: Callable[[T], None]) -> Callable[[], None]:
        """Register *handler*; the returned callable disconnects it again."""
        self._handlers.append(handler)

        def _disconnect() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _disconnect

    def dispatch(self, value: T) -> None:
        for handler in list(self._handlers):
            try:
                handler(value)
            except Exception:
                _LOGGER.exception("Observer %r of %s failed", handler, self.name)


@dataclass(slots=True)
class AnnotationSignals:
    """Signals shared between the CRUD source and the chunk source of one endpoint."""

    child_added: Signal[Annotation] = field(default_factory=lambda: Signal("child_added"))
    child_updated: Signal[Annotation] = field(default_factory=lambda: Signal("child_updated"))
    child_deleted: Signal[str] = field(default_factory=lambda: Signal("child_deleted"))


__all__ = ["AnnotationSignals", "Signal"]
