"""Observer registry used by stores to notify subscribers after a mutation."""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Observer = Callable[[T], None]


class ObserverRegistry(Generic[T]):
    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register observer; returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def notify(self, value: T) -> None:
        for observer in list(self._observers):
            try:
                observer(value)
            except Exception:
                logger.exception("Observer failed", extra={"observer": repr(observer)})

    def __len__(self) -> int:
        return len(self._observers)
