import logging
from typing import Any, List, Protocol, Sequence

logger = logging.getLogger(__name__)


class ResultsSink(Protocol):
    """Where rendered cards end up (a DOM grid in the theme, a list in tests/API)."""

    def clear(self) -> None: ...

    def append_batch(self, cards: Sequence[Any]) -> None: ...

    def get_current_count(self) -> int: ...

    def hide(self) -> None: ...

    def show(self) -> None: ...

    def show_fallback(self) -> None: ...

    def hide_pagination(self) -> None: ...


class ListSink:
    """In-memory results container."""

    def __init__(self):
        self.cards: List[Any] = []
        self.visible = True
        self.fallback_visible = False
        self.pagination_visible = True
        self.append_calls = 0

    def clear(self) -> None:
        self.cards = []

    def append_batch(self, cards: Sequence[Any]) -> None:
        self.cards.extend(cards)
        self.append_calls += 1

    def get_current_count(self) -> int:
        return len(self.cards)

    def hide(self) -> None:
        self.visible = False

    def show(self) -> None:
        self.visible = True
        self.fallback_visible = False

    def show_fallback(self) -> None:
        self.visible = False
        self.fallback_visible = True

    def hide_pagination(self) -> None:
        self.pagination_visible = False


class Announcer(Protocol):
    def announce_loading(self, message: str) -> None: ...

    def announce_success(self, message: str) -> None: ...

    def announce_error(self, message: str) -> None: ...

    def record_metric(self, name: str, value: float) -> None: ...


class LoggingAnnouncer:
    def announce_loading(self, message: str) -> None:
        logger.info(message)

    def announce_success(self, message: str) -> None:
        logger.info(message)

    def announce_error(self, message: str) -> None:
        logger.error(message)

    def record_metric(self, name: str, value: float) -> None:
        logger.info("metric %s=%s", name, value)


class SafeAnnouncer:
    """Fire-and-forget wrapper: a failing sink never aborts the pipeline."""

    def __init__(self, inner: Announcer | None = None):
        self.inner = inner or LoggingAnnouncer()

    def _call(self, method: str, *args) -> None:
        try:
            getattr(self.inner, method)(*args)
        except Exception as e:
            logger.warning(f"Announcer {method} failed: {e}")

    def announce_loading(self, message: str) -> None:
        self._call("announce_loading", message)

    def announce_success(self, message: str) -> None:
        self._call("announce_success", message)

    def announce_error(self, message: str) -> None:
        self._call("announce_error", message)

    def record_metric(self, name: str, value: float) -> None:
        self._call("record_metric", name, value)
