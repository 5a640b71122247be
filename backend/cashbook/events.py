# Overview: Domain events emitted by the report lifecycle and the bus that fans them out.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from flask import current_app


ARTIFACT_ATTACHED = "transactions_report.artifact_attached"


@dataclass(frozen=True)
class ReportEvent:
    """Carries only the report id; handlers reload the report themselves."""
    name: str
    report_id: int


class EventBus:
    """
    Synchronous publish/subscribe.

    Events are published after the emitting unit of work has committed.
    A failing subscriber is logged and does not stop the remaining ones.
    """

    def __init__(self, app=None):
        self._subscribers: dict[str, list[Callable[[ReportEvent], None]]] = defaultdict(list)
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["event_bus"] = self

    def subscribe(self, name: str, handler: Callable[[ReportEvent], None]) -> None:
        self._subscribers[name].append(handler)

    def subscribers(self, name: str) -> list[Callable[[ReportEvent], None]]:
        return list(self._subscribers.get(name, ()))

    def publish(self, event: ReportEvent) -> int:
        delivered = 0
        for handler in self.subscribers(event.name):
            try:
                handler(event)
                delivered += 1
            except Exception:
                current_app.logger.exception(
                    "Event handler %r failed for %s (report %s)",
                    handler, event.name, event.report_id,
                )
        return delivered


def get_event_bus() -> EventBus:
    return current_app.extensions["event_bus"]


def publish(event: ReportEvent | None) -> int:
    """Publish event on the app's bus; None (nothing happened) is ignored."""
    if event is None:
        return 0
    return get_event_bus().publish(event)
