from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from dust_sweeper.models import Stage


@dataclass(frozen=True)
class StageEvent:
    run_id: str
    stage: Stage
    status: str  # started|completed|skipped|failed
    payload: dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventSink = Callable[[StageEvent], None]


class LogReporter:
    """Renders pipeline events to the application log."""

    def __call__(self, event: StageEvent) -> None:
        level = "WARNING" if event.status == "failed" else "INFO"
        logger.bind(run_id=event.run_id, stage=event.stage.value).log(
            level, "[{}] {} {}", event.stage.value, event.status, event.payload or ""
        )


class EventRecorder:
    def __init__(self, forward: EventSink | None = None):
        self.events: list[StageEvent] = []
        self._forward = forward

    def __call__(self, event: StageEvent) -> None:
        self.events.append(event)
        if self._forward is not None:
            self._forward(event)

    def stages(self, status: str | None = None) -> list[Stage]:
        return [e.stage for e in self.events if status is None or e.status == status]
