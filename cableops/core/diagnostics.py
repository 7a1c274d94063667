"""
Diagnostics collector.

An explicitly constructed object handed to the entry points that need it
(registry loading, CSV validation). Nothing registers itself globally: callers
that want to inspect what happened keep a reference to their own instance.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class DiagnosticEvent:
    level: str
    source: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Diagnostics:
    def __init__(self, name: str = "cableops"):
        self.name = name
        self.events: list[DiagnosticEvent] = []
        self.logger = logging.getLogger(f"{name}.diagnostics")

    def _record(self, level: int, source: str, message: str, details: dict[str, Any]) -> DiagnosticEvent:
        event = DiagnosticEvent(
            level=logging.getLevelName(level).lower(),
            source=source,
            message=message,
            details=details,
        )
        self.events.append(event)
        self.logger.log(level, f"[{source}] {message}")
        return event

    def info(self, source: str, message: str, **details: Any) -> DiagnosticEvent:
        return self._record(logging.INFO, source, message, details)

    def warning(self, source: str, message: str, **details: Any) -> DiagnosticEvent:
        return self._record(logging.WARNING, source, message, details)

    def error(self, source: str, message: str, **details: Any) -> DiagnosticEvent:
        return self._record(logging.ERROR, source, message, details)

    @property
    def warnings(self) -> list[DiagnosticEvent]:
        return [e for e in self.events if e.level in ("warning", "error")]
