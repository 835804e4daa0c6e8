"""
Boot trace - records of every target invocation and action run.

The Invoker opens an InvocationRecord for each invocation and an ActionRecord
for each handler it runs. Records are timestamped at start and end, whatever
the mode and whatever the outcome.

Two report formats:
- compact: one line per action run, in execution order
- full: JSON document with every invocation, action, source and timing
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from rich.console import Console
from rich.rule import Rule

TRACE_MODES = ("compact", "full")


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _duration_ms(started_at: Optional[datetime], finished_at: Optional[datetime]) -> Optional[float]:
    if started_at and finished_at:
        return round((finished_at - started_at).total_seconds() * 1000, 3)
    return None


@dataclass
class ActionRecord:
    """
    One handler run within an invocation.

    Attributes:
        name: Action name
        trace: Trace source of the action, if declared
        started_at: When the handler was called
        finished_at: When the handler (and its awaitable) completed
        error: "<ExceptionType>: <message>" if the handler failed
    """
    name: str
    trace: Optional[str] = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[float]:
        return _duration_ms(self.started_at, self.finished_at)

    def finish(self, error: Optional[BaseException] = None) -> None:
        self.finished_at = _utcnow()
        if error is not None:
            self.error = f"{type(error).__name__}: {error}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "trace": self.trace,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class InvocationRecord:
    """
    One invocation of a target.

    Attributes:
        ref: Target reference as passed by the caller
        target: Concrete target name (None if an optional reference was unknown)
        mode: Invocation mode value
        started_at / finished_at: Invocation timestamps
        actions: Action runs, in start order
        error: "<ExceptionType>: <message>" if the target could not be resolved
    """
    ref: str
    target: Optional[str]
    mode: str
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    actions: list[ActionRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[float]:
        return _duration_ms(self.started_at, self.finished_at)

    def start_action(self, name: str, trace: Optional[str] = None) -> ActionRecord:
        record = ActionRecord(name=name, trace=trace)
        self.actions.append(record)
        return record

    def finish(self, error: Optional[BaseException] = None) -> None:
        self.finished_at = _utcnow()
        if error is not None:
            self.error = f"{type(error).__name__}: {error}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "target": self.target,
            "ref": self.ref,
            "mode": self.mode,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "actions": [a.to_dict() for a in self.actions],
        }
        if self.error is not None:
            result["error"] = self.error
        return result


class Tracer:
    """
    Collects invocation records for one application instance.

    Usage:
        tracer = Tracer()
        record = tracer.start_invocation("$INIT_SERVICE", "init::service", "serie")
        run = record.start_action("→ db", trace=__file__)
        run.finish()
        record.finish()

        tracer.render_compact()   # ["→ db → init::service"]
        tracer.print_report("full")
    """

    def __init__(self) -> None:
        self._records: list[InvocationRecord] = []

    @property
    def records(self) -> list[InvocationRecord]:
        return list(self._records)

    def start_invocation(self, ref: str, target: Optional[str], mode: str) -> InvocationRecord:
        record = InvocationRecord(ref=ref, target=target, mode=mode)
        self._records.append(record)
        return record

    def clear(self) -> None:
        self._records.clear()

    def render_compact(self) -> list[str]:
        """
        Render one line per action run, in execution order.

        Returns:
            Lines formatted as "<action name> → <target>"
        """
        lines = []
        for record in self._records:
            if record.error is not None:
                lines.append(f"{record.ref} ✗ {record.error}")
            for action in record.actions:
                line = f"{action.name} → {record.target}"
                if action.error is not None:
                    line += f" ✗ {action.error}"
                lines.append(line)
        return lines

    def render_full(self) -> str:
        """Render every invocation as an indented JSON document."""
        return json.dumps(
            {"invocations": [r.to_dict() for r in self._records]},
            indent=2,
            ensure_ascii=False,
        )

    def print_report(self, mode: str = "compact", console: Optional[Console] = None) -> None:
        """
        Print the framed boot trace report.

        Args:
            mode: "compact" or "full"
            console: rich Console to print to (defaults to a new stdout console)

        Raises:
            ValueError: If mode is not a known trace mode
        """
        if mode not in TRACE_MODES:
            raise ValueError(f"Unknown trace mode: {mode}. Expected one of {TRACE_MODES}")

        console = console or Console()
        console.print()
        console.print(Rule("Boot Trace"))
        console.print()
        if mode == "full":
            console.print_json(self.render_full())
        else:
            for line in self.render_compact():
                console.print(line, markup=False, highlight=False)
        console.print()
