"""
Status and MultiStatus — the result contract of the engine.

Every action returns a Status. Statuses never travel as exceptions:
failures are values, aggregated into a MultiStatus whose severity is the
worst severity among its children. OK, INFO and WARNING count as success
for commit purposes; ERROR and CANCEL force a rollback.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field


class Severity(IntEnum):
    """Status severities, ordered from best to worst."""

    OK = 0
    INFO = 1
    WARNING = 2
    ERROR = 4
    CANCEL = 8


SUCCESS_SEVERITIES = (Severity.OK, Severity.INFO, Severity.WARNING)
FAILURE_SEVERITIES = (Severity.ERROR, Severity.CANCEL)


class Status(BaseModel):
    """Outcome of one unit of work."""

    severity: Severity = Severity.OK
    message: str = ""
    source: str = ""            # action id, phase name, or component
    code: int = 0
    exception: str | None = None
    children: list[Status] = Field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return self.severity == Severity.OK

    @property
    def is_success(self) -> bool:
        return self.severity in SUCCESS_SEVERITIES

    def matches(self, *severities: Severity) -> bool:
        """Whether this status has any of the given severities."""
        return self.severity in severities

    def is_multi(self) -> bool:
        return False

    @classmethod
    def ok(cls, message: str = "", **kwargs: Any) -> Status:
        return cls(severity=Severity.OK, message=message, **kwargs)

    @classmethod
    def info(cls, message: str, **kwargs: Any) -> Status:
        return cls(severity=Severity.INFO, message=message, **kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: Any) -> Status:
        return cls(severity=Severity.WARNING, message=message, **kwargs)

    @classmethod
    def error(cls, message: str, exc: BaseException | None = None, **kwargs: Any) -> Status:
        if exc is not None:
            kwargs.setdefault("exception", f"{type(exc).__name__}: {exc}")
        return cls(severity=Severity.ERROR, message=message, **kwargs)

    @classmethod
    def cancel(cls, message: str = "Operation cancelled", **kwargs: Any) -> Status:
        return cls(severity=Severity.CANCEL, message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_defaults=True)

    def __str__(self) -> str:
        text = f"{self.severity.name}: {self.message}" if self.message else self.severity.name
        if self.source:
            text = f"[{self.source}] {text}"
        return text


class MultiStatus(Status):
    """A status aggregating child statuses.

    Children are kept by reference: ``add(s)`` followed by
    ``children[-1] is s`` holds.
    """

    def is_multi(self) -> bool:
        return True

    def add(self, status: Status) -> None:
        self.children.append(status)
        if status.severity > self.severity:
            self.severity = status.severity

    def add_all(self, statuses: list[Status]) -> None:
        for status in statuses:
            self.add(status)

    def merge(self, status: Status) -> None:
        """Fold in a status: a multi status contributes its children."""
        if status.is_multi():
            for child in status.children:
                self.add(child)
            if status.severity > self.severity:
                self.severity = status.severity
        else:
            self.add(status)

    def errors(self) -> list[Status]:
        """Leaf statuses with ERROR or CANCEL severity."""
        found: list[Status] = []
        for child in self.children:
            if child.is_multi():
                found.extend(child.errors())  # type: ignore[attr-defined]
            elif child.matches(*FAILURE_SEVERITIES):
                found.append(child)
        return found
