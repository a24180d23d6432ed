"""
ProvisioningPlan and RequestStatus — the planner's output.

A plan is either feasible (OK status, operands ready for the engine) or
infeasible (conflict/error status, empty operand list). Plans are never
partially resolved.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from provisioning.core.models.operand import Operand, PropertyOperand
from provisioning.core.models.status import Severity, Status
from provisioning.core.models.unit import InstallableUnit, RequiredCapability


class RequestSeverity(StrEnum):
    OK = "ok"
    CONFLICT = "conflict"
    ERROR = "error"


ExplanationKind = Literal["missing", "singleton", "root", "extra"]


class Explanation(BaseModel):
    """One reason a request cannot be satisfied.

    Attributes:
        kind: ``missing`` (no provider for a requirement), ``singleton``
            (two versions of a singleton id needed), ``root`` (a root that
            cannot be installed together with others), ``extra`` (an extra
            requirement that cannot hold).
        root: The root the problem is attributed to.
        unit: The unit whose requirement failed (may be a dependency).
        requirement: The failing requirement, for ``missing``.
        versions: Competing versions, for ``singleton``.
    """

    kind: ExplanationKind
    root: InstallableUnit | None = None
    unit: InstallableUnit | None = None
    requirement: RequiredCapability | None = None
    versions: list[str] = Field(default_factory=list)
    detail: str = ""

    def key(self) -> tuple:
        return (
            self.kind,
            self.root.key if self.root else "",
            self.unit.key if self.unit else "",
            str(self.requirement) if self.requirement else "",
            tuple(self.versions),
        )

    def __str__(self) -> str:
        if self.detail:
            return self.detail
        if self.kind == "missing":
            return f"{self.unit} requires {self.requirement}, which no candidate provides"
        if self.kind == "singleton":
            uid = self.unit.id if self.unit else "?"
            return f"Singleton {uid} is needed in versions {', '.join(self.versions)}"
        return f"{self.kind}: {self.unit}"


class RequestStatus(BaseModel):
    """Feasibility of a change request, with conflict attribution."""

    severity: RequestSeverity = RequestSeverity.OK
    conflicts_with_installed_roots: list[InstallableUnit] = Field(default_factory=list)
    conflicts_with_any_roots: list[InstallableUnit] = Field(default_factory=list)
    explanations: list[Explanation] = Field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return self.severity == RequestSeverity.OK

    def to_status(self) -> Status:
        if self.is_ok:
            return Status.ok("Request is satisfiable", source="planner")
        lines = [str(e) for e in self.explanations]
        message = "; ".join(lines) if lines else f"Request is not satisfiable ({self.severity})"
        return Status(severity=Severity.ERROR, message=message, source="planner")


class ProvisioningPlan(BaseModel):
    """Resolved operands plus the status explaining feasibility."""

    profile_id: str
    status: RequestStatus = Field(default_factory=RequestStatus)
    operands: list[Operand | PropertyOperand] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_resolved(self) -> ProvisioningPlan:
        if not self.status.is_ok and self.operands:
            raise ValueError(
                f"A {self.status.severity} plan cannot carry operands"
            )
        return self

    @property
    def is_ok(self) -> bool:
        return self.status.is_ok

    @property
    def additions(self) -> list[InstallableUnit]:
        """Units the plan installs (install and update targets)."""
        return [
            op.after
            for op in self.operands
            if isinstance(op, Operand) and op.after is not None and op.before != op.after
        ]

    @property
    def removals(self) -> list[InstallableUnit]:
        """Units the plan uninstalls (uninstall and update sources)."""
        return [
            op.before
            for op in self.operands
            if isinstance(op, Operand) and op.before is not None and op.before != op.after
        ]

    @classmethod
    def infeasible(cls, profile_id: str, status: RequestStatus) -> ProvisioningPlan:
        return cls(profile_id=profile_id, status=status, operands=[])
