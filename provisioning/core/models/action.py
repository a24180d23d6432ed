"""
ActionDescriptor — one scheduled action of a phase.

Phases turn operands into descriptors; the action registry turns
descriptors into calls on action implementations. A descriptor is data
only, so a phase set can be validated without executing anything.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from provisioning.core.models.operand import Operand, PropertyOperand


class ActionDescriptor(BaseModel):
    """A requested action: which kind, in which phase, for which operand."""

    id: str                         # unique within one phase-set run
    kind: str                       # registry key, e.g. "profile.add_unit"
    phase: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    operand: Operand | PropertyOperand | None = None

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)
