"""
Operands — the units of work handed to the phase pipeline.

An Operand is a ``(before, after)`` pair:

    before=None, after=U   install U
    before=U, after=None   uninstall U
    before=U, after=V      update U to V
    before=U, after=U      keep U, only its profile properties change

A PropertyOperand changes one profile property.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from provisioning.core.models.unit import InstallableUnit

# Operand property carrying the inclusion rule the operand installs with.
INCLUSION_PROPERTY = "inclusion"

OperandKind = Literal["install", "uninstall", "update", "property"]


class Operand(BaseModel):
    """A before/after pair of installable units."""

    model_config = ConfigDict(frozen=True)

    before: InstallableUnit | None = None
    after: InstallableUnit | None = None
    properties: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_not_empty(self) -> Operand:
        if self.before is None and self.after is None:
            raise ValueError("An operand needs a before or an after unit")
        return self

    @property
    def kind(self) -> OperandKind:
        if self.before is None:
            return "install"
        if self.after is None:
            return "uninstall"
        if self.before == self.after:
            return "property"
        return "update"

    @property
    def unit_id(self) -> str:
        unit = self.after or self.before
        assert unit is not None  # guaranteed by the validator
        return unit.id

    @classmethod
    def install(cls, unit: InstallableUnit, **properties: str) -> Operand:
        return cls(after=unit, properties=properties)

    @classmethod
    def uninstall(cls, unit: InstallableUnit) -> Operand:
        return cls(before=unit)

    @classmethod
    def update(cls, before: InstallableUnit, after: InstallableUnit, **properties: str) -> Operand:
        return cls(before=before, after=after, properties=properties)

    def __hash__(self) -> int:
        return hash((self.before, self.after, tuple(sorted(self.properties.items()))))

    def __str__(self) -> str:
        left = str(self.before) if self.before else "-"
        right = str(self.after) if self.after else "-"
        return f"{left} --> {right}"


class PropertyOperand(BaseModel):
    """A change of one profile property. ``after=None`` removes it."""

    model_config = ConfigDict(frozen=True)

    key: str
    before: str | None = None
    after: str | None = None

    @property
    def kind(self) -> OperandKind:
        return "property"

    def __str__(self) -> str:
        return f"{self.key}: {self.before!r} --> {self.after!r}"


AnyOperand = Operand | PropertyOperand
