"""
ProvisioningContext — per-call knobs shared by the planner and the engine.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from provisioning.core.models.unit import InstallableUnit


class ProvisioningContext(BaseModel):
    """Extra inputs for one resolve or perform call.

    Attributes:
        extra_units: Candidate units considered in addition to the pool.
        artifacts: Artifact key → local file the collect phase stages.
        install_folder: Overrides the profile's ``install.folder`` property.
        properties: Free-form settings for custom actions.
    """

    extra_units: list[InstallableUnit] = Field(default_factory=list)
    artifacts: dict[str, Path] = Field(default_factory=dict)
    install_folder: Path | None = None
    properties: dict[str, str] = Field(default_factory=dict)
