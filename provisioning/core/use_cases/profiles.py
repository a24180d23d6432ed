"""
Profile use cases — list, create, show, remove and history.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provisioning.core.models.profile import PROP_INSTALL_FOLDER, Profile
from provisioning.core.persistence.audit import LedgerEntry
from provisioning.core.persistence.profile_store import ProfileStoreError, UnknownProfileError
from provisioning.core.use_cases.workspace import Workspace

# Profile ids become directory names
_PROFILE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass
class ProfileResult:
    """A single profile, or the reason it could not be produced."""

    profile: Profile | None = None
    timestamps: list[int] = field(default_factory=list)
    transactions: list[LedgerEntry] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.profile is None:
            return {"error": self.error}
        profile = self.profile
        return {
            "profile_id": profile.profile_id,
            "timestamp": profile.timestamp,
            "properties": dict(profile.properties),
            "units": [
                {
                    "id": entry.unit.id,
                    "version": str(entry.unit.version),
                    "inclusion": entry.inclusion.value,
                    "properties": dict(entry.properties),
                }
                for entry in sorted(profile.entries.values(), key=lambda e: e.unit.identity)
            ],
            "timestamps": list(self.timestamps),
            "transactions": [t.model_dump(mode="json") for t in self.transactions],
        }


def list_profiles(ws: Workspace) -> list[Profile]:
    """All profiles at their latest committed state, by id."""
    return sorted(ws.store.list_profiles(), key=lambda p: p.profile_id)


def create_profile(
    ws: Workspace,
    profile_id: str,
    install_folder: Path | None = None,
    properties: dict[str, str] | None = None,
) -> ProfileResult:
    """Register a new, empty profile."""
    if not _PROFILE_ID.match(profile_id):
        return ProfileResult(error=f"Invalid profile id: {profile_id!r}")

    props = dict(properties or {})
    if install_folder is not None:
        props[PROP_INSTALL_FOLDER] = str(install_folder.expanduser().resolve())

    try:
        profile = ws.store.add(Profile(profile_id=profile_id, properties=props))
    except (ProfileStoreError, ValueError) as e:
        return ProfileResult(error=str(e))

    return ProfileResult(profile=profile, timestamps=ws.store.timestamps(profile_id))


def show_profile(ws: Workspace, profile_id: str, timestamp: int | None = None) -> ProfileResult:
    """A profile at its latest (or a given historical) state."""
    profile = ws.store.get(profile_id, timestamp)
    if profile is None:
        where = f" at {timestamp}" if timestamp is not None else ""
        return ProfileResult(error=f"Unknown profile: {profile_id}{where}")
    return ProfileResult(profile=profile, timestamps=ws.store.timestamps(profile_id))


def profile_history(ws: Workspace, profile_id: str) -> ProfileResult:
    """Committed states of a profile plus its ledger entries."""
    result = show_profile(ws, profile_id)
    if result.profile is not None and ws.ledger is not None:
        result.transactions = ws.ledger.for_profile(profile_id)
    return result


def remove_profile(ws: Workspace, profile_id: str) -> str | None:
    """Delete a profile with its history. Returns an error message or None."""
    try:
        ws.store.remove(profile_id)
    except UnknownProfileError:
        return f"Unknown profile: {profile_id}"
    return None
