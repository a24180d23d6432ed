"""
Provision use cases — install, uninstall, update and revert a profile.

Each use case builds a change request, resolves it against the
workspace's pool and, unless it is a dry run, performs the plan with the
default phase set. Nothing here prints; the CLI renders the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from provisioning.core.engine.phases import default_phase_set
from provisioning.core.models.plan import ProvisioningPlan
from provisioning.core.models.profile import Profile
from provisioning.core.models.request import ProfileChangeRequest
from provisioning.core.models.status import Status
from provisioning.core.models.version import VersionRange
from provisioning.core.planner.resolver import plan_revert, resolve
from provisioning.core.planner.updates import compute_update_request
from provisioning.core.use_cases.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Outcome of one provisioning command."""

    profile_id: str
    command: str
    dry_run: bool = False
    plan: ProvisioningPlan | None = None
    status: Status | None = None
    error: str | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        if self.error is not None:
            return False
        if self.plan is not None and not self.plan.is_ok:
            return False
        return self.status is None or self.status.is_success

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "profile_id": self.profile_id,
            "command": self.command,
            "dry_run": self.dry_run,
            "ok": self.ok,
        }
        if self.error:
            result["error"] = self.error
        if self.notes:
            result["notes"] = list(self.notes)
        if self.plan is not None:
            result["plan"] = {
                "severity": self.plan.status.severity.value,
                "operands": [
                    {"kind": op.kind, "operand": str(op)} for op in self.plan.operands
                ],
                "conflicts_with_installed_roots": [
                    u.key for u in self.plan.status.conflicts_with_installed_roots
                ],
                "conflicts_with_any_roots": [
                    u.key for u in self.plan.status.conflicts_with_any_roots
                ],
                "explanations": [str(e) for e in self.plan.status.explanations],
            }
        if self.status is not None:
            result["status"] = self.status.to_dict()
            result["status"]["severity"] = self.status.severity.name
        return result


def parse_unit_spec(text: str) -> tuple[str, VersionRange | None]:
    """Split ``id``, ``id@1.2.0`` or ``id@[1.0,2.0)`` into id and range.

    Raises:
        ValueError: Empty id or malformed version.
    """
    unit_id, sep, version = text.partition("@")
    unit_id = unit_id.strip()
    if not unit_id:
        raise ValueError(f"Missing unit id in {text!r}")
    if not sep:
        return unit_id, None
    version = version.strip()
    if version[:1] in "[(":
        return unit_id, VersionRange.parse(version)
    return unit_id, VersionRange.exact(version)


# ── Use cases ───────────────────────────────────────────────────


def run_install(
    ws: Workspace,
    profile_id: str,
    specs: list[str],
    dry_run: bool = False,
) -> ProvisionResult:
    """Install the highest available unit matching each spec."""
    result = ProvisionResult(profile_id=profile_id, command="install", dry_run=dry_run)
    profile = _load_profile(ws, result)
    if profile is None:
        return result

    request = ProfileChangeRequest(profile)
    for spec in specs:
        try:
            unit_id, version_range = parse_unit_spec(spec)
        except ValueError as e:
            result.error = str(e)
            return result
        candidates = ws.pool.by_id(unit_id, version_range)
        if not candidates:
            result.error = f"No unit matches {spec!r}"
            return result
        request.add(candidates[0])

    return _apply(ws, profile, request, result)


def run_uninstall(
    ws: Workspace,
    profile_id: str,
    unit_ids: list[str],
    dry_run: bool = False,
) -> ProvisionResult:
    """Remove every installed version of the given units."""
    result = ProvisionResult(profile_id=profile_id, command="uninstall", dry_run=dry_run)
    profile = _load_profile(ws, result)
    if profile is None:
        return result

    request = ProfileChangeRequest(profile)
    for unit_id in unit_ids:
        installed = profile.query(unit_id)
        if not installed:
            result.error = f"{unit_id} is not installed in {profile_id}"
            return result
        request.remove_all(installed)

    return _apply(ws, profile, request, result)


def run_update(ws: Workspace, profile_id: str, dry_run: bool = False) -> ProvisionResult:
    """Update the profile's roots to the newest versions that fit together."""
    result = ProvisionResult(profile_id=profile_id, command="update", dry_run=dry_run)
    profile = _load_profile(ws, result)
    if profile is None:
        return result

    request = compute_update_request(profile, ws.pool, ws.context())
    if request is None:
        result.notes.append("Everything is up to date")
        return result
    return _apply(ws, profile, request, result)


def run_revert(
    ws: Workspace,
    profile_id: str,
    timestamp: int,
    dry_run: bool = False,
) -> ProvisionResult:
    """Bring the profile back to a committed historical state."""
    result = ProvisionResult(profile_id=profile_id, command="revert", dry_run=dry_run)
    profile = _load_profile(ws, result)
    if profile is None:
        return result

    target = ws.store.get(profile_id, timestamp)
    if target is None:
        result.error = f"Profile {profile_id} has no state at {timestamp}"
        return result

    plan = plan_revert(profile, target)
    return _execute(ws, profile, plan, result)


# ── Internal ────────────────────────────────────────────────────


def _load_profile(ws: Workspace, result: ProvisionResult) -> Profile | None:
    profile = ws.store.get(result.profile_id)
    if profile is None:
        result.error = f"Unknown profile: {result.profile_id}"
    return profile


def _apply(
    ws: Workspace,
    profile: Profile,
    request: ProfileChangeRequest,
    result: ProvisionResult,
) -> ProvisionResult:
    plan = resolve(profile, request, ws.pool, ws.context())
    return _execute(ws, profile, plan, result)


def _execute(
    ws: Workspace,
    profile: Profile,
    plan: ProvisioningPlan,
    result: ProvisionResult,
) -> ProvisionResult:
    result.plan = plan
    if not plan.is_ok:
        logger.info("%s on %s not satisfiable", result.command, profile.profile_id)
        return result
    if not plan.operands:
        result.notes.append("Nothing to do")
        return result

    phase_set = default_phase_set()
    if result.dry_run:
        result.status = ws.engine.validate(profile, phase_set, plan.operands, ws.context())
    else:
        result.status = ws.engine.perform(profile, phase_set, plan.operands, ws.context())
    return result
