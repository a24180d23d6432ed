"""
Conflict analysis — which requested roots make a request infeasible.

Runs only after the full solve failed. The result splits the blame into
two sets:

    conflicts_with_installed_roots  requested roots that cannot join the
                                    installed roots
    conflicts_with_any_roots        requested roots (and the roots they
                                    clash with) that cannot coexist with
                                    some other root

The first set is always a subset of the second. Each check is a small
re-solve over the same universe, so explanations stay attributed to the
root whose dependency subtree hit the dead end.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from provisioning.core.models.plan import Explanation, RequestSeverity, RequestStatus
from provisioning.core.models.unit import InstallableUnit, RequiredCapability
from provisioning.core.planner.solver import Solver

logger = logging.getLogger(__name__)


class _Collector:
    """Ordered, de-duplicated roots and explanations."""

    def __init__(self) -> None:
        self.installed: list[InstallableUnit] = []
        self.any: list[InstallableUnit] = []
        self._explanations: dict[tuple, Explanation] = {}

    def blame_installed(self, unit: InstallableUnit) -> None:
        if unit not in self.installed:
            self.installed.append(unit)
        self.blame_any(unit)

    def blame_any(self, unit: InstallableUnit) -> None:
        if unit not in self.any:
            self.any.append(unit)

    def explain(self, explanations: Sequence[Explanation]) -> None:
        for explanation in explanations:
            self._explanations.setdefault(explanation.key(), explanation)

    @property
    def explanations(self) -> list[Explanation]:
        return list(self._explanations.values())


def explain_conflicts(
    solver: Solver,
    installed_roots: Sequence[InstallableUnit],
    requested_roots: Sequence[InstallableUnit],
    requirements: Sequence[RequiredCapability],
    failures: Sequence[Explanation],
    *,
    has_removals: bool = False,
) -> RequestStatus:
    """Attribute a failed resolution to roots.

    Args:
        solver: The solver that failed, reused for the narrower checks.
        installed_roots: Strict roots already in the profile (minus removals).
        requested_roots: Strict roots the request adds.
        requirements: Mandatory extra requirements of the request.
        failures: Explanations recorded by the failed full solve.
        has_removals: Whether the request removes units. A broken base
            is then the request's doing (conflict), not the profile's
            (error).
    """
    collected = _Collector()

    # Base: what is installed plus the extra constraints, without additions.
    if solver.solve(installed_roots, requirements) is None:
        collected.explain(solver.failures)
        for root in installed_roots:
            if solver.solve([root]) is None:
                collected.blame_any(root)
                collected.explain(solver.failures)
        severity = RequestSeverity.CONFLICT if has_removals else RequestSeverity.ERROR
        logger.info(
            "Installed roots are not satisfiable on their own (%s): %d explanations",
            severity,
            len(collected.explanations),
        )
        return RequestStatus(
            severity=severity,
            conflicts_with_installed_roots=[],
            conflicts_with_any_roots=collected.any,
            explanations=collected.explanations or list(failures),
        )

    # Each requested root against the installed base.
    for root in requested_roots:
        if solver.solve([*installed_roots, root], requirements) is None:
            collected.blame_installed(root)
            collected.explain(solver.failures)

    # Each requested root alone, and paired with every other root.
    all_roots = [*installed_roots, *requested_roots]
    for root in requested_roots:
        if solver.solve([root]) is None:
            collected.blame_any(root)
            collected.explain(solver.failures)
            continue
        for other in all_roots:
            if other == root:
                continue
            if solver.solve([root, other]) is None:
                collected.blame_any(root)
                collected.blame_any(other)
                collected.explain(solver.failures)

    if not collected.any:
        # Only the full combination fails; blame every requested root.
        for root in requested_roots:
            collected.blame_any(root)
        collected.explain(failures)

    logger.info(
        "Request conflicts: %d with installed roots, %d with any roots",
        len(collected.installed),
        len(collected.any),
    )
    return RequestStatus(
        severity=RequestSeverity.CONFLICT,
        conflicts_with_installed_roots=collected.installed,
        conflicts_with_any_roots=collected.any,
        explanations=collected.explanations,
    )
