"""
Planner search — candidate universe and backtracking selection (pure).

The universe is every unit the planner may select: installed units,
requested additions, context extras, and pool units reachable through
requirement edges. The solver picks a set of units such that

    - every mandatory root is selected,
    - every non-optional requirement of a selected unit is provided by
      some selected unit,
    - two versions of the same id are never selected when either is a
      singleton.

Dead ends are recorded as explanations attributed to the root whose
subtree hit them, so callers can report conflicts in terms of what they
asked for.

No I/O. Never mutates its inputs.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from provisioning.core.models.plan import Explanation
from provisioning.core.models.unit import InstallableUnit, RequiredCapability, unit_requirement
from provisioning.core.models.version import Version, VersionRange
from provisioning.core.repository.pool import UnitPool

logger = logging.getLogger(__name__)

# Upper bound on branch expansions for one solve call.
MAX_SEARCH_STEPS = 50_000


def _considered(requirement: RequiredCapability) -> bool:
    """Whether the planner ever tries to satisfy this requirement."""
    return not requirement.optional or requirement.greedy


class _CapabilityIndex:
    """Units keyed by identity and by provided ``(namespace, name)``."""

    def __init__(self, units: Iterable[InstallableUnit] = ()):
        self.units: dict[tuple[str, Version], InstallableUnit] = {}
        self._by_capability: dict[tuple[str, str], list[InstallableUnit]] = {}
        for unit in units:
            self.add(unit)

    def add(self, unit: InstallableUnit) -> None:
        if unit.identity in self.units:
            return
        self.units[unit.identity] = unit
        for name in {(c.namespace, c.name) for c in unit.capabilities}:
            self._by_capability.setdefault(name, []).append(unit)

    def matching(self, requirement: RequiredCapability) -> list[InstallableUnit]:
        bucket = self._by_capability.get((requirement.namespace, requirement.name), ())
        return [u for u in bucket if u.satisfies(requirement)]


class Universe:
    """Candidate units reachable from the roots, indexed for lookups."""

    def __init__(self, units: Iterable[InstallableUnit]):
        self._index = _CapabilityIndex(units)
        self._provider_cache: dict[RequiredCapability, list[InstallableUnit]] = {}

    @classmethod
    def build(
        cls,
        pool: UnitPool,
        seeds: Iterable[InstallableUnit],
        extra_units: Iterable[InstallableUnit] = (),
        requirements: Iterable[RequiredCapability] = (),
        excluded: Iterable[InstallableUnit] = (),
    ) -> Universe:
        """Close ``seeds`` under requirement edges.

        ``seeds`` and ``extra_units`` are always candidates; pool units
        join when some reachable requirement matches them. ``excluded``
        units never join.
        """
        banned = {u.identity for u in excluded}
        local = _CapabilityIndex(
            u for u in (*seeds, *extra_units) if u.identity not in banned
        )
        available = _CapabilityIndex(
            u for u in pool.all_units() if u.identity not in banned
        )

        def _providers(req: RequiredCapability) -> list[InstallableUnit]:
            return [*local.matching(req), *available.matching(req)]

        selected: dict[tuple[str, Version], InstallableUnit] = {}
        queue: deque[InstallableUnit] = deque(u for u in seeds if u.identity not in banned)
        for req in requirements:
            queue.extend(_providers(req))

        while queue:
            unit = queue.popleft()
            if unit.identity in selected:
                continue
            selected[unit.identity] = unit
            for req in unit.requires:
                if not _considered(req):
                    continue
                for provider in _providers(req):
                    if provider.identity not in selected:
                        queue.append(provider)

        universe = cls(selected.values())
        # Extra units stay available even when nothing reaches them yet.
        for unit in local.units.values():
            universe._index.add(unit)
        logger.debug("Planner universe: %d candidate units", len(universe))
        return universe

    def __len__(self) -> int:
        return len(self._index.units)

    def __contains__(self, unit: InstallableUnit) -> bool:
        return unit.identity in self._index.units

    def units(self) -> list[InstallableUnit]:
        return list(self._index.units.values())

    def providers(self, requirement: RequiredCapability) -> list[InstallableUnit]:
        """Providers of a requirement, highest version first."""
        cached = self._provider_cache.get(requirement)
        if cached is None:
            cached = sorted(
                self._index.matching(requirement),
                key=lambda u: (u.version, u.id),
                reverse=True,
            )
            self._provider_cache[requirement] = cached
        return cached


@dataclass(frozen=True)
class Goal:
    """A requirement to satisfy, with the unit and root it came from."""

    requirement: RequiredCapability
    requirer: InstallableUnit | None = None
    root: InstallableUnit | None = None


def root_goal(root: InstallableUnit) -> Goal:
    """Goal that selects exactly ``root``."""
    return Goal(
        requirement=unit_requirement(root.id, VersionRange.exact(root.version)),
        requirer=None,
        root=root,
    )


class _State:
    """Current selection plus a trail of additions, undone on backtrack."""

    def __init__(self, units: Iterable[InstallableUnit] = ()):
        self.selected: dict[tuple[str, Version], InstallableUnit] = {}
        self.origin: dict[tuple[str, Version], InstallableUnit | None] = {}
        self.by_id: dict[str, list[InstallableUnit]] = {}
        self.trail: list[tuple[str, Version]] = []
        for unit in units:
            self.add(unit, None)

    def add(self, unit: InstallableUnit, root: InstallableUnit | None) -> None:
        self.selected[unit.identity] = unit
        self.origin[unit.identity] = root
        self.by_id.setdefault(unit.id, []).append(unit)
        self.trail.append(unit.identity)

    def undo(self, size: int) -> None:
        """Drop every addition made after the trail had ``size`` entries."""
        while len(self.trail) > size:
            identity = self.trail.pop()
            unit = self.selected.pop(identity)
            del self.origin[identity]
            versions = self.by_id[unit.id]
            versions.pop()
            if not versions:
                del self.by_id[unit.id]


@dataclass
class _ChoicePoint:
    """An open goal and the providers not tried for it yet."""

    goal_index: int
    candidates: list[InstallableUnit]
    agenda_size: int
    trail_size: int
    next: int = 0


class _SearchLimit(Exception):
    pass


class Solver:
    """Backtracking selection over a universe.

    Args:
        universe: Candidate units.
        requested: Units the caller asked for explicitly; preferred
            over other providers of the same requirement.
    """

    def __init__(self, universe: Universe, requested: Iterable[InstallableUnit] = ()):
        self._universe = universe
        self._requested = {u.identity for u in requested}
        self._failures: dict[tuple, Explanation] = {}
        self._steps = 0

    @property
    def failures(self) -> list[Explanation]:
        """Dead ends recorded since the last solve started."""
        return list(self._failures.values())

    # ── Public API ───────────────────────────────────────────────

    def solve(
        self,
        roots: Iterable[InstallableUnit],
        requirements: Iterable[RequiredCapability] = (),
        base: dict[tuple[str, Version], InstallableUnit] | None = None,
    ) -> dict[tuple[str, Version], InstallableUnit] | None:
        """Select units satisfying ``roots`` and root-level ``requirements``.

        Returns the selection keyed by identity, or None when infeasible
        (see ``failures``).
        """
        self._failures = {}
        self._steps = 0
        goals = [root_goal(r) for r in roots]
        goals.extend(Goal(requirement=req) for req in requirements)

        state = _State((base or {}).values())
        try:
            found = self._search(state, goals)
        except _SearchLimit:
            self._record(Explanation(
                kind="root",
                detail=f"Search abandoned after {MAX_SEARCH_STEPS} steps",
            ))
            return None
        return dict(state.selected) if found else None

    def extend(
        self,
        selection: dict[tuple[str, Version], InstallableUnit],
        optional_roots: Iterable[InstallableUnit] = (),
        optional_requirements: Iterable[RequiredCapability] = (),
    ) -> dict[tuple[str, Version], InstallableUnit]:
        """Add optional roots, optional requirements and greedy optional
        dependencies one at a time, keeping each only when it fits."""
        current = dict(selection)
        outside = self._outside(current)
        attempts: list[Goal] = [root_goal(r) for r in optional_roots]
        attempts.extend(Goal(requirement=req) for req in optional_requirements)
        attempts.extend(self._greedy_goals(current.values()))
        tried: set[Goal] = set()

        while attempts:
            goal = attempts.pop(0)
            if goal in tried:
                continue
            tried.add(goal)
            if self._satisfied(goal.requirement, current, outside):
                continue
            mandatory = Goal(
                requirement=goal.requirement.model_copy(update={"optional": False}),
                requirer=goal.requirer,
                root=goal.root,
            )
            before = set(current)
            result = self._try(current, mandatory)
            if result is None:
                logger.debug("Optional %s does not fit, skipped", goal.requirement)
                continue
            current = result
            added = [u for k, u in current.items() if k not in before]
            attempts.extend(self._greedy_goals(added))

        return current

    # ── Search ───────────────────────────────────────────────────

    def _try(
        self,
        selection: dict[tuple[str, Version], InstallableUnit],
        goal: Goal,
    ) -> dict[tuple[str, Version], InstallableUnit] | None:
        self._failures = {}
        self._steps = 0
        state = _State(selection.values())
        try:
            found = self._search(state, [goal])
        except _SearchLimit:
            return None
        return dict(state.selected) if found else None

    def _greedy_goals(self, units: Iterable[InstallableUnit]) -> list[Goal]:
        goals = []
        for unit in sorted(units, key=lambda u: u.identity):
            for req in unit.requires:
                if req.optional and req.greedy:
                    goals.append(Goal(requirement=req, requirer=unit, root=None))
        return goals

    def _search(self, state: _State, goals: list[Goal]) -> bool:
        """Extend ``state`` in place until every goal holds.

        Depth-first over an explicit stack of choice points. Goals are
        worked off an agenda in order; selecting a unit appends its
        requirements to the agenda. Backtracking truncates the agenda and
        undoes the selection trail back to the choice point.
        """
        agenda = list(goals)
        outside = self._outside(state.selected)
        stack: list[_ChoicePoint] = []
        position = 0

        while True:
            self._steps += 1
            if self._steps > MAX_SEARCH_STEPS:
                raise _SearchLimit()

            while position < len(agenda) and self._satisfied(
                agenda[position].requirement, state.selected, outside,
            ):
                position += 1
            if position == len(agenda):
                return True

            goal = agenda[position]
            candidates = self._candidates(goal.requirement)
            if candidates:
                stack.append(_ChoicePoint(
                    goal_index=position,
                    candidates=candidates,
                    agenda_size=len(agenda),
                    trail_size=len(state.trail),
                ))
            else:
                self._record(Explanation(
                    kind="missing" if goal.requirer is not None else ("root" if goal.root else "extra"),
                    root=goal.root,
                    unit=goal.requirer or goal.root,
                    requirement=goal.requirement,
                    detail=self._missing_detail(goal),
                ))

            resumed = self._next_choice(state, agenda, stack)
            if resumed is None:
                return False
            position = resumed

    def _next_choice(
        self,
        state: _State,
        agenda: list[Goal],
        stack: list[_ChoicePoint],
    ) -> int | None:
        """Select the next untried candidate of the innermost choice point.

        Returns the agenda position to continue from, or None when every
        choice point is exhausted.
        """
        while stack:
            point = stack[-1]
            state.undo(point.trail_size)
            del agenda[point.agenda_size:]
            goal = agenda[point.goal_index]

            while point.next < len(point.candidates):
                candidate = point.candidates[point.next]
                point.next += 1
                clash = self._clash(candidate, state)
                if clash is not None:
                    self._record(self._singleton_explanation(goal, candidate, clash, state))
                    continue
                root = goal.root if goal.root is not None else (
                    state.origin.get(goal.requirer.identity) if goal.requirer else None
                )
                state.add(candidate, root)
                agenda.extend(
                    Goal(requirement=req, requirer=candidate, root=root)
                    for req in candidate.requires
                    if not req.optional
                )
                return point.goal_index + 1

            stack.pop()
        return None

    def _satisfied(
        self,
        requirement: RequiredCapability,
        selected: dict[tuple[str, Version], InstallableUnit],
        outside: list[InstallableUnit],
    ) -> bool:
        if any(p.identity in selected for p in self._universe.providers(requirement)):
            return True
        return any(u.satisfies(requirement) for u in outside)

    def _outside(
        self,
        selection: dict[tuple[str, Version], InstallableUnit],
    ) -> list[InstallableUnit]:
        """Selected units the universe does not know about."""
        return [u for u in selection.values() if u not in self._universe]

    def _candidates(self, requirement: RequiredCapability) -> list[InstallableUnit]:
        providers = self._universe.providers(requirement)
        requested = [u for u in providers if u.identity in self._requested]
        others = [u for u in providers if u.identity not in self._requested]
        return requested + others

    @staticmethod
    def _clash(candidate: InstallableUnit, state: _State) -> InstallableUnit | None:
        for unit in state.by_id.get(candidate.id, ()):
            if unit.id == candidate.id and unit.version != candidate.version:
                if unit.singleton or candidate.singleton:
                    return unit
        return None

    # ── Explanations ─────────────────────────────────────────────

    def _record(self, explanation: Explanation) -> None:
        self._failures.setdefault(explanation.key(), explanation)

    @staticmethod
    def _missing_detail(goal: Goal) -> str:
        if goal.requirer is None and goal.root is not None:
            return f"Root {goal.root} is not available"
        if goal.requirer is None:
            return f"No candidate satisfies the extra requirement {goal.requirement}"
        via = f" (needed by root {goal.root})" if goal.root and goal.root != goal.requirer else ""
        return f"{goal.requirer} requires {goal.requirement}, which no candidate provides{via}"

    @staticmethod
    def _singleton_explanation(
        goal: Goal,
        candidate: InstallableUnit,
        existing: InstallableUnit,
        state: _State,
    ) -> Explanation:
        existing_root = state.origin.get(existing.identity)
        versions = sorted([existing.version, candidate.version])
        left = f"{existing.version}" + (f" via {existing_root.id}" if existing_root else "")
        right = f"{candidate.version}" + (f" via {goal.root.id}" if goal.root else "")
        return Explanation(
            kind="singleton",
            root=goal.root,
            unit=candidate,
            requirement=goal.requirement,
            versions=[str(v) for v in versions],
            detail=f"Singleton {candidate.id} cannot be installed as both {left} and {right}",
        )
