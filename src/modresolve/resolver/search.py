"""Greedy candidate selection with conflict-directed backtracking.

The search keeps an explicit stack of choice points instead of recursing.
Each choice point decides either whether a root module is activated or
which candidate supplies one requirement; its cursor indexes the candidate
list. A rejected candidate records which earlier choice point caused the
rejection (its "blame"). When a mandatory requirement runs out of
candidates the search jumps back to the latest blamed choice point and
advances its cursor, handing over the remaining blames. When the
requirement lost candidates to conflicts, the decision that activated its
module is blamed as well, so a root can end up skipped. With nothing to
blame, the owning module fails and the caller restarts without it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

from ..common.logging_utils import extra_context, is_debug_enabled
from ..model.capability import Capability
from ..model.constraints import VersionConstraint
from ..model.module import Module
from ..report import FailureKind, ResolutionFailure
from .consistency import UsesChecker, UsesConflict, Wires, resolved_exports, resolved_wires

if TYPE_CHECKING:
    from ..state import State

logger = logging.getLogger(__name__)


class SingletonConflict(NamedTuple):
    """``holder`` already occupies the singleton slot ``module`` needs."""

    module: Module
    holder: Module
    blame: Optional[int]

    def describe(self) -> str:
        return f"singleton conflict with {self.holder.identity}"


@dataclass
class ChoicePoint:
    """One decision on the search stack."""

    index: int
    module: Module
    constraint: Optional[VersionConstraint]  # None: root activation
    candidates: List[Capability]
    agenda_pos: int
    agenda_len: int
    matched: int = 0
    cursor: int = -1
    chosen: Optional[Capability] = None
    activated: Optional[Module] = None
    blames: Set[int] = field(default_factory=set)
    conflict: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.constraint is None


@dataclass
class SearchResult:
    """Outcome of one search run."""

    success: bool
    selections: Dict[VersionConstraint, Capability] = field(default_factory=dict)
    active: List[Module] = field(default_factory=list)
    skipped: Dict[Module, ResolutionFailure] = field(default_factory=dict)
    failed_module: Optional[Module] = None
    failure: Optional[ResolutionFailure] = None
    backtracks: int = 0


class ChoiceSearch:
    """Select suppliers for ``roots`` and everything they pull in."""

    def __init__(
        self,
        state: "State",
        roots: Sequence[Module],
        excluded: Iterable[Module] = (),
        max_backtracks: int = 10000,
    ):
        self._state = state
        self._roots = list(roots)
        self._excluded: Set[Module] = set(excluded)
        self._max_backtracks = max_backtracks
        self._stack: List[ChoicePoint] = []
        self._agenda: List[Tuple[Module, Optional[VersionConstraint]]] = []
        self._active: Dict[Module, int] = {}
        # Latest consistency failure seen per module, reported if its root is skipped.
        self._failures: Dict[Module, ResolutionFailure] = {}
        self._backtracks = 0

    def run(self) -> SearchResult:
        self._agenda = [(root, None) for root in self._roots]
        pos = 0
        while True:
            if pos >= len(self._agenda):
                conflict = self._find_uses_conflict()
                if conflict is None:
                    return self._success()
                outcome = self._retract(conflict)
            else:
                module, constraint = self._agenda[pos]
                if constraint is None and module in self._active:
                    pos += 1
                    continue
                outcome = self._settle(self._push(pos, module, constraint), 0)
            if isinstance(outcome, SearchResult):
                return outcome
            pos = outcome

    # Stack handling

    def _push(self, pos: int, module: Module, constraint: Optional[VersionConstraint]) -> ChoicePoint:
        candidates: List[Capability] = []
        matched = 0
        if constraint is not None:
            found = self._state.find_candidates(constraint)
            matched = len(found)
            candidates = [cap for cap in found if self._usable(cap)]
        cp = ChoicePoint(
            index=len(self._stack),
            module=module,
            constraint=constraint,
            candidates=candidates,
            agenda_pos=pos,
            agenda_len=len(self._agenda),
            matched=matched,
        )
        self._stack.append(cp)
        return cp

    def _usable(self, cap: Capability) -> bool:
        owner = cap.module
        if owner in self._excluded:
            return False
        if owner.is_fragment and not owner.is_resolved():
            return False
        return True

    def _rewind(self, target: int) -> ChoicePoint:
        """Drop every choice point above ``target`` and undo its own choice."""
        del self._stack[target + 1:]
        cp = self._stack[target]
        del self._agenda[cp.agenda_len:]
        self._active = {m: idx for m, idx in self._active.items() if idx < target}
        cp.chosen = None
        cp.activated = None
        return cp

    def _spend(self) -> bool:
        self._backtracks += 1
        return self._backtracks <= self._max_backtracks

    # Decisions

    def _settle(self, cp: ChoicePoint, start: int) -> Union[int, SearchResult]:
        """Choose for ``cp`` from ``start``, jumping back while it is exhausted."""
        while not self._choose(cp, start):
            if cp.conflict is not None and not cp.is_root:
                # Conflicts also implicate the decision that activated the owner.
                self._failures[cp.module] = self._exhausted(cp)
                activation = self._active.get(cp.module)
                if activation is not None and activation < cp.index:
                    cp.blames.add(activation)
            if not cp.blames:
                return self._failure(cp.module, self._exhausted(cp))
            if not self._spend():
                return self._failure(cp.module, self._exhausted(cp, "backtracking limit reached"))
            target = max(cp.blames)
            inherited = {b for b in cp.blames if b < target}
            conflict = cp.conflict
            cp = self._rewind(target)
            cp.blames |= inherited
            cp.conflict = cp.conflict or conflict
            if is_debug_enabled(logger):
                logger.debug(
                    "Backtracking",
                    extra=extra_context(
                        event="backtrack",
                        component="resolver",
                        action="settle",
                        target=str(cp.module.identity),
                        requirement=cp.constraint.name if cp.constraint is not None else None,
                        depth=len(self._stack),
                    ),
                )
            start = cp.cursor + 1
        return cp.agenda_pos + 1

    def _choose(self, cp: ChoicePoint, start: int) -> bool:
        if cp.is_root:
            if start == 0 and self._singleton_conflict(cp.module) is None:
                cp.cursor = 0
                cp.activated = cp.module
                self._activate(cp.module, cp.index)
                return True
            # Skipping is the last alternative of a root.
            cp.cursor = 1
            return start <= 1

        for i in range(start, len(cp.candidates)):
            cap = cp.candidates[i]
            owner = cap.module
            if owner.is_resolved() or owner in self._active:
                cp.cursor, cp.chosen = i, cap
                return True
            clash = self._singleton_conflict(owner)
            if clash is not None:
                cp.conflict = clash.describe()
                # No blame when the holder is already resolved: nothing to undo.
                if clash.blame is not None:
                    cp.blames.add(clash.blame)
                continue
            cp.cursor, cp.chosen, cp.activated = i, cap, owner
            self._activate(owner, cp.index)
            return True

        cp.cursor = len(cp.candidates)
        return cp.constraint.optional

    def _activate(self, module: Module, index: int) -> None:
        self._active[module] = index
        for constraint in module.requirements:
            self._agenda.append((module, constraint))

    def _singleton_conflict(self, module: Module) -> Optional[SingletonConflict]:
        if not module.singleton:
            return None
        for other in self._state.get_modules(module.symbolic_name):
            if other is module or not other.singleton:
                continue
            if other.is_resolved():
                return SingletonConflict(module, other, None)
            if other in self._active:
                return SingletonConflict(module, other, self._active[other])
        return None

    # Uses consistency

    def _tentative_wires(self) -> Dict[Module, Wires]:
        chosen: Dict[Module, Dict[VersionConstraint, Tuple[Capability, ...]]] = {}
        for cp in self._stack:
            if cp.constraint is not None and cp.chosen is not None:
                chosen.setdefault(cp.module, {})[cp.constraint] = (cp.chosen,)
        ordered: Dict[Module, Wires] = {}
        for module in self._active:
            picks = chosen.get(module, {})
            ordered[module] = {c: picks[c] for c in module.requirements if c in picks}
        return ordered

    def _find_uses_conflict(self) -> Optional[UsesConflict]:
        tentative = self._tentative_wires()

        def wires_of(module: Module) -> Wires:
            if module in tentative:
                return tentative[module]
            return resolved_wires(module)

        def exports_of(module: Module) -> Tuple[Capability, ...]:
            if module in tentative:
                return module.exports
            return resolved_exports(module)

        checker = UsesChecker(wires_of, exports_of)
        for module in self._active:
            conflict = checker.find_conflict(module)
            if conflict is not None:
                return conflict
        return None

    def _retract(self, conflict: UsesConflict) -> Union[int, SearchResult]:
        """Retract the most recently decided wire on either clashing path."""
        path = set(conflict.path)
        involved = {cp.index for cp in self._stack if cp.constraint in path and cp.chosen is not None}
        activation = self._active.get(conflict.module)
        if activation is not None:
            involved.add(activation)
        failure = ResolutionFailure(FailureKind.USES_CONFLICT, detail=conflict.describe())
        if not involved:
            return self._failure(conflict.module, failure)
        if not self._spend():
            return self._failure(
                conflict.module,
                ResolutionFailure(FailureKind.USES_CONFLICT, detail="backtracking limit reached"),
            )
        self._failures[conflict.module] = failure
        target = max(involved)
        cp = self._rewind(target)
        cp.blames |= involved - {target}
        cp.conflict = conflict.describe()
        if is_debug_enabled(logger):
            logger.debug(
                "Retracting wire after uses conflict",
                extra=extra_context(
                    event="uses_conflict",
                    component="resolver",
                    action="retract",
                    target=str(cp.module.identity),
                    package=conflict.package,
                ),
            )
        return self._settle(cp, cp.cursor + 1)

    # Results

    def _exhausted(self, cp: ChoicePoint, detail: Optional[str] = None) -> ResolutionFailure:
        constraint = cp.constraint
        if cp.conflict is not None:
            kind = FailureKind.CONSISTENCY_EXCLUDED
            detail = detail or cp.conflict
        else:
            kind = FailureKind.CANDIDATES_EXHAUSTED
            if detail is None:
                if cp.matched == 0:
                    detail = "no matching capability installed"
                else:
                    detail = f"{cp.matched} matching candidate(s) could not be resolved"
        if constraint is None:
            return ResolutionFailure(kind, detail=detail)
        return ResolutionFailure(kind, constraint.name, constraint.version_range, detail)

    def _failure(self, module: Module, failure: ResolutionFailure) -> SearchResult:
        return SearchResult(success=False, failed_module=module, failure=failure, backtracks=self._backtracks)

    def _success(self) -> SearchResult:
        selections = {
            cp.constraint: cp.chosen for cp in self._stack if cp.constraint is not None and cp.chosen is not None
        }
        skipped: Dict[Module, ResolutionFailure] = {}
        for cp in self._stack:
            if cp.is_root and cp.module not in self._active:
                clash = self._singleton_conflict(cp.module)
                if clash is not None:
                    skipped[cp.module] = ResolutionFailure(FailureKind.SINGLETON_CONFLICT, detail=clash.describe())
                else:
                    skipped[cp.module] = self._failures.get(
                        cp.module, ResolutionFailure(FailureKind.CONSISTENCY_EXCLUDED, detail="not selected")
                    )
        return SearchResult(
            success=True,
            selections=selections,
            active=list(self._active),
            skipped=skipped,
            backtracks=self._backtracks,
        )
