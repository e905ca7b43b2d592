"""Resolver entry point: closure, search, commit, fragments and propagation.

The Resolver never raises for modules it cannot resolve; it records why in
the returned ResolutionReport. It only raises for structural misuse, such as
requesting a module the State does not contain.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants
from ..model.capability import ModuleIdentity
from ..model.module import Module, Wiring
from ..report import FailureKind, ModuleOutcome, ResolutionFailure, ResolutionReport, ResolutionStatus
from .consistency import UsesChecker
from .fragments import FragmentAttacher
from .search import ChoiceSearch, SearchResult

if TYPE_CHECKING:
    from ..state import IdentityLike, State

logger = logging.getLogger(__name__)


class Resolver:
    """Computes a consistent wiring for a State.

    Callers normally go through ``State.resolve``, which holds the State's
    writer lock for the duration of the pass.
    """

    def __init__(self, state: "State"):
        self._state = state

    def resolve(
        self, subset: Optional[Sequence["IdentityLike"]] = None, propagate: bool = True
    ) -> ResolutionReport:
        """Resolve ``subset``, or every unresolved module when it is None.

        Requested modules that are already resolved are re-resolved. With
        ``propagate`` their dependents are re-resolved too; without it the
        dependents keep their wiring when it is still valid and are
        unresolved otherwise.

        Raises:
            UnknownModuleError: If ``subset`` names a module not in the State.
        """
        state = self._state
        with state.lock, Timer() as timer:
            if subset is None:
                requested = list(state.modules)
                targets = [m for m in requested if not m.is_resolved()]
            else:
                requested = self._lookup(subset)
                targets = list(requested)
            before = {m: m.wiring for m in state.modules}

            targets, revalidate = self._prepare(targets, propagate)
            roots = self._order_roots([m for m in targets if not m.is_fragment])
            fragments = [m for m in targets if m.is_fragment]

            reasons: Dict[Module, ResolutionFailure] = {}
            backtracks = 0
            pending = roots
            while True:
                result, failed = self._search(pending)
                reasons.update(failed)
                reasons.update(result.skipped)
                backtracks += result.backtracks
                self._commit(result)
                detached = [f for f in fragments if not f.is_resolved()]
                reasons.update(FragmentAttacher(state).attach_all(detached))
                pending = [r for r in roots if not r.is_resolved()]
                # Newly attached fragments export packages the pending roots may need.
                if not pending or not any(f.is_resolved() for f in detached):
                    break
            reasons.update(self._revalidate(revalidate))

            if any(m.wiring is not wiring for m, wiring in before.items()):
                state._touch()  # pylint: disable=protected-access
            report = self._report(requested, before, reasons)

        logger.info(
            "Resolution pass: %d of %d requested module(s) resolved in %.1f ms",
            len(report.resolved),
            len(report.outcomes),
            timer.duration_ms(),
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Resolution finished",
                extra=extra_context(
                    event="function_exit",
                    component="resolver",
                    action="resolve",
                    outcome="complete",
                    count=len(report.outcomes),
                    backtracks=backtracks,
                    duration_ms=timer.duration_ms(),
                ),
            )
        return report

    def _lookup(self, subset: Sequence["IdentityLike"]) -> List[Module]:
        if isinstance(subset, (Module, ModuleIdentity)):
            subset = [subset]
        modules: List[Module] = []
        for identity in subset:
            module = self._state._require(identity)  # pylint: disable=protected-access
            if module not in modules:
                modules.append(module)
        return modules

    def _prepare(self, targets: List[Module], propagate: bool) -> Tuple[List[Module], List[Module]]:
        """Unresolve requested modules that are resolved already.

        Returns:
            The targets of this pass, and the dependents that must be
            re-validated after it (only when not propagating).
        """
        state = self._state
        targets = list(targets)
        re_resolving = [m for m in targets if m.is_resolved()]
        if not re_resolving:
            return targets, []

        if propagate:
            for module in state._cascade_unresolve(re_resolving):  # pylint: disable=protected-access
                if module not in targets:
                    targets.append(module)
            return targets, []

        dependents = self._transitive_dependents(re_resolving)
        for module in re_resolving:
            for fragment in module.fragments:
                state._unresolve_one(fragment)  # pylint: disable=protected-access
                if fragment not in targets:
                    targets.append(fragment)
            state._unresolve_one(module)  # pylint: disable=protected-access
        return targets, [m for m in dependents if m not in targets]

    def _transitive_dependents(self, modules: Iterable[Module]) -> List[Module]:
        seen = set(modules)
        found: List[Module] = []
        worklist = list(modules)
        while worklist:
            current = worklist.pop(0)
            for dependent in self._state.get_dependents(current):
                if dependent not in seen:
                    seen.add(dependent)
                    found.append(dependent)
                    worklist.append(dependent)
        return found

    @staticmethod
    def _order_roots(roots: List[Module]) -> List[Module]:
        """Install order, with versions of one symbolic name grouped newest first.

        Grouping makes the newest of several singleton versions win by default.
        Singletons come after all other roots: backjumping undoes the latest
        root first, so a singleton yields to a dependent that needs an older
        version instead of the dependent being skipped.
        """
        first_seen: Dict[str, int] = {}
        for module in sorted(roots, key=lambda m: m.install_order):
            first_seen.setdefault(module.symbolic_name, module.install_order)
        ordered = sorted(roots, key=lambda m: m.install_order)
        ordered.sort(key=lambda m: m.version, reverse=True)
        ordered.sort(key=lambda m: (m.singleton, first_seen[m.symbolic_name]))
        return ordered

    def _search(self, roots: List[Module]) -> Tuple[SearchResult, Dict[Module, ResolutionFailure]]:
        """Search repeatedly, excluding one definitively failed module each round."""
        excluded: Dict[Module, ResolutionFailure] = {}
        while True:
            search = ChoiceSearch(
                self._state,
                [r for r in roots if r not in excluded],
                excluded,
                Constants.RESOLVER_MAX_BACKTRACKS,
            )
            result = search.run()
            if result.success:
                return result, excluded
            excluded[result.failed_module] = result.failure
            if is_debug_enabled(logger):
                logger.debug(
                    "Module excluded from pass",
                    extra=extra_context(
                        event="decision",
                        component="resolver",
                        action="exclude",
                        target=str(result.failed_module.identity),
                        outcome=result.failure.kind.value,
                    ),
                )

    def _commit(self, result: SearchResult) -> None:
        """Publish one Wiring per newly resolved module, then widen multiple requirements."""
        for module in result.active:
            wires = {c: (result.selections[c],) for c in module.requirements if c in result.selections}
            module._publish(Wiring(wires))  # pylint: disable=protected-access
        self._add_extra_suppliers(result)

    def _add_extra_suppliers(self, result: SearchResult) -> None:
        """Wire further resolved candidates to multiple requirements.

        An extra supplier is kept only when no resolved module gains a uses
        conflict from it.
        """
        state = self._state
        checker = UsesChecker()
        baseline = None
        for module in result.active:
            for constraint in module.requirements:
                primary = result.selections.get(constraint)
                if primary is None or not constraint.multiple:
                    continue
                for cap in state.find_candidates(constraint):
                    if cap is primary or not cap.module.is_resolved():
                        continue
                    if baseline is None:
                        baseline = self._conflicting(checker)
                    previous = module.wiring
                    module._publish(  # pylint: disable=protected-access
                        previous.with_wire(constraint, previous.wires[constraint] + (cap,))
                    )
                    if self._conflicting(checker) - baseline:
                        module._publish(previous)  # pylint: disable=protected-access
                        if is_debug_enabled(logger):
                            logger.debug(
                                "Extra supplier dropped",
                                extra=extra_context(
                                    event="decision",
                                    component="resolver",
                                    action="commit",
                                    target=str(module.identity),
                                    requirement=constraint.name,
                                    outcome=str(cap.module.identity),
                                ),
                            )

    def _conflicting(self, checker: UsesChecker) -> Set[Module]:
        """Resolved non-fragment modules whose package space has a clash."""
        return {
            m
            for m in self._state.resolved_modules
            if not m.is_fragment and checker.find_conflict(m) is not None
        }

    def _revalidate(self, modules: Iterable[Module]) -> Dict[Module, ResolutionFailure]:
        """Unresolve kept dependents whose wiring no longer holds."""
        state = self._state
        checker = UsesChecker()
        failures: Dict[Module, ResolutionFailure] = {}
        for module in sorted(modules, key=lambda m: m.install_order):
            if not module.is_resolved():
                continue
            stale = sorted(
                str(s.identity)
                for s in module.wiring.supplier_modules()
                if not s.is_resolved() or s.containing_state is not state
            )
            if stale:
                failure = ResolutionFailure(
                    FailureKind.SUPPLIER_UNRESOLVED, detail=f"suppliers no longer resolved: {', '.join(stale)}"
                )
            else:
                conflict = checker.find_conflict(module)
                if conflict is None:
                    continue
                failure = ResolutionFailure(FailureKind.USES_CONFLICT, detail=conflict.describe())
            for changed in state._cascade_unresolve([module]):  # pylint: disable=protected-access
                failures.setdefault(
                    changed,
                    failure
                    if changed is module
                    else ResolutionFailure(FailureKind.SUPPLIER_UNRESOLVED, detail=f"depends on {module.identity}"),
                )
        if failures:
            logger.warning(
                "Unresolved %d stale dependent module(s): %s",
                len(failures),
                ", ".join(str(m.identity) for m in failures),
            )
        return failures

    def _report(
        self,
        requested: List[Module],
        before: Dict[Module, Optional[Wiring]],
        reasons: Dict[Module, ResolutionFailure],
    ) -> ResolutionReport:
        requested_set = set(requested)
        outcomes = [self._outcome(m, reasons) for m in requested]
        side_effects = [
            self._outcome(m, reasons)
            for m in self._state.modules
            if m not in requested_set and (before.get(m) is not m.wiring or m in reasons)
        ]
        return ResolutionReport.build(outcomes, side_effects, self._state.timestamp)

    def _outcome(self, module: Module, reasons: Dict[Module, ResolutionFailure]) -> ModuleOutcome:
        if module.is_resolved():
            return ModuleOutcome(module.identity, ResolutionStatus.RESOLVED)
        failure = reasons.get(module)
        found = [failure] if failure is not None else []
        named = {failure.requirement_name} if failure is not None else set()
        for other in self._unsatisfiable(module, reasons):
            if other.requirement_name not in named:
                named.add(other.requirement_name)
                found.append(other)
        return ModuleOutcome(module.identity, ResolutionStatus.UNRESOLVED, tuple(found))

    def _unsatisfiable(self, module: Module, failed: Dict[Module, ResolutionFailure]) -> List[ResolutionFailure]:
        """Mandatory requirements of ``module`` that no candidate can supply after this pass.

        A candidate still counts while its owner is ``module`` itself, is
        resolved, or was simply not needed: it neither failed in this pass
        nor is blocked by a resolved singleton.
        """
        unsatisfiable = []
        for constraint in module.constraints:
            if constraint.optional:
                continue
            found = self._state.find_candidates(constraint)
            if not found:
                unsatisfiable.append(
                    ResolutionFailure(
                        FailureKind.CANDIDATES_EXHAUSTED,
                        constraint.name,
                        constraint.version_range,
                        "no matching capability installed",
                    )
                )
                continue
            owners = {cap.module for cap in found}
            blocked = {m for m in owners if self._singleton_blocked(m)}
            if any(m is module or m.is_resolved() or (m not in failed and m not in blocked) for m in owners):
                continue
            if blocked:
                unsatisfiable.append(
                    ResolutionFailure(
                        FailureKind.CONSISTENCY_EXCLUDED,
                        constraint.name,
                        constraint.version_range,
                        "matching candidates blocked by a resolved singleton",
                    )
                )
            else:
                unsatisfiable.append(
                    ResolutionFailure(
                        FailureKind.CANDIDATES_EXHAUSTED,
                        constraint.name,
                        constraint.version_range,
                        f"{len(found)} matching candidate(s) could not be resolved",
                    )
                )
        return unsatisfiable

    def _singleton_blocked(self, module: Module) -> bool:
        if not module.singleton or module.is_resolved():
            return False
        return any(
            other is not module and other.singleton and other.is_resolved()
            for other in self._state.get_modules(module.symbolic_name)
        )
