"""Fragment attachment.

Runs after the main pass. A fragment attaches to the newest resolved host
matching its fragment-host constraint for which all of the fragment's
mandatory requirements can be wired to already resolved capabilities and
the merged host stays uses-consistent. Fragments never pull unresolved
modules in, and a fragment that cannot attach leaves its host untouched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple

from ..common.logging_utils import extra_context, is_debug_enabled
from ..model.capability import Capability
from ..model.constraints import VersionConstraint
from ..model.module import Module, Wiring
from ..report import FailureKind, ResolutionFailure
from .consistency import UsesChecker, Wires, resolved_exports, resolved_wires

if TYPE_CHECKING:
    from ..state import State

logger = logging.getLogger(__name__)


class FragmentAttacher:
    """Attach fragments to resolved hosts."""

    def __init__(self, state: "State"):
        self._state = state

    def attach_all(self, fragments: Sequence[Module]) -> Dict[Module, ResolutionFailure]:
        """Attach fragments in install order until no further one attaches.

        A fragment may need a package exported by another fragment, so the
        remaining ones are retried after every round that attached something.

        Returns:
            Failure per fragment that stayed unresolved.
        """
        pending = sorted((f for f in fragments if not f.is_resolved()), key=lambda m: m.install_order)
        failures: Dict[Module, ResolutionFailure] = {}
        while pending:
            failures = {}
            for fragment in pending:
                failure = self.attach(fragment)
                if failure is not None:
                    failures[fragment] = failure
            if len(failures) == len(pending):
                break
            pending = list(failures)
        return failures

    def attach(self, fragment: Module) -> Optional[ResolutionFailure]:
        host_constraint = fragment.fragment_host
        if fragment.singleton:
            for other in self._state.get_modules(fragment.symbolic_name):
                if other is not fragment and other.singleton and other.is_resolved():
                    return ResolutionFailure(
                        FailureKind.SINGLETON_CONFLICT, detail=f"singleton conflict with {other.identity}"
                    )
        hosts = [cap for cap in self._state.find_candidates(host_constraint) if cap.module.is_resolved()]
        if not hosts:
            return ResolutionFailure(
                FailureKind.CANDIDATES_EXHAUSTED,
                host_constraint.name,
                host_constraint.version_range,
                "no resolved host",
            )

        wires, failure = self._wire_requirements(fragment)
        if failure is not None:
            return failure

        last_failure: Optional[ResolutionFailure] = None
        for host_cap in hosts:
            host = host_cap.module
            merged: Dict[VersionConstraint, Tuple[Capability, ...]] = {host_constraint: (host_cap,)}
            merged.update(wires)
            conflict = self._check_merged(host, fragment, merged)
            if conflict is not None:
                last_failure = conflict
                continue
            merged = self._widen(host, fragment, merged)
            fragment._publish(Wiring(merged, host=host))  # pylint: disable=protected-access
            host._publish(host.wiring.with_fragment(fragment))  # pylint: disable=protected-access
            if is_debug_enabled(logger):
                logger.debug(
                    "Fragment attached",
                    extra=extra_context(
                        event="fragment_attach",
                        component="resolver",
                        action="attach",
                        target=str(fragment.identity),
                        host=str(host.identity),
                    ),
                )
            return None
        return last_failure

    def _wire_requirements(
        self, fragment: Module
    ) -> Tuple[Dict[VersionConstraint, Tuple[Capability, ...]], Optional[ResolutionFailure]]:
        wires: Dict[VersionConstraint, Tuple[Capability, ...]] = {}
        for constraint in fragment.requirements:
            found = self._state.find_candidates(constraint)
            usable = [cap for cap in found if cap.module.is_resolved() and cap.module is not fragment]
            if not usable:
                if constraint.optional:
                    continue
                detail = "no matching capability installed" if not found else "no resolved candidate"
                return {}, ResolutionFailure(
                    FailureKind.CANDIDATES_EXHAUSTED, constraint.name, constraint.version_range, detail
                )
            wires[constraint] = (usable[0],)
        return wires, None

    def _widen(
        self, host: Module, fragment: Module, merged: Wires
    ) -> Dict[VersionConstraint, Tuple[Capability, ...]]:
        """Add further resolved suppliers to multiple requirements while the merge stays consistent."""
        wires = dict(merged)
        for constraint in fragment.requirements:
            if not constraint.multiple or constraint not in wires:
                continue
            for cap in self._state.find_candidates(constraint):
                if cap in wires[constraint] or not cap.module.is_resolved() or cap.module is fragment:
                    continue
                trial = dict(wires)
                trial[constraint] = wires[constraint] + (cap,)
                if self._check_merged(host, fragment, trial) is None:
                    wires = trial
        return wires

    def _check_merged(
        self, host: Module, fragment: Module, fragment_wires: Wires
    ) -> Optional[ResolutionFailure]:
        merged_wires = dict(host.effective_wires())
        merged_wires.update(fragment_wires)
        merged_exports = host.effective_exports + fragment.exports

        def wires_of(module: Module) -> Wires:
            if module is host or module is fragment:
                return merged_wires
            return resolved_wires(module)

        def exports_of(module: Module) -> Tuple[Capability, ...]:
            if module is host or module is fragment:
                return merged_exports
            return resolved_exports(module)

        checker = UsesChecker(wires_of, exports_of)
        # Any resolved module may see the host's packages through uses chains.
        for module in [host] + [m for m in self._state.resolved_modules if m is not host and not m.is_fragment]:
            conflict = checker.find_conflict(module)
            if conflict is not None:
                return ResolutionFailure(FailureKind.USES_CONFLICT, detail=conflict.describe())
        return None
