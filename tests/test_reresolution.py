"""Tests for re-resolving modules that are already resolved."""

import logging

from modresolve import FailureKind, ResolutionStatus


def install_diamond(install):
    """P 1.0 exports p; B exports b (uses p) and imports p [1.0,3.0); D imports b and p [1.0,2.0)."""
    p1 = install("P", "1.0.0", exports=[{"name": "p", "version": "1.0"}])
    b = install("B", exports=[{"name": "b", "uses": ["p"]}], imports=[{"name": "p", "range": "[1.0,3.0)"}])
    d = install("D", imports=["b", {"name": "p", "range": "[1.0,2.0)"}])
    return p1, b, d


class TestPropagation:
    """Dependents of re-resolved modules are re-validated or re-resolved."""

    def test_propagate_re_resolves_dependents(self, state, install):
        p1, b, d = install_diamond(install)
        state.resolve()
        p2 = install("P", "2.0.0", exports=[{"name": "p", "version": "2.0"}])

        report = state.resolve([b], propagate=True)

        assert report.is_resolved(b.identity)
        assert report[d.identity].resolved
        # Moving B to p 2.0 would break D, so B stays on p 1.0
        assert state.get_supplier(b, "p").module is p1
        assert state.get_supplier(d, "p").module is p1
        assert not p2.is_resolved()

    def test_without_propagation_incompatible_dependent_is_unresolved(self, state, install, caplog):
        p1, b, d = install_diamond(install)
        state.resolve()
        p2 = install("P", "2.0.0", exports=[{"name": "p", "version": "2.0"}])

        with caplog.at_level(logging.WARNING, logger="modresolve.resolver.engine"):
            report = state.resolve([b], propagate=False)

        assert state.get_supplier(b, "p").module is p2
        assert not d.is_resolved()
        assert d.identity not in report.outcomes
        side_effect = report.side_effects[d.identity]
        assert side_effect.status is ResolutionStatus.UNRESOLVED
        assert side_effect.reasons[0].kind is FailureKind.USES_CONFLICT
        assert "stale dependent" in caplog.text
        assert p1.is_resolved()

    def test_without_propagation_compatible_dependent_is_kept(self, state, install):
        c = install("C", exports=["c"])
        b = install("B", exports=["b"], imports=["c"])
        a = install("A", imports=["b"])
        state.resolve()
        wiring = a.wiring

        report = state.resolve([b], propagate=False)

        assert report.is_resolved(b.identity)
        assert a.wiring is wiring
        assert a.identity not in report
        assert state.get_supplier(b, "c").module is c

    def test_without_propagation_stale_supplier_cascades(self, state, install):
        fw = install("fw")
        b = install("B", exports=["b"], requires=["system.module"])
        a = install("A", imports=["b"])
        state.set_system_module(fw)
        state.resolve()
        assert a.is_resolved() and b.is_resolved()
        # B's alias now names a module that is not installed
        state.set_system_module(None)

        report = state.resolve([b], propagate=False)

        assert not b.is_resolved()
        assert not a.is_resolved()
        assert report.side_effects[a.identity].reasons[0].kind is FailureKind.SUPPLIER_UNRESOLVED

    def test_propagate_failure_reaches_dependents(self, state, install):
        fw = install("fw")
        b = install("B", exports=["b"], requires=["system.module"])
        a = install("A", imports=["b"])
        state.set_system_module(fw)
        state.resolve()
        state.set_system_module(None)

        report = state.resolve([b])

        assert not b.is_resolved() and not a.is_resolved()
        assert report.status(b.identity) is ResolutionStatus.UNRESOLVED
        assert report.side_effects[a.identity].status is ResolutionStatus.UNRESOLVED
        assert fw.is_resolved()

    def test_re_resolution_prefers_newest_supplier(self, state, install):
        """Re-resolution does not stick to the supplier chosen earlier."""
        install("E", "1.0.0", exports=[{"name": "p", "version": "1.0"}])
        a = install("A", imports=["p"])
        state.resolve()
        newer = install("E", "1.1.0", exports=[{"name": "p", "version": "1.1"}])

        state.resolve([a])

        assert state.get_supplier(a, "p").module is newer

    def test_unrequested_resolved_modules_keep_wiring(self, state, install):
        install("E", "1.0.0", exports=[{"name": "p", "version": "1.0"}])
        a = install("A", imports=["p"])
        state.resolve()
        wiring = a.wiring
        install("E", "1.1.0", exports=[{"name": "p", "version": "1.1"}])

        state.resolve()

        assert a.wiring is wiring
