"""Tests for State installation, queries and uninstall cascades."""

import logging

import pytest

from modresolve import (
    ConstraintKind,
    DuplicateIdentityError,
    ModuleDescriptor,
    ModuleIdentity,
    State,
    UnknownModuleError,
    Version,
    VersionConstraint,
    Wiring,
)
from modresolve.model.descriptors import build_module
from modresolve.state import to_identity


def chain(install):
    """A imports b from B, B imports c from C."""
    c = install("C", exports=["c"])
    b = install("B", exports=["b"], imports=["c"])
    a = install("A", imports=["b"])
    return a, b, c


class TestInstall:
    """Adding modules to a State."""

    def test_install_assigns_order_and_state(self, state, install):
        first = install("A")
        second = install("B")
        assert first.install_order < second.install_order
        assert first.containing_state is state
        assert not first.is_resolved()
        assert state.modules == (first, second)

    def test_duplicate_identity_rejected(self, state, install):
        install("A", "1.0.0")
        with pytest.raises(DuplicateIdentityError) as exc_info:
            install("A", "1.0")
        assert exc_info.value.identity == ModuleIdentity("A", Version(1, 0, 0))
        assert len(state.modules) == 1

    def test_same_name_different_version_allowed(self, state, install):
        install("A", "1.0.0")
        install("A", "2.0.0")
        assert len(state.get_modules("A")) == 2

    def test_accepts_prebuilt_module(self, state):
        module = build_module(ModuleDescriptor("A", "1.0"))
        assert state.add_module(module) is module
        with pytest.raises(ValueError):
            State().add_module(module)

    def test_install_changes_timestamp(self, state, install):
        before = state.timestamp
        install("A")
        assert state.timestamp > before


class TestQueries:
    """Lookups by identity, name and requirement."""

    def test_get_module(self, state, install):
        a = install("A", "1.2.0")
        assert state.get_module(ModuleIdentity("A", Version(1, 2, 0))) is a
        assert state.get_module(("A", "1.2")) is a
        assert state.get_module(("A", "9.9")) is None

    def test_get_modules_newest_first(self, state, install):
        install("A", "1.0.0")
        install("A", "3.0.0")
        install("A", "2.0.0")
        assert [str(m.version) for m in state.get_modules("A")] == ["3.0.0", "2.0.0", "1.0.0"]
        assert state.get_modules("missing") == ()

    def test_find_candidates_orders_by_version_then_install_order(self, state, install):
        first = install("E1", exports=[{"name": "p", "version": "1.0"}])
        newest = install("E2", exports=[{"name": "p", "version": "2.0"}])
        second = install("E3", exports=[{"name": "p", "version": "1.0"}])
        constraint = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        found = state.find_candidates(constraint)
        assert [cap.module for cap in found] == [newest, first, second]

    def test_find_candidates_for_module_requirement(self, state, install):
        install("B", "1.0.0")
        b2 = install("B", "2.0.0")
        a = install("A", requires=[{"name": "B", "range": "[2.0,3.0)"}])
        found = state.find_candidates(a.requirements[0])
        assert [cap.module for cap in found] == [b2]

    def test_to_identity(self):
        assert to_identity(("A", "1.0")) == ModuleIdentity("A", Version(1, 0, 0))
        with pytest.raises(TypeError):
            to_identity("A")
        with pytest.raises(TypeError):
            to_identity(("A", "1.0", "extra"))

    def test_unknown_module_queries(self, state):
        with pytest.raises(UnknownModuleError):
            state.is_resolved(("A", "1.0"))
        with pytest.raises(UnknownModuleError):
            state.get_supplier(("A", "1.0"), "p")

    def test_get_supplier(self, state, install):
        a, b, c = chain(install)
        state.resolve()
        assert state.get_supplier(a.identity, "b").module is b
        assert state.get_supplier(b, "c").module is c
        assert state.get_supplier(a, "nothing") is None

    def test_get_dependents(self, state, install):
        a, b, c = chain(install)
        state.resolve()
        assert state.get_dependents(c) == [b]
        assert state.get_dependents(b) == [a]
        assert state.get_dependents(a) == []

    def test_system_module(self, state, install):
        fw = install("fw")
        assert state.system_module is None
        state.set_system_module(("fw", "1.0"))
        assert state.system_module is fw
        assert state.system_module_name == "fw"
        with pytest.raises(UnknownModuleError):
            state.set_system_module(("nope", "1.0"))


class TestUninstall:
    """Removal cascades un-resolution through dependents."""

    def test_chain_cascade(self, state, install):
        a, b, c = chain(install)
        state.resolve()
        assert all(m.is_resolved() for m in (a, b, c))

        state.uninstall(c.identity)

        assert not a.is_resolved()
        assert not b.is_resolved()
        assert a.requirements[0].supplier is None
        assert state.get_module(c.identity) is None
        assert c.containing_state is None
        assert state.modules == (b, a)

    def test_cascade_logs_warning(self, state, install, caplog):
        _, _, c = chain(install)
        state.resolve()
        with caplog.at_level(logging.WARNING, logger="modresolve.state"):
            state.remove_module(c)
        assert "unresolved 2 dependent module(s)" in caplog.text

    def test_unaffected_modules_stay_resolved(self, state, install):
        a, b, c = chain(install)
        other = install("D", imports=["c"])
        lone = install("E")
        state.resolve()

        state.uninstall(a)

        assert b.is_resolved() and c.is_resolved() and other.is_resolved() and lone.is_resolved()

    def test_uninstall_unknown_leaves_state_unchanged(self, state, install):
        install("A")
        before = state.timestamp
        with pytest.raises(UnknownModuleError):
            state.uninstall(("B", "1.0"))
        assert state.timestamp == before
        assert len(state.modules) == 1

    def test_uninstall_clears_indexes(self, state, install):
        e = install("E", exports=["p"])
        a = install("A", imports=["p"])
        state.uninstall(e)
        assert state.find_candidates(a.requirements[0]) == []
        assert state.get_modules("E") == ()

    def test_uninstall_system_module_clears_designation(self, state, install):
        fw = install("fw")
        state.set_system_module(fw)
        state.uninstall(fw)
        assert state.system_module is None

    def test_reinstall_after_uninstall(self, state, install):
        install("A")
        state.uninstall(("A", "1.0.0"))
        assert install("A").containing_state is state


class TestSnapshot:
    """Read-only view of the resolved wiring."""

    def test_snapshot_lists_edges(self, state, install):
        a, b, c = chain(install)
        state.resolve()
        snap = state.snapshot()
        assert snap.wires[a.identity] == (("b", b.identity),)
        assert snap.wires[c.identity] == ()
        assert snap.timestamp == state.timestamp
        assert snap.to_dict()["modules"]["A_1.0.0"] == [{"requirement": "b", "supplier": "B_1.0.0"}]

    def test_snapshot_is_detached(self, state, install):
        a, _, c = chain(install)
        state.resolve()
        snap = state.snapshot()
        state.uninstall(c)
        assert a.identity in snap.wires
        assert state.snapshot() != snap


class TestWiring:
    """Immutable per-module edge sets."""

    def test_default_wiring_is_empty_and_read_only(self):
        wiring = Wiring()
        assert dict(wiring.wires) == {}
        assert wiring.host is None and wiring.fragments == ()
        with pytest.raises(TypeError):
            wiring.wires["x"] = ()  # type: ignore[index]

    def test_with_wire_returns_new_wiring(self, state, install):
        e = install("E", exports=["p"])
        a = install("A", imports=["p"])
        (constraint,) = a.requirements

        empty = Wiring()
        wired = empty.with_wire(constraint, (e.exports[0],))

        assert dict(empty.wires) == {}
        assert wired.wires[constraint] == (e.exports[0],)
        assert wired.supplier_modules() == {e}
        assert dict(wired.with_wire(constraint, ()).wires) == {}
