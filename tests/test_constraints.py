"""Tests for VersionConstraint matching and system-module name binding."""

import pytest

from modresolve import Capability, ConstraintKind, Module, Namespace, Version, VersionConstraint, VersionRange
from modresolve.constants import Constants
from modresolve.versioning import EMPTY_RANGE


def make_module(name="M", version="1.0.0"):
    """Helper to create a detached module."""
    return Module(name, Version.parse(version))


def package(module, name, version="1.0.0", **attributes):
    """Helper to create a package capability owned by ``module``."""
    return Capability(Namespace.PACKAGE, name, Version.parse(version), module, attributes=attributes)


class TestPackageImportMatching:
    """Package imports match on name, range and attribute filters."""

    def test_name_and_range(self):
        exporter = make_module("E")
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p", VersionRange.parse("[1.0,2.0)"))
        assert c.is_satisfied_by(package(exporter, "p", "1.9.9"))
        assert not c.is_satisfied_by(package(exporter, "p", "2.0.0"))
        assert not c.is_satisfied_by(package(exporter, "q", "1.5.0"))

    def test_does_not_match_module_capabilities(self):
        exporter = make_module("p")
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        assert not c.is_satisfied_by(exporter.module_capability)

    def test_attribute_filter(self):
        exporter = make_module("E")
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p", attributes={"vendor": "acme"})
        assert c.is_satisfied_by(package(exporter, "p", vendor="acme"))
        assert not c.is_satisfied_by(package(exporter, "p", vendor="other"))
        assert not c.is_satisfied_by(package(exporter, "p"))

    def test_reserved_module_filters(self):
        old = make_module("E", "1.0.0")
        new = make_module("E", "2.0.0")
        other = make_module("F", "1.5.0")
        c = VersionConstraint(
            ConstraintKind.PACKAGE_IMPORT,
            "p",
            attributes={Constants.ATTR_MODULE_SYMBOLIC_NAME: "E", Constants.ATTR_MODULE_VERSION: "[1.0,2.0)"},
        )
        assert c.is_satisfied_by(package(old, "p"))
        assert not c.is_satisfied_by(package(new, "p"))
        assert not c.is_satisfied_by(package(other, "p"))


class TestModuleRequireMatching:
    """Module requirements match module capabilities by symbolic name."""

    def test_matches_module_capability(self):
        owner = make_module("A")
        c = VersionConstraint(ConstraintKind.MODULE_REQUIRE, "B", VersionRange.parse("[1.0,2.0)"))
        owner._add_requirement(c)
        assert c.is_satisfied_by(make_module("B", "1.2.0").module_capability)
        assert not c.is_satisfied_by(make_module("B", "2.0.0").module_capability)
        assert not c.is_satisfied_by(package(make_module("X"), "B"))

    def test_never_matches_owner(self):
        owner = make_module("A")
        c = VersionConstraint(ConstraintKind.MODULE_REQUIRE, "A")
        owner._add_requirement(c)
        assert not c.is_satisfied_by(owner.module_capability)
        assert c.is_satisfied_by(make_module("A", "2.0.0").module_capability)

    def test_unknown_kind_matches_nothing(self):
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        c.kind = "osgi.ee"  # type: ignore[assignment]
        assert not c.is_satisfied_by(package(make_module(), "p"))


class TestConstraintAccessors:
    """Defaults, mutators and supplier access."""

    def test_defaults(self):
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        assert c.version_range is EMPTY_RANGE
        assert c.mandatory
        assert c.module is None
        assert c.supplier is None
        assert c.get_supplier() is None
        assert not c.is_resolved()

    def test_private_mutators(self):
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        c._set_name("q")
        c._set_version_range(VersionRange.parse("[2.0,3.0)"))
        assert c.name == "q"
        assert c.version_range == VersionRange.parse("[2.0,3.0)")
        c._set_version_range(None)
        assert c.version_range is EMPTY_RANGE

    def test_set_supplier_publishes_wire(self):
        owner = make_module("A")
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        owner._add_requirement(c)
        cap = package(make_module("E"), "p")

        c._set_supplier(cap)

        assert c.get_supplier() is cap
        assert c.is_resolved()
        assert owner.wiring.wires[c] == (cap,)

        c._set_supplier(None)
        assert c.supplier is None

    def test_set_supplier_requires_owner(self):
        c = VersionConstraint(ConstraintKind.PACKAGE_IMPORT, "p")
        with pytest.raises(ValueError):
            c._set_supplier(None)


class TestSystemModuleAlias:
    """The reserved alias resolves to the State's system module at read time."""

    def test_detached_constraint_uses_internal_name(self):
        c = VersionConstraint(ConstraintKind.MODULE_REQUIRE, Constants.SYSTEM_MODULE_ALIAS)
        assert c.name == Constants.INTERNAL_SYSTEM_MODULE_NAME
        assert c.declared_name == Constants.SYSTEM_MODULE_ALIAS

    def test_name_follows_state_designation(self, state, install):
        framework = install("org.example.framework", "3.0.0")
        client = install("client", requires=[Constants.SYSTEM_MODULE_ALIAS])
        constraint = client.requirements[0]

        assert constraint.name == Constants.INTERNAL_SYSTEM_MODULE_NAME

        state.set_system_module(framework.identity)
        assert constraint.name == "org.example.framework"
        assert constraint.is_satisfied_by(framework.module_capability)

        state.set_system_module(None)
        assert constraint.name == Constants.INTERNAL_SYSTEM_MODULE_NAME
        assert not constraint.is_satisfied_by(framework.module_capability)

    def test_other_names_are_not_rebound(self, state, install):
        framework = install("org.example.framework")
        state.set_system_module(framework)
        client = install("client", requires=["org.example.other"])
        assert client.requirements[0].name == "org.example.other"

    def test_get_requirement_accepts_alias_or_bound_name(self, state, install):
        framework = install("fw")
        state.set_system_module(framework)
        client = install("client", requires=[Constants.SYSTEM_MODULE_ALIAS])
        assert client.get_requirement("fw") is client.requirements[0]
        assert client.get_requirement(Constants.SYSTEM_MODULE_ALIAS) is client.requirements[0]
