"""Versioned requirements declared by modules.

A single VersionConstraint class carries a ConstraintKind tag; satisfaction
is decided by one matching function dispatched on that tag.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Sequence, Tuple, Union

from ..constants import Constants
from ..versioning import EMPTY_RANGE, VersionRange
from .capability import Capability, Namespace

if TYPE_CHECKING:
    from .module import Module


class ConstraintKind(Enum):
    """Shapes of requirement a module can declare."""

    PACKAGE_IMPORT = "package-import"
    MODULE_REQUIRE = "module-require"
    FRAGMENT_HOST = "fragment-host"


class VersionConstraint:
    """A named requirement with an optional version range.

    The owning module is a back reference. The chosen supplier lives in the
    owning module's Wiring so that all edges of a module change together.
    """

    def __init__(
        self,
        kind: ConstraintKind,
        name: str,
        version_range: Optional[VersionRange] = None,
        optional: bool = False,
        multiple: bool = False,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        self.kind = kind
        self._name = name
        self._version_range = version_range
        self._module: Optional["Module"] = None
        self.optional = optional
        self.multiple = multiple
        self.attributes: Dict[str, Any] = _normalize_filters(attributes or {})

    @property
    def name(self) -> str:
        """Requirement name, with the system-module alias bound at read time."""
        if self._name == Constants.SYSTEM_MODULE_ALIAS:
            state = self._module.containing_state if self._module is not None else None
            if state is None:
                return Constants.INTERNAL_SYSTEM_MODULE_NAME
            return state.system_module_name
        return self._name

    @property
    def declared_name(self) -> str:
        """Name exactly as declared."""
        return self._name

    @property
    def version_range(self) -> VersionRange:
        if self._version_range is None:
            return EMPTY_RANGE
        return self._version_range

    @property
    def module(self) -> Optional["Module"]:
        return self._module

    @property
    def mandatory(self) -> bool:
        return not self.optional

    @property
    def suppliers(self) -> Tuple[Capability, ...]:
        """All suppliers currently wired to this constraint."""
        if self._module is None:
            return ()
        wiring = self._module.wiring
        if wiring is None:
            return ()
        return wiring.wires.get(self, ())

    @property
    def supplier(self) -> Optional[Capability]:
        """Primary supplier, or None when unresolved."""
        suppliers = self.suppliers
        return suppliers[0] if suppliers else None

    def get_supplier(self) -> Optional[Capability]:
        return self.supplier

    def is_resolved(self) -> bool:
        return self.supplier is not None

    def is_satisfied_by(self, capability: Capability) -> bool:
        """Return True when ``capability`` can supply this requirement."""
        return matches(self, capability)

    # Mutators reserved for descriptor translation and the resolver.

    def _set_name(self, name: str) -> None:
        self._name = name

    def _set_version_range(self, version_range: Optional[VersionRange]) -> None:
        self._version_range = version_range

    def _set_module(self, module: "Module") -> None:
        self._module = module

    def _set_supplier(self, supplier: Union[Capability, Sequence[Capability], None]) -> None:
        if self._module is None:
            raise ValueError("Constraint is not attached to a module")
        if supplier is None:
            suppliers: Tuple[Capability, ...] = ()
        elif isinstance(supplier, Capability):
            suppliers = (supplier,)
        else:
            suppliers = tuple(supplier)
        self._module._set_wire(self, suppliers)  # pylint: disable=protected-access

    def __repr__(self) -> str:
        owner = self._module.identity if self._module is not None else None
        return f"VersionConstraint({self.kind.value}, {self._name!r}, {self.version_range}, module={owner})"

    def __str__(self) -> str:
        return f"{self.kind.value} {self.name} {self.version_range}"


def _normalize_filters(filters: Dict[str, Any]) -> Dict[str, Any]:
    """Copy ``filters`` with the module-version filter parsed into a VersionRange.

    Raises:
        ValueError: If the module-version filter is malformed.
        TypeError: If a reserved filter has the wrong type.
    """
    normalized = dict(filters)
    if Constants.ATTR_MODULE_VERSION in normalized:
        normalized[Constants.ATTR_MODULE_VERSION] = VersionRange.parse(normalized[Constants.ATTR_MODULE_VERSION])
    name = normalized.get(Constants.ATTR_MODULE_SYMBOLIC_NAME)
    if name is not None and not isinstance(name, str):
        raise TypeError(f"{Constants.ATTR_MODULE_SYMBOLIC_NAME} filter must be a string, got {name!r}")
    return normalized


def _attributes_match(filters: Dict[str, Any], capability: Capability) -> bool:
    for key, expected in filters.items():
        if key == Constants.ATTR_MODULE_SYMBOLIC_NAME:
            if capability.module.symbolic_name != expected:
                return False
        elif key == Constants.ATTR_MODULE_VERSION:
            if not expected.includes(capability.module.version):
                return False
        elif capability.attributes.get(key) != expected:
            return False
    return True


def _match_package_import(constraint: VersionConstraint, capability: Capability) -> bool:
    if capability.namespace is not Namespace.PACKAGE:
        return False
    if capability.name != constraint.name:
        return False
    if not constraint.version_range.includes(capability.version):
        return False
    return _attributes_match(constraint.attributes, capability)


def _match_module_require(constraint: VersionConstraint, capability: Capability) -> bool:
    if capability.namespace is not Namespace.MODULE:
        return False
    provider = capability.module
    if provider is constraint.module or provider.is_fragment:
        return False
    if capability.name != constraint.name:
        return False
    if not constraint.version_range.includes(capability.version):
        return False
    return _attributes_match(constraint.attributes, capability)


_MATCHERS: Dict[ConstraintKind, Callable[[VersionConstraint, Capability], bool]] = {
    ConstraintKind.PACKAGE_IMPORT: _match_package_import,
    ConstraintKind.MODULE_REQUIRE: _match_module_require,
    # A host is matched like a required module: by symbolic name and version.
    ConstraintKind.FRAGMENT_HOST: _match_module_require,
}


def matches(constraint: VersionConstraint, capability: Capability) -> bool:
    """Shared satisfaction test; unknown kinds match nothing."""
    matcher = _MATCHERS.get(constraint.kind)
    if matcher is None:
        return False
    return matcher(constraint, capability)
