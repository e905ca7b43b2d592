"""Installed modules and their wiring snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Set, Tuple

from ..versioning import Version
from .capability import Capability, ModuleIdentity, Namespace
from .constraints import VersionConstraint

if TYPE_CHECKING:
    from ..state import State

_NO_WIRES: Mapping[VersionConstraint, Tuple[Capability, ...]] = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class Wiring:
    """Immutable edge set of one resolved module.

    A module's wiring is swapped as a whole, so a reader sees either the old
    or the new assignment of every requirement, never a mix.
    """

    wires: Mapping[VersionConstraint, Tuple[Capability, ...]] = field(default_factory=lambda: _NO_WIRES)
    host: Optional["Module"] = None
    fragments: Tuple["Module", ...] = ()

    def __post_init__(self):
        if not isinstance(self.wires, MappingProxyType):
            object.__setattr__(self, "wires", MappingProxyType(dict(self.wires)))

    def with_wire(self, constraint: VersionConstraint, suppliers: Tuple[Capability, ...]) -> "Wiring":
        wires = dict(self.wires)
        if suppliers:
            wires[constraint] = suppliers
        else:
            wires.pop(constraint, None)
        return Wiring(wires, self.host, self.fragments)

    def with_fragment(self, fragment: "Module") -> "Wiring":
        return Wiring(self.wires, self.host, self.fragments + (fragment,))

    def without_fragment(self, fragment: "Module") -> "Wiring":
        return Wiring(self.wires, self.host, tuple(f for f in self.fragments if f is not fragment))

    def supplier_modules(self) -> Set["Module"]:
        """Modules this wiring depends on, host included."""
        owners = {cap.module for caps in self.wires.values() for cap in caps}
        if self.host is not None:
            owners.add(self.host)
        return owners


class Module:
    """An installed module: identity, exports, requirements and wiring."""

    def __init__(
        self,
        symbolic_name: str,
        version: Version,
        singleton: bool = False,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        self.symbolic_name = symbolic_name
        self.version = version
        self.singleton = singleton
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.install_order = -1
        self.containing_state: Optional["State"] = None
        self.module_capability = Capability(
            Namespace.MODULE, symbolic_name, version, self, attributes=self.attributes
        )
        self._exports: List[Capability] = []
        self._requirements: List[VersionConstraint] = []
        self._fragment_host: Optional[VersionConstraint] = None
        self._wiring: Optional[Wiring] = None

    @property
    def identity(self) -> ModuleIdentity:
        return ModuleIdentity(self.symbolic_name, self.version)

    @property
    def is_fragment(self) -> bool:
        return self._fragment_host is not None

    @property
    def fragment_host(self) -> Optional[VersionConstraint]:
        return self._fragment_host

    @property
    def exports(self) -> Tuple[Capability, ...]:
        return tuple(self._exports)

    @property
    def requirements(self) -> Tuple[VersionConstraint, ...]:
        return tuple(self._requirements)

    @property
    def constraints(self) -> Tuple[VersionConstraint, ...]:
        """Requirements plus the fragment-host constraint, if any."""
        if self._fragment_host is None:
            return self.requirements
        return (self._fragment_host,) + self.requirements

    @property
    def capabilities(self) -> Tuple[Capability, ...]:
        if self.is_fragment:
            return self.exports
        return (self.module_capability,) + self.exports

    @property
    def wiring(self) -> Optional[Wiring]:
        return self._wiring

    def is_resolved(self) -> bool:
        return self._wiring is not None

    @property
    def host(self) -> Optional["Module"]:
        wiring = self._wiring
        return wiring.host if wiring is not None else None

    @property
    def fragments(self) -> Tuple["Module", ...]:
        wiring = self._wiring
        return wiring.fragments if wiring is not None else ()

    @property
    def effective_exports(self) -> Tuple[Capability, ...]:
        """Own exports followed by the exports of attached fragments."""
        exports = list(self._exports)
        for fragment in self.fragments:
            exports.extend(fragment.exports)
        return tuple(exports)

    @property
    def effective_requirements(self) -> Tuple[VersionConstraint, ...]:
        requirements = list(self._requirements)
        for fragment in self.fragments:
            requirements.extend(fragment.requirements)
        return tuple(requirements)

    def effective_wires(self) -> Dict[VersionConstraint, Tuple[Capability, ...]]:
        """Own wires merged with the wires of attached fragments."""
        wiring = self._wiring
        if wiring is None:
            return {}
        merged = dict(wiring.wires)
        for fragment in wiring.fragments:
            if fragment.wiring is not None:
                merged.update(fragment.wiring.wires)
        return merged

    def get_requirement(self, name: str) -> Optional[VersionConstraint]:
        """First requirement (host constraint included) with the given name."""
        for constraint in self.constraints:
            if constraint.name == name or constraint.declared_name == name:
                return constraint
        return None

    def dependencies(self) -> Set["Module"]:
        wiring = self._wiring
        if wiring is None:
            return set()
        return wiring.supplier_modules() - {self}

    # Model construction

    def _add_export(self, capability: Capability) -> None:
        self._exports.append(capability)

    def _add_requirement(self, constraint: VersionConstraint) -> None:
        constraint._set_module(self)  # pylint: disable=protected-access
        self._requirements.append(constraint)

    def _set_fragment_host(self, constraint: VersionConstraint) -> None:
        constraint._set_module(self)  # pylint: disable=protected-access
        self._fragment_host = constraint

    # Resolver publication

    def _publish(self, wiring: Optional[Wiring]) -> None:
        self._wiring = wiring

    def _set_wire(self, constraint: VersionConstraint, suppliers: Tuple[Capability, ...]) -> None:
        base = self._wiring if self._wiring is not None else Wiring()
        self._wiring = base.with_wire(constraint, suppliers)

    def __repr__(self) -> str:
        state = "resolved" if self.is_resolved() else "unresolved"
        return f"<Module {self.identity} {state}>"
