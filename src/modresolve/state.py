"""The universe of installed modules and its resolved subset.

All mutations and resolve passes run under a single writer lock. Readers of
wiring (``get_supplier``, ``is_resolved``) do not take the lock: each module
publishes its edges as one immutable Wiring reference.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .common.logging_utils import extra_context, is_debug_enabled
from .constants import Constants
from .errors import DuplicateIdentityError, UnknownModuleError
from .model.capability import Capability, ModuleIdentity
from .model.constraints import ConstraintKind, VersionConstraint
from .model.descriptors import ModuleDescriptor, build_module
from .model.module import Module
from .report import ResolutionReport, ResolvedSnapshot
from .resolver.engine import Resolver
from .versioning import Version

logger = logging.getLogger(__name__)

IdentityLike = Union[ModuleIdentity, Module, Tuple[str, Union[Version, str]]]


def to_identity(value: IdentityLike) -> ModuleIdentity:
    """Normalize a Module, ModuleIdentity or (name, version) pair."""
    if isinstance(value, Module):
        return value.identity
    if isinstance(value, ModuleIdentity):
        return value
    if isinstance(value, str):
        raise TypeError(f"Not a module identity: {value!r}")
    try:
        name, version = value
    except (TypeError, ValueError) as exc:
        raise TypeError(f"Not a module identity: {value!r}") from exc
    return ModuleIdentity(name, Version.coerce(version))


class State:
    """Installed modules, indexes for candidate lookup, and the resolver."""

    def __init__(self):
        self._lock = threading.RLock()
        self._modules: Dict[ModuleIdentity, Module] = {}
        self._by_name: Dict[str, List[Module]] = {}
        self._packages: Dict[str, List[Capability]] = {}
        self._next_order = 0
        self._system: Optional[Module] = None
        self._timestamp = 0
        self._resolver = Resolver(self)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def timestamp(self) -> int:
        """Incremented on every change to the installed set or its wiring."""
        return self._timestamp

    def _touch(self) -> None:
        self._timestamp += 1

    # Mutation

    def add_module(self, descriptor: Union[ModuleDescriptor, Module]) -> Module:
        """Install a module in the unresolved state.

        Raises:
            DuplicateIdentityError: If (symbolic name, version) is already installed.
            DescriptorError: If the descriptor is malformed.
        """
        module = descriptor if isinstance(descriptor, Module) else build_module(descriptor)
        with self._lock:
            if module.identity in self._modules:
                raise DuplicateIdentityError(module.identity)
            if module.containing_state is not None:
                raise ValueError(f"Module {module.identity} already belongs to a State")
            module.install_order = self._next_order
            self._next_order += 1
            module.containing_state = self
            self._modules[module.identity] = module
            versions = self._by_name.setdefault(module.symbolic_name, [])
            versions.append(module)
            versions.sort(key=lambda m: m.install_order)
            versions.sort(key=lambda m: m.version, reverse=True)
            for export in module.exports:
                self._packages.setdefault(export.name, []).append(export)
            self._touch()
        if is_debug_enabled(logger):
            logger.debug(
                "Module installed",
                extra=extra_context(
                    event="install", component="state", action="add_module", target=str(module.identity)
                ),
            )
        return module

    install = add_module

    def remove_module(self, identity: IdentityLike) -> Module:
        """Uninstall a module, cascading un-resolution to its dependents.

        Raises:
            UnknownModuleError: If the module is not installed.
        """
        with self._lock:
            module = self._require(identity)
            cascaded = self._cascade_unresolve([module])
            del self._modules[module.identity]
            versions = self._by_name[module.symbolic_name]
            versions.remove(module)
            if not versions:
                del self._by_name[module.symbolic_name]
            for export in module.exports:
                exporters = self._packages[export.name]
                exporters.remove(export)
                if not exporters:
                    del self._packages[export.name]
            if self._system is module:
                self._system = None
            module.containing_state = None
            self._touch()
        dependents = [m for m in cascaded if m is not module]
        if dependents:
            logger.warning(
                "Uninstalling %s unresolved %d dependent module(s): %s",
                module.identity,
                len(dependents),
                ", ".join(str(m.identity) for m in dependents),
            )
        return module

    uninstall = remove_module

    def set_system_module(self, identity: Optional[IdentityLike]) -> None:
        """Designate the framework module; None clears the designation.

        Raises:
            UnknownModuleError: If the module is not installed.
        """
        with self._lock:
            self._system = None if identity is None else self._require(identity)
            self._touch()

    # Queries

    def get_module(self, identity: IdentityLike) -> Optional[Module]:
        return self._modules.get(to_identity(identity))

    def _require(self, identity: IdentityLike) -> Module:
        key = to_identity(identity)
        module = self._modules.get(key)
        if module is None:
            raise UnknownModuleError(key)
        return module

    def get_modules(self, symbolic_name: str) -> Tuple[Module, ...]:
        """Installed versions of ``symbolic_name``, newest first."""
        return tuple(self._by_name.get(symbolic_name, ()))

    @property
    def modules(self) -> Tuple[Module, ...]:
        """All installed modules in install order."""
        return tuple(sorted(self._modules.values(), key=lambda m: m.install_order))

    @property
    def resolved_modules(self) -> Tuple[Module, ...]:
        return tuple(m for m in self.modules if m.is_resolved())

    def is_resolved(self, module: IdentityLike) -> bool:
        if isinstance(module, Module):
            return module.is_resolved()
        return self._require(module).is_resolved()

    @property
    def system_module(self) -> Optional[Module]:
        return self._system

    @property
    def system_module_name(self) -> str:
        """Symbolic name of the designated system module, or the internal default."""
        if self._system is None:
            return Constants.INTERNAL_SYSTEM_MODULE_NAME
        return self._system.symbolic_name

    def find_candidates(self, constraint: VersionConstraint) -> List[Capability]:
        """Installed capabilities satisfying ``constraint``.

        Ordered newest version first, then by install order.
        """
        name = constraint.name
        if constraint.kind is ConstraintKind.PACKAGE_IMPORT:
            pool: Iterable[Capability] = self._packages.get(name, ())
        else:
            pool = (m.module_capability for m in self._by_name.get(name, ()))
        found = [cap for cap in pool if constraint.is_satisfied_by(cap)]
        found.sort(key=lambda cap: cap.module.install_order)
        found.sort(key=lambda cap: cap.version, reverse=True)
        return found

    def get_dependents(self, module: Module) -> List[Module]:
        """Resolved modules wired to one of ``module``'s capabilities."""
        return [
            other
            for other in self.modules
            if other is not module and other.wiring is not None and module in other.wiring.supplier_modules()
        ]

    def get_supplier(self, identity: IdentityLike, requirement_name: str) -> Optional[Capability]:
        """Primary supplier of the named requirement, or None."""
        module = self._require(identity)
        constraint = module.get_requirement(requirement_name)
        if constraint is None:
            return None
        return constraint.supplier

    def snapshot(self) -> ResolvedSnapshot:
        """Resolved modules with the identities of their chosen suppliers."""
        with self._lock:
            wires = {}
            for module in self.resolved_modules:
                edges = []
                wiring = module.wiring
                for constraint in module.constraints:
                    for cap in wiring.wires.get(constraint, ()):
                        edges.append((constraint.name, cap.module.identity))
                wires[module.identity] = tuple(edges)
            return ResolvedSnapshot(wires, self._timestamp)

    # Resolution

    def resolve(
        self, subset: Optional[Sequence[IdentityLike]] = None, propagate: bool = True
    ) -> ResolutionReport:
        """Resolve ``subset`` (or every unresolved module when None).

        Raises:
            UnknownModuleError: If ``subset`` names a module that is not installed.
        """
        with self._lock:
            return self._resolver.resolve(subset, propagate)

    def _cascade_unresolve(self, roots: Iterable[Module]) -> List[Module]:
        """Unresolve ``roots`` and every module transitively wired to them.

        Returns:
            Modules that were resolved before and are unresolved now, roots first.
        """
        changed: List[Module] = []
        seen = set()
        worklist = list(roots)
        while worklist:
            module = worklist.pop(0)
            if module in seen:
                continue
            seen.add(module)
            if not module.is_resolved():
                continue
            dependents = self.get_dependents(module)
            self._unresolve_one(module)
            changed.append(module)
            worklist.extend(dependents)
        if changed:
            self._touch()
        return changed

    def _unresolve_one(self, module: Module) -> None:
        """Drop a module's wiring and detach it from its host."""
        host = module.host
        module._publish(None)  # pylint: disable=protected-access
        if host is not None and host.wiring is not None:
            host._publish(host.wiring.without_fragment(module))  # pylint: disable=protected-access
