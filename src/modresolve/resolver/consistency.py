"""Uses-consistency checking.

A module's package space maps every package name it can see to one exporting
capability. Packages become visible through the module's own exports, its
package imports, the exports of modules it requires, and transitively
through the ``uses`` directives of each visible export. Reaching one package
name through two different exporters is a conflict.
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Deque, Dict, Mapping, NamedTuple, Optional, Tuple

from ..model.capability import Capability
from ..model.constraints import ConstraintKind, VersionConstraint
from ..model.module import Module

Wires = Mapping[VersionConstraint, Tuple[Capability, ...]]
WireLookup = Callable[[Module], Wires]
ExportLookup = Callable[[Module], Tuple[Capability, ...]]


class UsesConflict(NamedTuple):
    """Two exporters of ``package`` visible to ``module``.

    ``path`` holds the constraints wired along both routes; the resolver
    retracts the most recently decided one.
    """

    module: Module
    package: str
    first: Capability
    second: Capability
    path: Tuple[VersionConstraint, ...]

    def describe(self) -> str:
        return (
            f"uses conflict on package '{self.package}': "
            f"{self.first.module.identity} and {self.second.module.identity}"
        )


def resolved_wires(module: Module) -> Wires:
    """Committed wires of a module; a fragment sees its host's wires."""
    host = module.host
    if host is not None:
        return host.effective_wires()
    return module.effective_wires()


def resolved_exports(module: Module) -> Tuple[Capability, ...]:
    return module.effective_exports


class UsesChecker:
    """Computes package spaces over a pluggable view of the wiring."""

    def __init__(self, wires_of: WireLookup = resolved_wires, exports_of: ExportLookup = resolved_exports):
        self._wires_of = wires_of
        self._exports_of = exports_of

    def package_space(self, module: Module) -> Dict[str, Capability]:
        """Visible package name -> exporter, stopping at the first clash."""
        space: Dict[str, Capability] = {}
        self._walk(module, space)
        return space

    def find_conflict(self, module: Module) -> Optional[UsesConflict]:
        return self._walk(module, {})

    def _walk(self, module: Module, space: Dict[str, Capability]) -> Optional[UsesConflict]:
        wires = self._wires_of(module)
        imported = {
            c.name for c, caps in wires.items() if c.kind is ConstraintKind.PACKAGE_IMPORT and caps
        }
        queue: Deque[Tuple[str, Capability, Tuple[VersionConstraint, ...]]] = deque()
        for export in self._exports_of(module):
            # An import of the same package takes precedence over the export.
            if export.name not in imported:
                queue.append((export.name, export, ()))
        for constraint, caps in wires.items():
            if not caps:
                continue
            if constraint.kind is ConstraintKind.PACKAGE_IMPORT:
                queue.append((constraint.name, caps[0], (constraint,)))
            elif constraint.kind is ConstraintKind.MODULE_REQUIRE:
                for cap in caps:
                    for export in self._exports_of(cap.module):
                        queue.append((export.name, export, (constraint,)))

        paths: Dict[str, Tuple[VersionConstraint, ...]] = {}
        while queue:
            package, cap, path = queue.popleft()
            seen = space.get(package)
            if seen is not None:
                if seen is not cap:
                    return UsesConflict(module, package, seen, cap, paths[package] + path)
                continue
            space[package] = cap
            paths[package] = path
            for used in cap.uses:
                source = self._source_of(cap.module, used)
                if source is None:
                    continue
                used_cap, via = source
                queue.append((used, used_cap, path + ((via,) if via is not None else ())))
        return None

    def _source_of(
        self, module: Module, package: str
    ) -> Optional[Tuple[Capability, Optional[VersionConstraint]]]:
        """Which exporter of ``package`` ``module`` itself sees, and through which wire."""
        wires = self._wires_of(module)
        for constraint, caps in wires.items():
            if constraint.kind is ConstraintKind.PACKAGE_IMPORT and caps and constraint.name == package:
                return caps[0], constraint
        for export in self._exports_of(module):
            if export.name == package:
                return export, None
        for constraint, caps in wires.items():
            if constraint.kind is not ConstraintKind.MODULE_REQUIRE:
                continue
            for cap in caps:
                for export in self._exports_of(cap.module):
                    if export.name == package:
                        return export, constraint
        return None
