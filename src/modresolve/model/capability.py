"""Capabilities exported by modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, NamedTuple, Tuple

from ..versioning import Version

if TYPE_CHECKING:
    from .module import Module


class Namespace(Enum):
    """Kinds of capability a module can provide."""

    PACKAGE = "package"
    MODULE = "module"


class ModuleIdentity(NamedTuple):
    """Unique key of an installed module."""

    symbolic_name: str
    version: Version

    def __str__(self) -> str:
        return f"{self.symbolic_name}_{self.version}"


@dataclass(eq=False)
class Capability:
    """A named, versioned thing provided by a module.

    Compared by identity: two exports with the same name and version from
    different modules are different capabilities.
    """

    namespace: Namespace
    name: str
    version: Version
    module: "Module" = field(repr=False)
    uses: Tuple[str, ...] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.namespace.value}:{self.name};version={self.version} ({self.module.identity})"
