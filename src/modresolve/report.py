"""Resolution outcomes returned to callers.

A ResolutionReport is an immutable snapshot taken at the end of a resolve
pass; later State changes never alter it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .model.capability import ModuleIdentity
from .versioning import VersionRange


class ResolutionStatus(Enum):
    """Per-module outcome."""

    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class FailureKind(Enum):
    """Why a module could not be resolved."""

    # No installed capability satisfied the requirement, or every match
    # belonged to a module that failed itself.
    CANDIDATES_EXHAUSTED = "candidates exhausted"
    # Matching candidates existed but were excluded by singleton or uses conflicts.
    CONSISTENCY_EXCLUDED = "consistency excluded"
    SINGLETON_CONFLICT = "singleton conflict"
    USES_CONFLICT = "uses conflict"
    # A previously chosen supplier is no longer resolved.
    SUPPLIER_UNRESOLVED = "supplier unresolved"


@dataclass(frozen=True)
class ResolutionFailure:
    """One reason a module stayed unresolved."""

    kind: FailureKind
    requirement_name: Optional[str] = None
    version_range: Optional[VersionRange] = None
    # Human-readable only; not part of equality.
    detail: str = field(default="", compare=False)

    @property
    def candidates_existed(self) -> bool:
        """True when matching candidates were found but excluded by conflicts."""
        return self.kind is not FailureKind.CANDIDATES_EXHAUSTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "requirement": self.requirement_name,
            "range": str(self.version_range) if self.version_range is not None else None,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        if self.requirement_name is None:
            return f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value
        text = f"{self.requirement_name} {self.version_range}: {self.kind.value}"
        return f"{text} ({self.detail})" if self.detail else text


@dataclass(frozen=True)
class ModuleOutcome:
    """Status of one module after a pass."""

    identity: ModuleIdentity
    status: ResolutionStatus
    reasons: Tuple[ResolutionFailure, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": str(self.identity),
            "status": self.status.value,
            "reasons": [r.to_dict() for r in self.reasons],
        }


def _freeze(outcomes: Iterable[ModuleOutcome]) -> Mapping[ModuleIdentity, ModuleOutcome]:
    return MappingProxyType({o.identity: o for o in outcomes})


@dataclass(frozen=True, eq=False)
class ResolutionReport:
    """Outcomes of one resolve call.

    ``outcomes`` covers the requested modules and is what equality compares.
    ``side_effects`` covers other modules decided during the pass: suppliers
    resolved on demand and dependents cascaded to unresolved.
    """

    outcomes: Mapping[ModuleIdentity, ModuleOutcome] = field(default_factory=lambda: MappingProxyType({}))
    side_effects: Mapping[ModuleIdentity, ModuleOutcome] = field(default_factory=lambda: MappingProxyType({}))
    timestamp: int = 0

    @classmethod
    def build(
        cls,
        outcomes: Iterable[ModuleOutcome],
        side_effects: Iterable[ModuleOutcome] = (),
        timestamp: int = 0,
    ) -> "ResolutionReport":
        return cls(_freeze(outcomes), _freeze(side_effects), timestamp)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolutionReport):
            return NotImplemented
        return dict(self.outcomes) == dict(other.outcomes)

    def __hash__(self) -> int:
        return hash(frozenset(self.outcomes.items()))

    def __contains__(self, identity: object) -> bool:
        return identity in self.outcomes or identity in self.side_effects

    def __getitem__(self, identity: ModuleIdentity) -> ModuleOutcome:
        if identity in self.outcomes:
            return self.outcomes[identity]
        return self.side_effects[identity]

    def get(self, identity: ModuleIdentity) -> Optional[ModuleOutcome]:
        if identity in self:
            return self[identity]
        return None

    def status(self, identity: ModuleIdentity) -> ResolutionStatus:
        return self[identity].status

    def is_resolved(self, identity: ModuleIdentity) -> bool:
        return self[identity].resolved

    def reasons(self, identity: ModuleIdentity) -> Tuple[ResolutionFailure, ...]:
        return self[identity].reasons

    @property
    def resolved(self) -> Tuple[ModuleIdentity, ...]:
        """Requested modules that are resolved."""
        return tuple(i for i, o in self.outcomes.items() if o.resolved)

    @property
    def unresolved(self) -> Tuple[ModuleIdentity, ...]:
        """Requested modules that are unresolved."""
        return tuple(i for i, o in self.outcomes.items() if not o.resolved)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "modules": [o.to_dict() for o in self.outcomes.values()],
            "side_effects": [o.to_dict() for o in self.side_effects.values()],
        }


@dataclass(frozen=True, eq=False)
class ResolvedSnapshot:
    """Resolved modules and their chosen supplier modules.

    This is the payload an external persistence layer serializes.
    """

    wires: Mapping[ModuleIdentity, Tuple[Tuple[str, ModuleIdentity], ...]]
    timestamp: int = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedSnapshot):
            return NotImplemented
        return dict(self.wires) == dict(other.wires)

    def __hash__(self) -> int:
        return hash(frozenset(self.wires.items()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "modules": {
                str(identity): [{"requirement": name, "supplier": str(supplier)} for name, supplier in edges]
                for identity, edges in self.wires.items()
            },
        }
