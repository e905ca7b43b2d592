"""modresolve: dependency resolution for dynamic module systems."""

from .errors import DescriptorError, DuplicateIdentityError, ResolverError, UnknownModuleError
from .model import Capability, ConstraintKind, Module, ModuleIdentity, Namespace, VersionConstraint, Wiring
from .model.descriptors import (
    ExportDescriptor,
    HostDescriptor,
    ModuleDescriptor,
    RequirementDescriptor,
    descriptor_from_mapping,
    load_descriptors,
)
from .report import (
    FailureKind,
    ModuleOutcome,
    ResolutionFailure,
    ResolutionReport,
    ResolutionStatus,
    ResolvedSnapshot,
)
from .resolver import Resolver
from .state import State
from .versioning import EMPTY_RANGE, Version, VersionRange

__all__ = [
    "Capability",
    "ConstraintKind",
    "DescriptorError",
    "DuplicateIdentityError",
    "EMPTY_RANGE",
    "ExportDescriptor",
    "FailureKind",
    "HostDescriptor",
    "Module",
    "ModuleDescriptor",
    "ModuleIdentity",
    "ModuleOutcome",
    "Namespace",
    "RequirementDescriptor",
    "ResolutionFailure",
    "ResolutionReport",
    "ResolutionStatus",
    "ResolvedSnapshot",
    "Resolver",
    "ResolverError",
    "State",
    "UnknownModuleError",
    "Version",
    "VersionConstraint",
    "VersionRange",
    "Wiring",
    "descriptor_from_mapping",
    "load_descriptors",
]
