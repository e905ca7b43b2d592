"""Resolver input model: capabilities, constraints, modules and descriptors."""

from .capability import Capability, ModuleIdentity, Namespace
from .constraints import ConstraintKind, VersionConstraint
from .module import Module, Wiring

__all__ = [
    "Capability",
    "ModuleIdentity",
    "Namespace",
    "ConstraintKind",
    "VersionConstraint",
    "Module",
    "Wiring",
]
