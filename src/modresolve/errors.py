"""Exceptions raised for structural misuse of the resolver API.

Unsatisfiable requirements are never raised; they are reported as data in a
ResolutionReport.
"""


class ResolverError(Exception):
    """Base class for resolver errors."""


class DuplicateIdentityError(ResolverError, ValueError):
    """A module with the same (symbolic name, version) is already installed."""

    def __init__(self, identity):
        super().__init__(f"Module already installed: {identity}")
        self.identity = identity


class UnknownModuleError(ResolverError, LookupError):
    """An operation referenced a module identity not present in the State."""

    def __init__(self, identity):
        super().__init__(f"Unknown module: {identity}")
        self.identity = identity


class DescriptorError(ResolverError, ValueError):
    """Module descriptor input is malformed."""
