"""Resolution engine."""

from .consistency import UsesChecker, UsesConflict
from .engine import Resolver
from .search import ChoiceSearch, SingletonConflict

__all__ = ["Resolver", "ChoiceSearch", "SingletonConflict", "UsesChecker", "UsesConflict"]
