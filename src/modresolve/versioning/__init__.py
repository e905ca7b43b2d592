"""Version values and version ranges."""

from .version import Version
from .range import EMPTY_RANGE, VersionRange

__all__ = ["Version", "VersionRange", "EMPTY_RANGE"]
