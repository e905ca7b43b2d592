"""Version intervals with inclusive/exclusive bounds.

Interval notation follows the Maven/OSGi form: ``[1.0,2.0)``, ``(1.0,2.0]``,
``[1.2,1.2]``; a bare version ``1.0`` means "1.0 or later".
"""

from dataclasses import dataclass
from typing import Optional, Union

from .version import Version


@dataclass(frozen=True)
class VersionRange:
    """Immutable version interval."""

    floor: Version = Version()
    floor_inclusive: bool = True
    ceiling: Optional[Version] = None
    ceiling_inclusive: bool = False

    def __post_init__(self):
        if self.ceiling is None:
            return
        if self.floor > self.ceiling:
            raise ValueError(f"Range floor {self.floor} is above ceiling {self.ceiling}")

    @classmethod
    def parse(cls, spec: Union[str, Version, "VersionRange", None]) -> "VersionRange":
        """Parse interval notation or a bare minimum version.

        Args:
            spec: Range string, an existing range, a Version meaning "that
                version or later", or None for EMPTY_RANGE.

        Raises:
            ValueError: If the range is malformed.
            TypeError: If ``spec`` is of any other type.
        """
        if spec is None:
            return EMPTY_RANGE
        if isinstance(spec, VersionRange):
            return spec
        if isinstance(spec, Version):
            return cls(spec)
        if not isinstance(spec, str):
            raise TypeError(f"Cannot convert {type(spec).__name__} to VersionRange")
        s = spec.strip()
        if not s:
            return EMPTY_RANGE
        if s[0] not in "[(":
            return cls(Version.parse(s))

        if len(s) < 2 or s[-1] not in "])":
            raise ValueError(f"Unterminated version range: {spec!r}")
        inner = s[1:-1]
        parts = inner.split(",")
        if len(parts) != 2:
            raise ValueError(f"Version range needs exactly two bounds: {spec!r}")
        lower_str, upper_str = parts[0].strip(), parts[1].strip()
        if not lower_str:
            raise ValueError(f"Version range needs a floor: {spec!r}")
        floor = Version.parse(lower_str)
        ceiling = Version.parse(upper_str) if upper_str else None
        return cls(floor, s[0] == "[", ceiling, s[-1] == "]")

    @classmethod
    def exact(cls, version: Union[Version, str]) -> "VersionRange":
        """Range matching a single version."""
        v = Version.coerce(version)
        return cls(v, True, v, True)

    def includes(self, version: Version) -> bool:
        """Return True when ``version`` lies within the bounds."""
        if self.floor_inclusive:
            if version < self.floor:
                return False
        elif version <= self.floor:
            return False
        if self.ceiling is None:
            return True
        if self.ceiling_inclusive:
            return version <= self.ceiling
        return version < self.ceiling

    def is_empty(self) -> bool:
        """True when no version can satisfy the range, e.g. ``(1.0,1.0)``."""
        if self.ceiling is None:
            return False
        if self.floor == self.ceiling:
            return not (self.floor_inclusive and self.ceiling_inclusive)
        return False

    def __str__(self) -> str:
        if self.ceiling is None and self.floor_inclusive:
            return str(self.floor)
        left = "[" if self.floor_inclusive else "("
        right = "]" if self.ceiling_inclusive else ")"
        upper = str(self.ceiling) if self.ceiling is not None else ""
        return f"{left}{self.floor},{upper}{right}"


# Shared default: satisfied by every version >= 0.0.0.
EMPTY_RANGE = VersionRange()
