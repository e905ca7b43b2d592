"""Module and capability version values."""

import re
from dataclasses import dataclass
from typing import Union

_QUALIFIER_RE = re.compile(r"[A-Za-z0-9_\-]*")


@dataclass(frozen=True, order=True)
class Version:
    """Immutable (major, minor, micro, qualifier) version.

    Field order gives the total ordering: numeric fields numerically, then
    the qualifier as a plain string, so an empty qualifier sorts first.
    """

    major: int = 0
    minor: int = 0
    micro: int = 0
    qualifier: str = ""

    def __post_init__(self):
        for field_name in ("major", "minor", "micro"):
            value = getattr(self, field_name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Invalid {field_name} version component: {value!r}")
        if self.qualifier is None:
            object.__setattr__(self, "qualifier", "")
        if not _QUALIFIER_RE.fullmatch(self.qualifier):
            raise ValueError(f"Invalid version qualifier: {self.qualifier!r}")

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse ``major[.minor[.micro[.qualifier]]]``.

        Args:
            text: Version string, e.g. "1.2.3.beta".

        Returns:
            Parsed Version.

        Raises:
            ValueError: If the string is not a valid version.
        """
        s = (text or "").strip()
        if not s:
            raise ValueError("Empty version string")
        parts = s.split(".", 3)
        numbers = []
        for part in parts[:3]:
            if not part.isdigit():
                raise ValueError(f"Invalid version string: {text!r}")
            numbers.append(int(part))
        while len(numbers) < 3:
            numbers.append(0)
        qualifier = parts[3] if len(parts) == 4 else ""
        if len(parts) == 4 and not qualifier:
            raise ValueError(f"Invalid version string: {text!r}")
        return cls(numbers[0], numbers[1], numbers[2], qualifier)

    @classmethod
    def coerce(cls, value: Union["Version", str, None]) -> "Version":
        """Return ``value`` as a Version; None means 0.0.0."""
        if value is None:
            return cls()
        if isinstance(value, Version):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to Version")

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.micro}"
        return f"{base}.{self.qualifier}" if self.qualifier else base
