"""
Versions and version ranges.

A version is ``major.minor.micro[.qualifier]``. Numeric segments compare
numerically, the qualifier compares lexically and only breaks ties.
Ranges use interval notation::

    [1.0.0,2.0.0)   1.0.0 <= v < 2.0.0
    (1.0,2.0]       1.0.0 <  v <= 2.0.0
    1.2             v >= 1.2.0

Both types are immutable and hashable so they can be used inside frozen
pydantic models and as dictionary keys. Pydantic fields use the
``VersionField`` / ``VersionRangeField`` annotations, which accept either
an instance or a string and serialize back to the canonical string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from pydantic import PlainSerializer, PlainValidator


@dataclass(frozen=True, order=True)
class Version:
    """A totally ordered version number."""

    major: int = 0
    minor: int = 0
    micro: int = 0
    qualifier: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``major[.minor[.micro[.qualifier]]]``.

        Raises:
            ValueError: If a numeric segment is not a non-negative integer.
        """
        raw = str(text).strip()
        if not raw:
            raise ValueError("Empty version string")

        parts = raw.split(".", 3)
        numbers: list[int] = []
        for part in parts[:3]:
            if not part.isdigit():
                raise ValueError(f"Invalid version segment {part!r} in {raw!r}")
            numbers.append(int(part))
        while len(numbers) < 3:
            numbers.append(0)

        qualifier = parts[3] if len(parts) == 4 else ""
        return cls(numbers[0], numbers[1], numbers[2], qualifier)

    @classmethod
    def coerce(cls, value: Any) -> Version:
        """Accept a Version, a string, or an int major version.

        Floats are rejected.
        """
        if isinstance(value, Version):
            return value
        if isinstance(value, bool):
            raise ValueError("Cannot convert bool to Version")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            return cls.parse(value)
        raise ValueError(f"Cannot convert {type(value).__name__} to Version")

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.micro}"
        return f"{base}.{self.qualifier}" if self.qualifier else base


@dataclass(frozen=True)
class VersionRange:
    """An interval of versions. ``maximum=None`` means unbounded."""

    minimum: Version = Version()
    include_minimum: bool = True
    maximum: Version | None = None
    include_maximum: bool = False

    @classmethod
    def parse(cls, text: str) -> VersionRange:
        """Parse interval notation or a bare lower bound.

        Raises:
            ValueError: On malformed input or an empty interval.
        """
        raw = str(text).strip()
        if not raw:
            return cls.any()

        if raw[0] not in "[(":
            return cls.at_least(Version.parse(raw))

        if raw[-1] not in "])":
            raise ValueError(f"Unterminated version range {raw!r}")

        body = raw[1:-1]
        if "," not in body:
            raise ValueError(f"Version range {raw!r} needs two bounds")
        low, high = (b.strip() for b in body.split(",", 1))

        rng = cls(
            minimum=Version.parse(low) if low else Version(),
            include_minimum=raw[0] == "[",
            maximum=Version.parse(high) if high else None,
            include_maximum=raw[-1] == "]",
        )
        if rng.maximum is not None:
            if rng.maximum < rng.minimum or (
                rng.maximum == rng.minimum
                and not (rng.include_minimum and rng.include_maximum)
            ):
                raise ValueError(f"Empty version range {raw!r}")
        return rng

    @classmethod
    def coerce(cls, value: Any) -> VersionRange:
        if isinstance(value, VersionRange):
            return value
        if isinstance(value, Version):
            return cls.exact(value)
        if value is None:
            return cls.any()
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return cls.parse(str(value))
        raise ValueError(f"Cannot convert {type(value).__name__} to VersionRange")

    @classmethod
    def exact(cls, version: Version | str) -> VersionRange:
        v = Version.coerce(version)
        return cls(minimum=v, include_minimum=True, maximum=v, include_maximum=True)

    @classmethod
    def at_least(cls, version: Version | str) -> VersionRange:
        return cls(minimum=Version.coerce(version), include_minimum=True)

    @classmethod
    def any(cls) -> VersionRange:
        return cls()

    def includes(self, version: Version) -> bool:
        """Whether ``version`` lies inside the interval."""
        if self.include_minimum:
            if version < self.minimum:
                return False
        elif version <= self.minimum:
            return False

        if self.maximum is None:
            return True
        if self.include_maximum:
            return version <= self.maximum
        return version < self.maximum

    def __str__(self) -> str:
        if self.maximum is None:
            if self.include_minimum:
                return str(self.minimum)
            return f"({self.minimum},)"
        left = "[" if self.include_minimum else "("
        right = "]" if self.include_maximum else ")"
        return f"{left}{self.minimum},{self.maximum}{right}"


VersionField = Annotated[
    Version,
    PlainValidator(Version.coerce),
    PlainSerializer(str, return_type=str),
]

VersionRangeField = Annotated[
    VersionRange,
    PlainValidator(VersionRange.coerce),
    PlainSerializer(str, return_type=str),
]
