"""
Chunk size configuration and global limits.

A configuration is three sizes in bytes: ``average`` (the target chunk size),
``minimum`` (hard floor for every chunk except the last chunk of a stream) and
``maximum`` (hard ceiling). The boundary masks are derived from ``average``.

Configurations can be built directly, from the recommended preset, or loaded
from a YAML file:

```yaml
chunking:
  average: 65536
  minimum: 16384
  maximum: 524288
```
"""

import logging
import math
import numbers
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from dedup_chunking.core.errors import (
    ArgumentRangeError,
    ArgumentTypeError,
    RelationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkingLimits:
    """Global bounds every configuration must respect."""

    average_min: int = 256
    average_max: int = 268435456        # 2**28
    minimum_min: int = 64
    minimum_max: int = 67108864         # 2**26
    maximum_min: int = 1024
    maximum_max: int = 1073741824       # 2**30
    integer_max: int = 2147483647       # 2**31 - 1
    bits_min: int = 8
    bits_max: int = 28


LIMITS = ChunkingLimits()


def check_integer(key: str, value: Any) -> int:
    """Return ``value`` if it is an unsigned 31 bit integer, raise otherwise."""
    if (
        isinstance(value, bool)
        or not isinstance(value, numbers.Integral)
        or value < 0
        or value > LIMITS.integer_max
    ):
        raise ArgumentTypeError(f"{key} must be an unsigned 31 bit integer", repr(value))
    return int(value)


def logarithm2(integer: int) -> int:
    """Nearest integer base-2 logarithm (65535, 65536 and 65537 all give 16)."""
    return round(math.log2(integer))


def mask(bits: int) -> int:
    """Mask with the lowest ``bits`` bits set."""
    if bits < 1:
        raise ArgumentRangeError("bits < 1")
    if bits > 31:
        raise ArgumentRangeError("bits > 31")
    return (1 << bits) - 1


def check_minimum(minimum: Any) -> int:
    minimum = check_integer("minimum", minimum)
    if minimum < LIMITS.minimum_min:
        raise ArgumentRangeError("minimum < MINIMUM_MIN", str(minimum))
    if minimum > LIMITS.minimum_max:
        raise ArgumentRangeError("minimum > MINIMUM_MAX", str(minimum))
    return minimum


def check_sizes(average: Any, minimum: Any, maximum: Any) -> None:
    """Validate a size triple in the documented order, raising on the first fault."""
    average = check_integer("average", average)
    if average < LIMITS.average_min:
        raise ArgumentRangeError("average < AVERAGE_MIN", str(average))
    if average > LIMITS.average_max:
        raise ArgumentRangeError("average > AVERAGE_MAX", str(average))

    minimum = check_minimum(minimum)
    if minimum >= average:
        raise RelationError("minimum >= average", f"{minimum} >= {average}")

    maximum = check_integer("maximum", maximum)
    if maximum < LIMITS.maximum_min:
        raise ArgumentRangeError("maximum < MAXIMUM_MIN", str(maximum))
    if maximum > LIMITS.maximum_max:
        raise ArgumentRangeError("maximum > MAXIMUM_MAX", str(maximum))
    if maximum <= average:
        raise RelationError("maximum <= average", f"{maximum} <= {average}")
    if maximum - minimum < average:
        raise RelationError(
            "maximum - minimum < average", f"{maximum} - {minimum} < {average}"
        )


@dataclass(frozen=True)
class ChunkerConfig:
    """Validated chunk size configuration."""

    average: int = 65536
    minimum: int = 16384
    maximum: int = 524288

    def __post_init__(self):
        """Validate configuration parameters."""
        check_sizes(self.average, self.minimum, self.maximum)
        bits = logarithm2(self.average)
        if bits < LIMITS.bits_min:
            raise RelationError("average must be at least 8 bits", str(bits))
        if bits > LIMITS.bits_max:
            raise RelationError("average must be at most 28 bits", str(bits))

    @property
    def bits(self) -> int:
        return logarithm2(self.average)

    @property
    def mask_high(self) -> int:
        """Stricter mask, applied while the chunk is shorter than the center."""
        return mask(self.bits + 1)

    @property
    def mask_low(self) -> int:
        """Looser mask, applied once the chunk has grown past the center."""
        return mask(self.bits - 1)

    @classmethod
    def recommended(cls, average: int = 65536) -> "ChunkerConfig":
        """Preset with ``minimum = average / 4`` and ``maximum = average * 8``."""
        return cls(average=average, minimum=round(average / 4), maximum=average * 8)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkerConfig":
        """
        Build a configuration from a mapping.

        Keys may sit at the top level or under a ``chunking`` section. Missing
        ``minimum``/``maximum`` fall back to the recommended preset for the
        given ``average``.
        """
        section = data.get("chunking", data) if isinstance(data, dict) else None
        if not isinstance(section, dict):
            raise ArgumentTypeError("configuration must be a mapping", type(data).__name__)

        unknown = set(section) - {"average", "minimum", "maximum"}
        if unknown:
            raise ArgumentRangeError("unknown configuration keys", ", ".join(sorted(unknown)))

        average = section.get("average", cls.average)
        params = {"average": average}
        if "minimum" in section or "maximum" in section:
            params["minimum"] = section.get("minimum", cls.minimum)
            params["maximum"] = section.get("maximum", cls.maximum)
            return cls(**params)
        return cls.recommended(average)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "ChunkerConfig":
        """Load a configuration from a YAML file."""
        config_path = Path(config_path)
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}

        config = cls.from_dict(raw_config)
        logger.debug(f"Loaded chunking configuration from {config_path}: {config.to_dict()}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = asdict(self)
        result["bits"] = self.bits
        return result

    def save(self, config_path: Union[str, Path]) -> None:
        """Write the configuration as YAML under a ``chunking`` section."""
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"chunking": asdict(self)}, f, sort_keys=False)
