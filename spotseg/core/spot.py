"""Detected spot record."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Spot:
    """A detected object: physical coordinates (array axis order) and a display name."""
    coordinates: Tuple[float, ...]
    name: str = ""

    @property
    def ndim(self) -> int:
        return len(self.coordinates)

    def __getitem__(self, axis: int) -> float:
        return self.coordinates[axis]
