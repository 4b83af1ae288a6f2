"""
Spot table export.

Turns detected spots into flat records and writes them to a UTF-8 CSV file.
"""

from __future__ import annotations
import csv
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from spotseg.core.spot import Spot


def axis_names(ndim: int) -> Tuple[str, ...]:
    """Column names for array-ordered coordinates."""
    if ndim == 2:
        return ("y", "x")
    if ndim == 3:
        return ("z", "y", "x")
    return tuple(f"axis{i}" for i in range(ndim))


@dataclass
class SpotRow:
    """Structured record of a single spot."""
    idx: int
    name: str
    coordinates: Tuple[float, ...]


def spot_rows(spots: Sequence[Spot]) -> List[SpotRow]:
    return [SpotRow(idx=i, name=s.name, coordinates=tuple(s.coordinates)) for i, s in enumerate(spots)]


def write_spots_csv(
    path: str, spots: Sequence[Spot], unit: str = "µm", ndim: Optional[int] = None
) -> None:
    """Write one row per spot: index, name, then coordinates in `unit`."""
    rows = spot_rows(spots)
    if ndim is None:
        ndim = len(rows[0].coordinates) if rows else 2
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["idx", "name"] + [f"{a}_{unit}" for a in axis_names(ndim)])
        for r in rows:
            writer.writerow([r.idx, r.name, *r.coordinates])
