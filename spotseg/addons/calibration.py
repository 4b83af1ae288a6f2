"""
Calibration resolution utilities.

Picks the pixel size to use from a manual setting or image metadata.
"""

from __future__ import annotations
from typing import Optional, Sequence, Tuple, Union


def resolve_calibration(
    ndim: int,
    manual: Optional[Union[float, Sequence[float]]] = None,
    from_metadata: Optional[Sequence[float]] = None,
) -> Tuple[float, ...]:
    """
    Return a per-axis calibration of length `ndim`.

    A manual scalar is applied to every axis; a manual sequence must have
    `ndim` entries. Metadata is used only when no manual value is given.
    """
    if manual is not None:
        if isinstance(manual, (int, float)):
            values = (float(manual),) * ndim
        else:
            values = tuple(float(m) for m in manual)
            if len(values) == 1:
                values = values * ndim
        if len(values) != ndim:
            raise ValueError(f"Calibration needs {ndim} values, got {len(values)}.")
        if any(v <= 0 for v in values):
            raise ValueError(f"Calibration values must be > 0, got {values}.")
        return values

    if from_metadata is not None:
        values = tuple(float(m) for m in from_metadata)
        if len(values) == ndim and all(v > 0 for v in values):
            return values

    raise ValueError("Valid calibration (units/px) is required: set it manually or via metadata.")
