"""
Segmentation parameter data structure.

Defines the configuration consumed by `SpotSegmenter`.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class SegmenterParams:
    """Configuration for one spot-detection run."""

    # Expected object diameter, physical units
    diameter: float

    # Physical pixel size per axis (array order); None → take it from the image
    calibration: Optional[Sequence[float]] = None

    # Denoise with a 3x3 median before filtering
    use_median_filter: bool = False

    # Report maxima whose plateau touches the image border
    allow_edge_extrema: bool = False
