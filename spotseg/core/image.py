"""
Image containers understood by the segmenter.

Anything `numpy.asarray` accepts can be segmented. These two classes add
what a bare array lacks:

- CalibratedImage: pixel data with per-axis physical pixel size
- RoiImage: a rectangular region-of-interest view over another image
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike


@dataclass
class CalibratedImage:
    """Pixel data plus physical calibration (units per pixel, array axis order)."""
    data: np.ndarray
    calibration: Optional[Tuple[float, ...]] = None
    unit: str = "pixel"
    name: str = ""

    def __array__(self, dtype=None, copy=None):
        return np.asarray(self.data, dtype=dtype)

    @property
    def ndim(self) -> int:
        return int(np.ndim(self.data))

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(np.shape(self.data))


class RoiImage:
    """
    Restrict an image to the box `offset : offset + size`.

    Missing trailing offsets default to 0 and missing sizes to 1, so a 2D
    ROI can be laid over a 3D stack to select a single plane. The view
    converts to an array of the ROI only; calibration and unit are those
    of the wrapped image.
    """

    def __init__(self, image: ArrayLike, offset: Sequence[int], size: Sequence[int]) -> None:
        self.image = image
        ndim = int(np.ndim(image))
        self.offset = tuple(int(offset[d]) if d < len(offset) else 0 for d in range(ndim))
        self.size = tuple(int(size[d]) if d < len(size) else 1 for d in range(ndim))

        full = np.shape(image)
        for d in range(ndim):
            if self.offset[d] < 0 or self.size[d] < 0 or self.offset[d] + self.size[d] > full[d]:
                raise ValueError(
                    f"ROI offset={self.offset} size={self.size} exceeds image shape {full}."
                )

    def __array__(self, dtype=None, copy=None):
        box = tuple(slice(o, o + s) for o, s in zip(self.offset, self.size))
        return np.asarray(self.image, dtype=dtype)[box]

    @property
    def ndim(self) -> int:
        return len(self.size)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.size

    @property
    def pixel_count(self) -> int:
        return int(np.prod(self.size))

    @property
    def calibration(self) -> Optional[Tuple[float, ...]]:
        return getattr(self.image, "calibration", None)

    @property
    def unit(self) -> str:
        return getattr(self.image, "unit", "pixel")

    def to_parent(self, position: Sequence[float]) -> Tuple[float, ...]:
        """Map an ROI pixel position to the wrapped image's pixel grid."""
        return tuple(float(p) + o for p, o in zip(position, self.offset))

    def interpolator(self, *args, **kwargs):
        raise NotImplementedError("Interpolation over a RoiImage is not supported.")
