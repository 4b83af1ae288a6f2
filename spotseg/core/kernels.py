"""
Filter kernels and structuring elements for LoG spot detection.

- Discrete Laplacian kernels (3x3 in 2D, 3x3x3 in 3D)
- Separable normalized Gaussian kernel for any dimensionality
- Flat structuring elements for the median filter
- A single-slot cache that rebuilds them only when dimensionality changes
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from functools import reduce
from typing import Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

# Target spot diameter in pixels after down-sampling. 10 px keeps the
# localisation accurate while bounding the FFT size.
GOAL_DOWNSAMPLED_BLOB_DIAM = 10.0

_E2 = -1.0 / 8.0
_E3 = -1.0 / 18.0

# 8-neighbour discrete Laplacian (sign flipped: bright blobs respond positive)
_LAPLACIAN_2D = [
    [_E2, _E2, _E2],
    [_E2, 1.0, _E2],
    [_E2, _E2, _E2],
]

# 18-neighbour analogue: faces and edges of the cube, corners excluded
_LAPLACIAN_3D = [
    [[0.0, _E3, 0.0], [_E3, _E3, _E3], [0.0, _E3, 0.0]],
    [[_E3, _E3, _E3], [_E3, 1.0, _E3], [_E3, _E3, _E3]],
    [[0.0, _E3, 0.0], [_E3, _E3, _E3], [0.0, _E3, 0.0]],
]


def laplacian_kernel(ndim: int) -> np.ndarray:
    """Return the fixed discrete Laplacian kernel for a 2D or 3D image."""
    if ndim == 2:
        values = _LAPLACIAN_2D
    elif ndim == 3:
        values = _LAPLACIAN_3D
    else:
        raise ValueError(f"Laplacian kernel is defined for 2D or 3D only, got {ndim}D.")

    kern = np.zeros((3,) * ndim, np.float64)
    vals = np.asarray(values, np.float64)
    for pos in np.ndindex(kern.shape):
        kern[pos] = vals[pos]
    return kern


def gaussian_halfwidth(sigma: float) -> int:
    """Half-width of the Gaussian kernel: 3 sigma, at least one pixel."""
    return max(1, int(3.0 * sigma + 0.5))


def _gaussian_1d(sigma: float) -> np.ndarray:
    h = gaussian_halfwidth(sigma)
    x = np.arange(-h, h + 1, dtype=np.float64)
    g = np.exp(-(x * x) / (2.0 * sigma * sigma))
    return g / g.sum()


def gaussian_kernel(sigma: Union[float, Sequence[float]], ndim: int) -> np.ndarray:
    """
    Normalized Gaussian kernel with one sigma per axis (pixels).

    A scalar sigma gives an isotropic kernel of shape (2h+1,)*ndim.
    Built as the outer product of 1D kernels, so it sums to 1.
    """
    if ndim < 1:
        raise ValueError(f"Gaussian kernel needs at least one dimension, got {ndim}.")
    if isinstance(sigma, (int, float)):
        sigmas = (float(sigma),) * ndim
    else:
        sigmas = tuple(float(s) for s in sigma)
    if len(sigmas) != ndim:
        raise ValueError(f"Gaussian kernel needs {ndim} sigmas, got {len(sigmas)}.")
    if any(not s > 0 for s in sigmas):
        raise ValueError(f"Gaussian sigma must be > 0, got {sigma}.")
    return reduce(np.multiply.outer, [_gaussian_1d(s) for s in sigmas])


def square_strel(ndim: int) -> np.ndarray:
    """Median-filter footprint: 3x3 square in 2D, flat 3x3x1 slab in 3D."""
    if ndim == 2:
        return np.ones((3, 3), bool)
    if ndim == 3:
        return np.ones((3, 3, 1), bool)
    raise ValueError(f"Structuring element is defined for 2D or 3D only, got {ndim}D.")


def log_sigma(diameter: float, ndim: int) -> float:
    """Optimal LoG sigma for a blob of the given diameter and dimensionality."""
    return diameter / math.sqrt(ndim)


def pixel_sigmas(
    diameter: float,
    calibration: Sequence[float],
    goal: float = GOAL_DOWNSAMPLED_BLOB_DIAM,
) -> Tuple[float, ...]:
    """
    LoG sigma per axis, in pixels of the down-sampled image.

    Down-sampling brings the spot to `goal` pixels across on every axis
    where it was larger, and leaves it as is where it was smaller, so
    the sigma is log_sigma() of that pixel diameter. It never exceeds
    goal / sqrt(ndim) and does not depend on the physical unit.
    """
    ndim = len(calibration)
    return tuple(log_sigma(min(diameter / cal, goal), ndim) for cal in calibration)


@dataclass(frozen=True, eq=False)
class KernelSet:
    """Everything the pipeline derives from (diameter, calibration, dimensionality)."""
    ndim: int
    sigma: float
    pixel_sigmas: Tuple[float, ...]
    laplacian: np.ndarray
    gaussian: np.ndarray
    strel: np.ndarray


class KernelCache:
    """
    Holds the kernels for one dimensionality at a time.

    `kernels_for(ndim)` returns the cached set when `ndim` matches the
    dimensionality it was built for, and rebuilds otherwise. Swapping an
    image for another one of the same dimensionality is therefore free;
    going 2D -> 3D -> 2D rebuilds twice. `builds` counts rebuilds.

    `sigma` is in physical units. The Gaussian itself is sized from
    `pixel_sigmas`, which needs a calibration with one positive entry
    per axis; without one the Gaussian stays empty.
    """

    def __init__(self, diameter: float, calibration: Optional[Sequence[float]] = None) -> None:
        self.diameter = diameter
        self.calibration = None if calibration is None else tuple(calibration)
        self.builds = 0
        self._current: Optional[KernelSet] = None

    @property
    def current(self) -> Optional[KernelSet]:
        return self._current

    def kernels_for(self, ndim: int) -> KernelSet:
        if self._current is not None and self._current.ndim == ndim:
            return self._current
        self._current = self._build(ndim)
        self.builds += 1
        return self._current

    def _build(self, ndim: int) -> KernelSet:
        sigma = log_sigma(self.diameter, ndim) if ndim > 0 else 0.0
        # Bad dimensionality, diameter or calibration is reported by
        # validation; the kernels that cannot be built stay empty.
        if ndim not in (2, 3):
            logger.debug("Building %dD kernels (sigma=%.4g), no filters", ndim, sigma)
            return KernelSet(ndim, sigma, (), np.empty(0), np.empty(0), np.empty(0, bool))

        cal = self.calibration
        if sigma > 0 and cal is not None and len(cal) == ndim and all(c > 0 for c in cal):
            px = pixel_sigmas(self.diameter, cal)
            gaussian = gaussian_kernel(px, ndim)
        else:
            px, gaussian = (), np.empty(0)
        logger.debug("Building %dD kernels (sigma=%.4g, pixel sigmas=%s)", ndim, sigma, px)
        return KernelSet(
            ndim=ndim,
            sigma=sigma,
            pixel_sigmas=px,
            laplacian=laplacian_kernel(ndim),
            gaussian=gaussian,
            strel=square_strel(ndim),
        )
