"""
Pipeline stages for spot detection.

Each stage follows the same two-phase contract as the segmenter itself:
`check_input()` validates, `process()` runs, and both return a bool.
On failure `error_message` explains why; on success `result` holds the
output (an image, or a list of centroids for the maxima finder).

Stages:
- DownSample            Gaussian pre-smoothing + resampling to a target extent
- MedianFilter          median over a structuring element, mirror boundaries
- FourierConvolution    FFT convolution with a small kernel, mirror boundaries
- RegionalMaximaFinder  sub-pixel centroids of regional maxima
"""

from __future__ import annotations
import math
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage as ndi
from scipy.signal import fftconvolve
from skimage.morphology import local_maxima


class Stage:
    """Base class for a validate-then-run pipeline step."""

    name = "stage"

    def __init__(self) -> None:
        self.error_message: str = ""
        self.result: Any = None

    def check_input(self) -> bool:
        return True

    def process(self) -> bool:
        raise NotImplementedError

    def _fail(self, message: str) -> bool:
        self.error_message = message
        return False


def _as_float_image(image) -> np.ndarray:
    return np.asarray(image, dtype=np.float64)


class DownSample(Stage):
    """
    Resample an image to `target_shape`.

    Each axis is first smoothed with sigma = sqrt((target_sigma*f)^2 - source_sigma^2),
    f being the shrink factor, then sampled at source positions i*f.
    `factors` defaults to source/target extent per axis.
    """

    name = "downsample"

    def __init__(
        self,
        image,
        target_shape: Sequence[int],
        source_sigma: float = 0.5,
        target_sigma: float = 0.5,
        factors: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__()
        self.image = image
        self.target_shape = tuple(int(t) for t in target_shape)
        self.source_sigma = source_sigma
        self.target_sigma = target_sigma
        self.factors = None if factors is None else tuple(float(f) for f in factors)

    def check_input(self) -> bool:
        if self.image is None:
            return self._fail("Source image is not set.")
        ndim = np.ndim(self.image)
        if len(self.target_shape) != ndim:
            return self._fail(
                f"Target size has {len(self.target_shape)} dimensions, image has {ndim}."
            )
        if any(t < 1 for t in self.target_shape):
            return self._fail(
                f"Target size must be at least 1 pixel along every axis, got {self.target_shape}."
            )
        if self.factors is not None:
            if len(self.factors) != ndim:
                return self._fail(f"Expected {ndim} down-sampling factors, got {len(self.factors)}.")
            if any(f < 1 for f in self.factors):
                return self._fail(f"Down-sampling factors must be >= 1, got {self.factors}.")
        if self.source_sigma < 0 or self.target_sigma < 0:
            return self._fail("Smoothing sigmas must be >= 0.")
        return True

    def process(self) -> bool:
        img = _as_float_image(self.image)
        factors = self.factors or tuple(
            s / t for s, t in zip(img.shape, self.target_shape)
        )
        sigmas = [
            math.sqrt(max(0.0, (self.target_sigma * f) ** 2 - self.source_sigma ** 2))
            for f in factors
        ]
        if any(s > 0 for s in sigmas):
            img = ndi.gaussian_filter(img, sigma=sigmas, mode="mirror")

        if img.shape == self.target_shape and all(f == 1 for f in factors):
            self.result = img
            return True

        axes = [np.arange(t, dtype=np.float64) * f for t, f in zip(self.target_shape, factors)]
        grid = np.meshgrid(*axes, indexing="ij")
        self.result = ndi.map_coordinates(img, grid, order=1, mode="mirror")
        return True


class MedianFilter(Stage):
    """Median filter over a boolean footprint with mirror boundary extension."""

    name = "median"

    def __init__(self, image, strel: np.ndarray, mode: str = "mirror") -> None:
        super().__init__()
        self.image = image
        self.strel = strel
        self.mode = mode

    def check_input(self) -> bool:
        if self.image is None:
            return self._fail("Image is not set.")
        if self.strel is None or np.size(self.strel) == 0:
            return self._fail("Structuring element is empty.")
        if np.ndim(self.strel) != np.ndim(self.image):
            return self._fail(
                f"Structuring element is {np.ndim(self.strel)}D, image is {np.ndim(self.image)}D."
            )
        return True

    def process(self) -> bool:
        img = _as_float_image(self.image)
        self.result = ndi.median_filter(img, footprint=np.asarray(self.strel, bool), mode=self.mode)
        return True


class FourierConvolution(Stage):
    """
    Convolve an image with a kernel in the frequency domain.

    The image is extended by mirroring by half a kernel on each side, so
    the output has the input's shape and no wrap-around or zero-padding
    artefacts near the borders.
    """

    name = "fft-convolution"

    def __init__(self, image, kernel: np.ndarray) -> None:
        super().__init__()
        self.image = image
        self.kernel = kernel

    def check_input(self) -> bool:
        if self.image is None:
            return self._fail("Image is not set.")
        if self.kernel is None or np.size(self.kernel) == 0:
            return self._fail("Kernel is empty.")
        if np.ndim(self.kernel) != np.ndim(self.image):
            return self._fail(
                f"Kernel is {np.ndim(self.kernel)}D, image is {np.ndim(self.image)}D."
            )
        return True

    def process(self) -> bool:
        img = _as_float_image(self.image)
        kern = np.asarray(self.kernel, np.float64)
        pad = [(k // 2, k - 1 - k // 2) for k in kern.shape]
        extended = np.pad(img, pad, mode="reflect")
        self.result = fftconvolve(extended, kern, mode="valid")
        return True


class RegionalMaximaFinder(Stage):
    """
    Locate regional maxima and return their sub-pixel centroids.

    A regional maximum is a connected plateau (full connectivity) with no
    higher neighbour. Values at or below `threshold` are background and
    never form a maximum. When `allow_edge_extrema` is False, plateaus
    touching the image border are discarded.

    `result` is a list of coordinate tuples in raster order of the plateaus.
    """

    name = "regional-maxima"

    def __init__(
        self,
        image,
        allow_edge_extrema: bool = False,
        threshold: Optional[float] = None,
    ) -> None:
        super().__init__()
        self.image = image
        self.allow_edge_extrema = allow_edge_extrema
        self.threshold = threshold

    def check_input(self) -> bool:
        if self.image is None:
            return self._fail("Image is not set.")
        if np.size(self.image) == 0:
            return self._fail("Image is empty.")
        img = np.asarray(self.image)
        if not np.all(np.isfinite(img)):
            return self._fail("Image contains NaN or infinite values.")
        return True

    def process(self) -> bool:
        img = _as_float_image(self.image)
        floor = float(img.min()) if self.threshold is None else float(self.threshold)
        work = np.maximum(img, floor)

        mask = np.asarray(
            local_maxima(work, connectivity=img.ndim, allow_borders=self.allow_edge_extrema),
            bool,
        )
        mask &= work > floor

        labels, n = ndi.label(mask, structure=np.ones((3,) * img.ndim, bool))
        if n == 0:
            self.result = []
            return True
        centers: List[Tuple[float, ...]] = ndi.center_of_mass(
            mask.astype(np.float64), labels, range(1, n + 1)
        )
        self.result = [tuple(float(c) for c in center) for center in centers]
        return True
