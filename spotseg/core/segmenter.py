"""
Laplacian-of-Gaussian spot segmentation for 2D and 3D images.

Pipeline, each stage replacing the working image:
  1) Down-sample so the expected spot is about GOAL_DOWNSAMPLED_BLOB_DIAM
     pixels across (never up-sample)
  2) Optional median filter against salt-and-pepper noise
  3) FFT convolution with a Gaussian of sigma = diameter / sqrt(ndim),
     expressed per axis in down-sampled pixels
  4) FFT convolution with a discrete Laplacian
  5) Regional maxima of the filtered image → sub-pixel centroids
  6) Centroids → physical coordinates of the source image

The segmenter uses a two-phase contract: `check_input()` then `process()`,
both returning a bool, with the reason for a failure in `error_message`.
A failed `process()` clears the previous results.
"""

from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

from .kernels import GOAL_DOWNSAMPLED_BLOB_DIAM, KernelCache, KernelSet
from .params import SegmenterParams
from .spot import Spot
from .stages import (
    DownSample,
    FourierConvolution,
    MedianFilter,
    RegionalMaximaFinder,
    Stage,
)

logger = logging.getLogger(__name__)

BASE_ERROR_MESSAGE = "SpotSegmenter: "

# Responses below this fraction of the smoothed image contrast are background.
RESPONSE_FLOOR = 1e-6
# FFT rounding noise stays below this fraction of the smoothed image magnitude.
ROUNDING_FLOOR = 1e-10


def background_floor(smoothed: np.ndarray) -> float:
    """Smallest Laplacian response that counts as a spot for this Gaussian-filtered image."""
    contrast = float(np.ptp(smoothed))
    magnitude = float(np.abs(smoothed).max())
    return max(RESPONSE_FLOOR * contrast, ROUNDING_FLOOR * magnitude)


def downsample_factors(calibration: Sequence[float], diameter: float) -> Tuple[float, ...]:
    """Per-axis shrink factors bringing `diameter` (physical) to the goal size in pixels."""
    goal = GOAL_DOWNSAMPLED_BLOB_DIAM
    factors = []
    for cal in calibration:
        d_px = diameter / cal
        factors.append(d_px / goal if d_px > goal else 1.0)
    return tuple(factors)


def downsampled_shape(shape: Sequence[int], factors: Sequence[float]) -> Tuple[int, ...]:
    return tuple(int(math.floor(s / f)) for s, f in zip(shape, factors))


def spots_from_coords(
    coords: Sequence[Sequence[float]],
    calibration: Sequence[float],
    factors: Sequence[float],
) -> List[Spot]:
    """
    Convert down-sampled pixel coordinates to spots in physical units.

    Each coordinate is multiplied by the pixel size and by the factor the
    image was shrunk by. Names follow detection order: "Spot 0", "Spot 1", ...
    """
    spots: List[Spot] = []
    for index, coord in enumerate(coords):
        calibrated = tuple(
            float(c) * float(cal) * float(f) for c, cal, f in zip(coord, calibration, factors)
        )
        spots.append(Spot(calibrated, name=f"Spot {index}"))
    return spots


class StageError(Exception):
    """Raised internally when a pipeline stage fails; never escapes `process()`."""

    def __init__(self, what: str, detail: str) -> None:
        super().__init__(f"{what}:\n{detail}" if detail else what)
        self.what = what
        self.detail = detail


def _run_stage(stage: Stage, what: str):
    if not stage.check_input() or not stage.process():
        raise StageError(what, stage.error_message)
    logger.debug("Stage %s done", stage.name)
    return stage.result


class SpotSegmenter:
    """
    Detect bright round spots and report their physical coordinates.

    Args:
        image: 2D or 3D image (array, CalibratedImage, RoiImage, ...).
        diameter: Expected spot diameter in physical units.
        calibration: Pixel size per axis, array order. When None it is read
            from `image.calibration` if the image carries one.
        use_median_filter: Apply a 3x3 median filter after down-sampling.
        allow_edge_extrema: Keep maxima touching the image border.

    Typical usage:
        seg = SpotSegmenter(img, diameter=2.0, calibration=(0.2, 0.2))
        if not (seg.check_input() and seg.process()):
            raise ValueError(seg.error_message)
        spots = seg.spots
    """

    def __init__(
        self,
        image: ArrayLike,
        diameter: float,
        calibration: Optional[Sequence[float]] = None,
        use_median_filter: bool = False,
        allow_edge_extrema: bool = False,
    ) -> None:
        if calibration is None:
            calibration = getattr(image, "calibration", None)
        self.diameter = float(diameter)
        self.calibration = None if calibration is None else tuple(float(c) for c in calibration)
        self.use_median_filter = bool(use_median_filter)
        self.allow_edge_extrema = bool(allow_edge_extrema)

        self.kernels = KernelCache(self.diameter, self.calibration)
        self.error_message = ""
        self.factors: Optional[Tuple[float, ...]] = None

        self._image = None
        self._spots: List[Spot] = []
        self._filtered: Optional[np.ndarray] = None
        self.set_image(image)

    @classmethod
    def from_params(cls, image: ArrayLike, params: SegmenterParams) -> "SpotSegmenter":
        return cls(
            image,
            params.diameter,
            calibration=params.calibration,
            use_median_filter=params.use_median_filter,
            allow_edge_extrema=params.allow_edge_extrema,
        )

    # ---- state ----

    @property
    def image(self):
        return self._image

    @property
    def spots(self) -> List[Spot]:
        """Spots of the last successful run (empty before a run or after a failure)."""
        return list(self._spots)

    @property
    def filtered_image(self) -> Optional[np.ndarray]:
        """Down-sampled, filtered image the maxima were searched in."""
        return self._filtered

    @property
    def kernel_set(self) -> Optional[KernelSet]:
        return self.kernels.current

    @property
    def sigma(self) -> Optional[float]:
        ks = self.kernels.current
        return None if ks is None else ks.sigma

    def set_image(self, image: Optional[ArrayLike]) -> None:
        """
        Bind a new image and drop results computed for the previous one.

        Kernels are rebuilt only when the dimensionality changes. None is ignored.
        """
        if image is None:
            return
        self.kernels.kernels_for(int(np.ndim(image)))
        self._spots = []
        self._filtered = None
        self._image = image

    # ---- two-phase contract ----

    def _fail(self, message: str) -> bool:
        self.error_message = BASE_ERROR_MESSAGE + message
        return False

    def check_input(self) -> bool:
        if self._image is None:
            return self._fail("Image is not set.")
        ndim = int(np.ndim(self._image))
        if ndim not in (2, 3):
            return self._fail(f"Image must be 2D or 3D, got {ndim}D.")
        if not self.diameter > 0:
            return self._fail("Search diameter is negative or 0.")
        if self.calibration is None:
            return self._fail("Calibration is not set.")
        if len(self.calibration) != ndim:
            return self._fail(
                f"Calibration has {len(self.calibration)} elements for a {ndim}D image."
            )
        if any(not c > 0 for c in self.calibration):
            return self._fail("Calibration has negative or 0 elements.")
        return True

    def process(self) -> bool:
        self._spots = []
        self._filtered = None
        self.factors = None
        if not self.check_input():
            return False

        img = np.asarray(self._image)
        kernels = self.kernels.kernels_for(img.ndim)
        factors = downsample_factors(self.calibration, self.diameter)
        target = downsampled_shape(img.shape, factors)
        logger.debug(
            "Segmenting %s image: factors=%s target=%s sigma=%.4g",
            img.shape, factors, target, kernels.sigma,
        )

        try:
            filtered = _run_stage(
                DownSample(img, target, 0.5, 0.5, factors=factors),
                "Failed to down-sample source image",
            )
            if self.use_median_filter:
                filtered = _run_stage(
                    MedianFilter(filtered, kernels.strel, mode="mirror"),
                    "Failed in applying median filter",
                )
            filtered = _run_stage(
                FourierConvolution(filtered, kernels.gaussian),
                "Fourier convolution with Gaussian failed",
            )
            floor = background_floor(filtered)
            filtered = _run_stage(
                FourierConvolution(filtered, kernels.laplacian),
                "Fourier convolution with Laplacian failed",
            )
            centers = _run_stage(
                RegionalMaximaFinder(filtered, self.allow_edge_extrema, threshold=floor),
                "Extrema finder failed",
            )
        except StageError as e:
            logger.debug("Segmentation aborted: %s", e.what)
            return self._fail(str(e))

        self.factors = factors
        self._filtered = filtered
        self._spots = spots_from_coords(centers, self.calibration, factors)
        logger.debug("Found %d spots", len(self._spots))
        return True


def detect_spots(
    image: ArrayLike,
    diameter: float,
    calibration: Optional[Sequence[float]] = None,
    use_median_filter: bool = False,
    allow_edge_extrema: bool = False,
) -> List[Spot]:
    """One-shot helper: run a segmenter and return its spots, raising ValueError on failure."""
    seg = SpotSegmenter(
        image, diameter, calibration,
        use_median_filter=use_median_filter, allow_edge_extrema=allow_edge_extrema,
    )
    if not (seg.check_input() and seg.process()):
        raise ValueError(seg.error_message)
    return seg.spots
