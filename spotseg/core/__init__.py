# Public API of the core package (re-export)
from .io_utils import (
    imread_stack,
    dump_tiff_metadata_text,
    parse_um_per_px_from_text,
    calibration_from_metadata,
    load_calibrated_image,
)
from .image import CalibratedImage, RoiImage
from .kernels import (
    laplacian_kernel,
    gaussian_kernel,
    square_strel,
    log_sigma,
    pixel_sigmas,
    KernelSet,
    KernelCache,
)
from .stages import (
    Stage,
    DownSample,
    MedianFilter,
    FourierConvolution,
    RegionalMaximaFinder,
)
from .segmenter import (
    GOAL_DOWNSAMPLED_BLOB_DIAM,
    SpotSegmenter,
    background_floor,
    detect_spots,
    downsample_factors,
    downsampled_shape,
    spots_from_coords,
)
from .spot import Spot
from .params import SegmenterParams

__all__ = [
    # io / meta
    "imread_stack", "dump_tiff_metadata_text", "parse_um_per_px_from_text",
    "calibration_from_metadata", "load_calibrated_image",
    # images
    "CalibratedImage", "RoiImage",
    # kernels
    "laplacian_kernel", "gaussian_kernel", "square_strel", "log_sigma", "pixel_sigmas", "KernelSet", "KernelCache",
    # stages
    "Stage", "DownSample", "MedianFilter", "FourierConvolution", "RegionalMaximaFinder",
    # segmentation
    "GOAL_DOWNSAMPLED_BLOB_DIAM", "SpotSegmenter", "background_floor", "detect_spots",
    "downsample_factors", "downsampled_shape", "spots_from_coords",
    "Spot",
    # params
    "SegmenterParams",
]
