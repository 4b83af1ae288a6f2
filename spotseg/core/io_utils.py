"""
Image I/O and calibration metadata utilities.

Loads 2D images and 3D stacks as grayscale arrays and extracts the
physical pixel size (µm/px, array axis order) from TIFF metadata.
"""

from __future__ import annotations
import logging
import os
import re
from typing import Optional, Tuple

import cv2
import numpy as np
import tifffile
from PIL import Image

from .image import CalibratedImage

logger = logging.getLogger(__name__)

_TIFF_EXT = (".tif", ".tiff")


def _to_gray(arr: np.ndarray) -> np.ndarray:
    if arr.ndim == 3 and arr.shape[-1] in (3, 4):
        code = cv2.COLOR_BGRA2GRAY if arr.shape[-1] == 4 else cv2.COLOR_BGR2GRAY
        return cv2.cvtColor(arr, code)
    return arr


def imread_stack(path: str) -> np.ndarray:
    """
    Read an image as a grayscale 2D array or 3D stack, keeping its dtype.

    TIFF files go through tifffile (multi-page stacks → (Z, Y, X));
    anything else through OpenCV, with Pillow as a fallback.
    """
    if os.path.splitext(path)[1].lower() in _TIFF_EXT:
        try:
            arr = np.squeeze(tifffile.imread(path))
        except (OSError, ValueError) as e:
            raise ValueError(f"Cannot read TIFF image: {path}") from e
        # interleaved RGB pages
        if arr.ndim == 3 and arr.shape[-1] in (3, 4):
            arr = _to_gray(arr)
        return arr

    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        try:
            pil = Image.open(path)
        except OSError as e:
            raise ValueError(f"Cannot read image: {path}") from e
        if pil.mode not in ("L", "I", "F", "I;16", "I;16B", "I;16L"):
            pil = pil.convert("L")
        return np.array(pil)
    return _to_gray(img)


def dump_tiff_metadata_text(image_path: str) -> str:
    """Return TIFF tags and info fields as text for regex parsing."""
    try:
        pil = Image.open(image_path)
    except OSError as e:
        return f"[ERROR opening TIFF: {e}]"

    out = []
    for tag, val in getattr(pil, "tag_v2", {}).items():
        if isinstance(val, bytes):
            s = val.decode(errors="ignore")
        elif isinstance(val, (list, tuple)):
            s = " ".join(v.decode(errors="ignore") if isinstance(v, bytes) else str(v) for v in val)
        else:
            s = str(val)
        out.append(f"[{tag}] {s}")

    for k, v in (pil.info or {}).items():
        if isinstance(v, bytes):
            v = v.decode(errors="ignore")
        out.append(f"[{k}] {v}")
    return "\n".join(out)


def parse_um_per_px_from_text(txt: str) -> Optional[float]:
    """Extract an in-plane µm/px scale from microscope metadata text."""
    if not txt:
        return None

    # Direct PixelWidth field (in meters)
    m = re.search(r"PixelWidth\s*=\s*([0-9eE\.\-\+]+)", txt)
    if m:
        try:
            px_m = float(m.group(1))
        except ValueError:
            px_m = 0.0
        if px_m > 0:
            return px_m * 1e6

    # Horizontal field width (m) over horizontal resolution (px)
    m_hfw = re.search(r"(HorFieldsize|HFW)\s*=\s*([0-9eE\.\-\+]+)", txt)
    m_rx = re.search(r"(ResolutionX|Resolutionx)\s*=\s*([0-9]+)", txt)
    if m_hfw and m_rx:
        try:
            hfw_m = float(m_hfw.group(2))
        except ValueError:
            hfw_m = 0.0
        resx = int(m_rx.group(2))
        if hfw_m > 0 and resx > 0:
            return (hfw_m * 1e6) / float(resx)
    return None


def _rational(value) -> float:
    if isinstance(value, tuple):
        num, den = value[0], value[1]
        return float(num) / float(den) if den else 0.0
    return float(value)


def _tiff_tag_calibration(tif: tifffile.TiffFile) -> Optional[Tuple[Tuple[float, float], str]]:
    """In-plane (y, x) pixel size and unit from resolution tags."""
    page = tif.pages[0]
    x_tag = page.tags.get("XResolution")
    y_tag = page.tags.get("YResolution")
    if x_tag is None or y_tag is None:
        return None
    x_res, y_res = _rational(x_tag.value), _rational(y_tag.value)
    if x_res <= 0 or y_res <= 0:
        return None

    if tif.is_imagej:
        # ImageJ stores pixels per calibrated unit
        unit = str((tif.imagej_metadata or {}).get("unit", "pixel"))
        return (1.0 / y_res, 1.0 / x_res), unit

    unit_tag = page.tags.get("ResolutionUnit")
    res_unit = int(unit_tag.value) if unit_tag is not None else 1
    if res_unit == 3:  # centimeter
        return (1e4 / y_res, 1e4 / x_res), "µm"
    if res_unit == 2:  # inch
        return (25400.0 / y_res, 25400.0 / x_res), "µm"
    return None


def calibration_from_metadata(image_path: str, ndim: int = 2) -> Optional[Tuple[Tuple[float, ...], str]]:
    """
    Return (calibration, unit) for an image file, or None if it has none.

    Calibration follows array axis order: (y, x) or (z, y, x). For 3D,
    the z step comes from ImageJ `spacing` and defaults to 1.0.
    """
    if os.path.splitext(image_path)[1].lower() not in _TIFF_EXT:
        return None

    yx: Optional[Tuple[float, float]] = None
    unit = "µm"
    z = 1.0
    try:
        with tifffile.TiffFile(image_path) as tif:
            found = _tiff_tag_calibration(tif)
            if found is not None:
                yx, unit = found
            if tif.is_imagej:
                spacing = (tif.imagej_metadata or {}).get("spacing")
                if spacing:
                    z = float(spacing)
    except (OSError, ValueError, tifffile.TiffFileError) as e:
        logger.warning("Cannot read TIFF calibration from %s: %s", image_path, e)

    if yx is None:
        um = parse_um_per_px_from_text(dump_tiff_metadata_text(image_path))
        if um is None:
            return None
        yx, unit = (um, um), "µm"

    if ndim == 3:
        return (z, yx[0], yx[1]), unit
    return (yx[0], yx[1]), unit


def load_calibrated_image(path: str) -> CalibratedImage:
    """Read an image and attach the calibration found in its metadata (if any)."""
    data = imread_stack(path)
    found = calibration_from_metadata(path, data.ndim)
    if found is None:
        logger.info("No calibration metadata in %s", path)
        return CalibratedImage(data, None, "pixel", os.path.basename(path))
    calibration, unit = found
    logger.debug("Calibration from metadata: %s %s/px", calibration, unit)
    return CalibratedImage(data, calibration, unit, os.path.basename(path))
