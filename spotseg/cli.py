# spotseg/cli.py
"""
Command-line spot detection.

Example
-------
spotseg-detect stack.tif --diameter 2.0 --calibration 0.5 0.2 0.2 --unit um --csv spots.csv
"""

from __future__ import annotations
import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import tifffile

from spotseg.addons import resolve_calibration, write_spots_csv
from spotseg.core import (
    SegmenterParams,
    SpotSegmenter,
    dump_tiff_metadata_text,
    load_calibrated_image,
)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Detect bright round spots (LoG) in a 2D image or 3D stack.")
    ap.add_argument("image")
    ap.add_argument("--diameter", type=float, required=True,
                    help="Expected spot diameter, physical units.")
    ap.add_argument("--calibration", type=float, nargs="+", default=None,
                    help="Pixel size per axis (array order), or one value for all axes. "
                         "If not given, read from TIFF metadata.")
    ap.add_argument("--unit", default=None,
                    help="Physical unit of the calibration. Defaults to the metadata unit.")
    ap.add_argument("--median", action="store_true", help="Median-filter before LoG filtering.")
    ap.add_argument("--edge-extrema", action="store_true", help="Keep spots touching the image border.")
    ap.add_argument("--csv", default=None, help="Write detected spots to this CSV file.")
    ap.add_argument("--save-filtered", default=None, help="Write the filtered image to this TIFF file.")
    ap.add_argument("--meta-debug", action="store_true", help="Print TIFF metadata text and exit.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return ap


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    p = Path(args.image)
    if args.meta_debug:
        print("===== TIFF METADATA =====")
        print(dump_tiff_metadata_text(str(p)))
        print("===== END =====")
        return 0

    try:
        img = load_calibrated_image(str(p))
        calibration = resolve_calibration(img.ndim, args.calibration, img.calibration)
    except ValueError as e:
        raise SystemExit(str(e))
    unit = args.unit or img.unit
    print(f"[calibration] {', '.join(f'{c:.6g}' for c in calibration)} {unit}/px")

    params = SegmenterParams(
        diameter=args.diameter,
        calibration=calibration,
        use_median_filter=args.median,
        allow_edge_extrema=args.edge_extrema,
    )
    seg = SpotSegmenter.from_params(img, params)
    if not (seg.check_input() and seg.process()):
        raise SystemExit(seg.error_message)

    spots = seg.spots
    print(f"[spots] {len(spots)} found in {p.name} (shape {img.shape})")

    if args.csv:
        write_spots_csv(args.csv, spots, unit=unit, ndim=img.ndim)
        print(f"[csv] {args.csv}")
    if args.save_filtered:
        tifffile.imwrite(args.save_filtered, np.asarray(seg.filtered_image, np.float32))
        print(f"[filtered] {args.save_filtered}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
