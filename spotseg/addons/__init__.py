"""
Add-ons package for spot segmentation.

Provides helper functions for:
- resolving the calibration to use (manual or metadata)
- exporting detected spots to CSV
"""

# ---- Calibration ----
from .calibration import resolve_calibration

# ---- Spot table / CSV export ----
from .csv_ext import SpotRow, spot_rows, axis_names, write_spots_csv


__all__ = [
    # calibration
    "resolve_calibration",
    # export
    "SpotRow", "spot_rows", "axis_names", "write_spots_csv",
]
