from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .errors import DegenerateCropError
from .stitcher import RasterBuffer
from .tile_grid import GeoBoundingBox, TileGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CropWindow:
    """Pixel window ``[left, right) x [top, bottom)`` inside a stitched raster."""

    left: int
    right: int
    top: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top


@dataclass(frozen=True)
class CroppedRaster:
    elevations: np.ndarray
    elev_min: float
    elev_max: float
    window: CropWindow

    @property
    def width(self) -> int:
        return int(self.elevations.shape[1])

    @property
    def height(self) -> int:
        return int(self.elevations.shape[0])


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def crop_window(
    bbox: GeoBoundingBox, grid: TileGrid, *, full_width: int, full_height: int
) -> CropWindow:
    """Linearly map bbox edges onto pixel offsets of the stitched raster."""

    extent = grid.bounds()
    span_lon = extent.east - extent.west
    span_lat = extent.north - extent.south

    left = _round_half_up((bbox.west - extent.west) / span_lon * full_width)
    right = _round_half_up((bbox.east - extent.west) / span_lon * full_width)
    top = _round_half_up((extent.north - bbox.north) / span_lat * full_height)
    bottom = _round_half_up((extent.north - bbox.south) / span_lat * full_height)

    left = max(0, min(full_width, left))
    right = max(0, min(full_width, right))
    top = max(0, min(full_height, top))
    bottom = max(0, min(full_height, bottom))
    return CropWindow(left=left, right=right, top=top, bottom=bottom)


def crop_raster(raster: RasterBuffer, grid: TileGrid, bbox: GeoBoundingBox) -> CroppedRaster:
    """Extract the bbox from a stitched raster and find its elevation range."""

    window = crop_window(bbox, grid, full_width=raster.width, full_height=raster.height)
    if window.width <= 0 or window.height <= 0:
        raise DegenerateCropError(
            f"Crop window is {window.width}x{window.height} px at zoom {grid.zoom}; "
            "increase the area or the zoom level"
        )

    elevations = np.array(
        raster.data[window.top : window.bottom, window.left : window.right],
        dtype=np.float32,
        copy=True,
    )
    elev_min = float(elevations.min())
    elev_max = float(elevations.max())

    logger.info(
        "heightmap_cropped",
        extra={
            "crop_left": window.left,
            "crop_top": window.top,
            "crop_width": window.width,
            "crop_height": window.height,
            "elev_min": elev_min,
            "elev_max": elev_max,
        },
    )
    return CroppedRaster(
        elevations=elevations, elev_min=elev_min, elev_max=elev_max, window=window
    )
