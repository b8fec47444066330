"""Terrarium elevation tiles -> normalized grayscale heightmaps."""

from .config import HeightmapConfig, get_heightmap_config, load_heightmap_config
from .errors import DegenerateCropError
from .errors import HeightmapCancelledError
from .errors import HeightmapError
from .errors import InvalidParametersError
from .errors import TileFetchError
from .pipeline import HeightmapRequest
from .pipeline import HeightmapResult
from .pipeline import bbox_from_center
from .pipeline import generate_heightmap
from .pipeline import generate_heightmap_sync
from .pipeline import stream_heightmap
from .terrarium import TerrariumTileSource
from .tile_grid import GeoBoundingBox
from .tile_grid import TileCoordinate
from .tile_grid import TileGrid

__all__ = [
    "bbox_from_center",
    "DegenerateCropError",
    "generate_heightmap",
    "generate_heightmap_sync",
    "GeoBoundingBox",
    "get_heightmap_config",
    "HeightmapCancelledError",
    "HeightmapConfig",
    "HeightmapError",
    "HeightmapRequest",
    "HeightmapResult",
    "InvalidParametersError",
    "load_heightmap_config",
    "stream_heightmap",
    "TerrariumTileSource",
    "TileCoordinate",
    "TileFetchError",
    "TileGrid",
]
