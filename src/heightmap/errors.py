from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .tile_grid import TileCoordinate


class HeightmapError(RuntimeError):
    """Base error for heightmap generation."""


class InvalidParametersError(HeightmapError, ValueError):
    """Raised when request inputs are non-finite or out of range."""


class TileFetchError(HeightmapError):
    """Raised when a tile cannot be downloaded or decoded."""

    def __init__(
        self,
        tile: "TileCoordinate",
        *,
        status: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.tile = tile
        self.status = status
        self.reason = reason
        detail = str(status) if status is not None else (reason or "failed")
        message = f"Tile {tile.zoom}/{tile.x}/{tile.y} -> {detail}"
        if status is not None and reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DegenerateCropError(HeightmapError):
    """Raised when the crop window collapses to zero width or height."""


class HeightmapCancelledError(HeightmapError):
    """Raised when a run is cancelled or exceeds its deadline."""
