from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .errors import InvalidParametersError
from .web_mercator import lat_to_tile_y, lon_to_tile_x, tile_bounds


@dataclass(frozen=True)
class GeoBoundingBox:
    """A geographic rectangle in degrees (EPSG:4326)."""

    west: float
    south: float
    east: float
    north: float

    def __post_init__(self) -> None:
        if not (-180.0 <= float(self.west) <= 180.0):
            raise InvalidParametersError(f"west out of range: {self.west}")
        if not (-180.0 <= float(self.east) <= 180.0):
            raise InvalidParametersError(f"east out of range: {self.east}")
        if not (-90.0 <= float(self.south) <= 90.0):
            raise InvalidParametersError(f"south out of range: {self.south}")
        if not (-90.0 <= float(self.north) <= 90.0):
            raise InvalidParametersError(f"north out of range: {self.north}")
        if not (self.west < self.east):
            raise InvalidParametersError(
                f"Expected west < east, got {self.west} >= {self.east}"
            )
        if not (self.south < self.north):
            raise InvalidParametersError(
                f"Expected south < north, got {self.south} >= {self.north}"
            )


@dataclass(frozen=True)
class TileCoordinate:
    """Slippy-map tile address (web mercator, y origin at north)."""

    zoom: int
    x: int
    y: int

    def __post_init__(self) -> None:
        if self.zoom < 0:
            raise InvalidParametersError(f"Invalid zoom: {self.zoom}")
        n = 1 << self.zoom
        if not (0 <= self.x < n):
            raise InvalidParametersError(f"x out of range at z={self.zoom}: {self.x}")
        if not (0 <= self.y < n):
            raise InvalidParametersError(f"y out of range at z={self.zoom}: {self.y}")

    def key(self) -> str:
        return f"{self.zoom}/{self.x}/{self.y}"


@dataclass(frozen=True)
class TileGrid:
    """Rectangular block of tiles covering a bounding box at one zoom."""

    zoom: int
    x_min: int
    y_min: int
    tiles_wide: int
    tiles_high: int

    def __post_init__(self) -> None:
        if self.tiles_wide < 1 or self.tiles_high < 1:
            raise InvalidParametersError(
                f"Tile grid must be at least 1x1, got {self.tiles_wide}x{self.tiles_high}"
            )

    @classmethod
    def covering(cls, bbox: GeoBoundingBox, zoom: int) -> "TileGrid":
        if zoom < 0:
            raise InvalidParametersError(f"Invalid zoom: {zoom}")
        x_min = lon_to_tile_x(bbox.west, zoom)
        x_max = lon_to_tile_x(bbox.east, zoom)
        # Tile rows grow southwards.
        y_min = lat_to_tile_y(bbox.north, zoom)
        y_max = lat_to_tile_y(bbox.south, zoom)
        return cls(
            zoom=zoom,
            x_min=x_min,
            y_min=y_min,
            tiles_wide=x_max - x_min + 1,
            tiles_high=y_max - y_min + 1,
        )

    @property
    def tile_count(self) -> int:
        return self.tiles_wide * self.tiles_high

    @property
    def origin(self) -> TileCoordinate:
        return TileCoordinate(zoom=self.zoom, x=self.x_min, y=self.y_min)

    def tiles(self) -> Iterator[TileCoordinate]:
        """Iterate tiles row by row, north to south, west to east."""

        for y in range(self.y_min, self.y_min + self.tiles_high):
            for x in range(self.x_min, self.x_min + self.tiles_wide):
                yield TileCoordinate(zoom=self.zoom, x=x, y=y)

    def offset_of(self, tile: TileCoordinate) -> tuple[int, int]:
        """Return the (column, row) position of a tile inside the grid."""

        col = tile.x - self.x_min
        row = tile.y - self.y_min
        if tile.zoom != self.zoom or not (
            0 <= col < self.tiles_wide and 0 <= row < self.tiles_high
        ):
            raise ValueError(f"Tile {tile.key()} is not part of grid")
        return col, row

    def bounds(self) -> GeoBoundingBox:
        """True geographic extent of the outer tile edges."""

        north_west = tile_bounds(self.zoom, self.x_min, self.y_min)
        south_east = tile_bounds(
            self.zoom,
            self.x_min + self.tiles_wide - 1,
            self.y_min + self.tiles_high - 1,
        )
        return GeoBoundingBox(
            west=north_west.west,
            south=south_east.south,
            east=south_east.east,
            north=north_west.north,
        )
