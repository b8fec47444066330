"""Typed progress events emitted while a heightmap is generated.

Producers call an ``EventSink`` with these objects; consumers decide whether to
log them, print ``event.message`` or drive a progress bar.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Union

if TYPE_CHECKING:
    from .pipeline import HeightmapResult


@dataclass(frozen=True)
class TileFetchStarted:
    tile_count: int
    zoom: int

    @property
    def message(self) -> str:
        return f"Fetching {self.tile_count} tiles (zoom {self.zoom})..."


@dataclass(frozen=True)
class TileFetched:
    tile_key: str
    completed: int
    total: int

    @property
    def message(self) -> str:
        return f"Tile {self.tile_key} ready ({self.completed}/{self.total})"


@dataclass(frozen=True)
class TileFetchCompleted:
    tile_count: int
    elapsed_s: float

    @property
    def message(self) -> str:
        return f"Tiles fetched ({self.elapsed_s:.1f} s). Cropping..."


@dataclass(frozen=True)
class ResizeStarted:
    width: int
    height: int

    @property
    def message(self) -> str:
        return f"Resizing to {self.width}x{self.height}..."


@dataclass(frozen=True)
class ElevationRangeFound:
    elev_min: float
    elev_max: float

    @property
    def message(self) -> str:
        span = self.elev_max - self.elev_min
        return (
            f"Elevation: {self.elev_min:.0f} m - {self.elev_max:.0f} m "
            f"(range {span:.0f} m)"
        )


@dataclass(frozen=True)
class HeightmapCompleted:
    result: "HeightmapResult"

    @property
    def message(self) -> str:
        return f"Heightmap ready ({self.result.width}x{self.result.height})"


ProgressEvent = Union[
    TileFetchStarted,
    TileFetched,
    TileFetchCompleted,
    ResizeStarted,
    ElevationRangeFound,
    HeightmapCompleted,
]

EventSink = Callable[[ProgressEvent], None]


def emit(sink: Optional[EventSink], event: ProgressEvent) -> None:
    if sink is not None:
        sink(event)
