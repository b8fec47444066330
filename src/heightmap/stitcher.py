from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
import numpy as np

from .errors import HeightmapCancelledError, TileFetchError
from .events import EventSink, TileFetchCompleted, TileFetched, TileFetchStarted, emit
from .terrarium import TileSource
from .tile_grid import TileCoordinate, TileGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RasterBuffer:
    """Pre-allocated float32 elevation raster aligned to tile boundaries.

    ``data`` has shape (height, width), rows north -> south. Each tile of the
    grid owns exactly one ``tile_size`` square region, handed out through
    ``tile_region``; regions never overlap, so concurrent writers need no lock.
    """

    data: np.ndarray
    tile_size: int

    @classmethod
    def allocate(cls, grid: TileGrid, tile_size: int) -> "RasterBuffer":
        if tile_size <= 0:
            raise ValueError("tile_size must be > 0")
        data = np.zeros(
            (grid.tiles_high * tile_size, grid.tiles_wide * tile_size),
            dtype=np.float32,
        )
        return cls(data=data, tile_size=tile_size)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    def tile_region(self, col: int, row: int) -> np.ndarray:
        size = self.tile_size
        top = row * size
        left = col * size
        if not (0 <= top < self.height and 0 <= left < self.width):
            raise IndexError(f"Tile region ({col}, {row}) outside raster")
        return self.data[top : top + size, left : left + size]


async def stitch_tiles(
    source: TileSource,
    grid: TileGrid,
    *,
    client: httpx.AsyncClient,
    max_concurrency: int = 8,
    on_event: Optional[EventSink] = None,
    cancel_event: Optional[asyncio.Event] = None,
    deadline_s: Optional[float] = None,
) -> RasterBuffer:
    """Fetch every tile of ``grid`` concurrently and assemble one raster.

    The first failing tile cancels the outstanding fetches and its error is
    re-raised; no partial raster is ever returned.
    """

    if max_concurrency <= 0:
        raise ValueError("max_concurrency must be > 0")
    if deadline_s is not None and deadline_s <= 0:
        raise ValueError("deadline_s must be > 0")

    tiles = list(grid.tiles())
    total = len(tiles)
    emit(on_event, TileFetchStarted(tile_count=total, zoom=grid.zoom))
    logger.info(
        "heightmap_tiles_fetch_started",
        extra={
            "zoom": grid.zoom,
            "tile_count": total,
            "tiles_wide": grid.tiles_wide,
            "tiles_high": grid.tiles_high,
            "max_concurrency": max_concurrency,
        },
    )

    raster = RasterBuffer.allocate(grid, source.tile_size)
    semaphore = asyncio.Semaphore(max_concurrency)
    completed = 0

    async def fetch_one(tile: TileCoordinate) -> None:
        nonlocal completed
        async with semaphore:
            elev = await source.fetch(client, tile)
        col, row = grid.offset_of(tile)
        region = raster.tile_region(col, row)
        if elev.shape != region.shape:
            raise TileFetchError(
                tile, reason=f"unexpected tile shape {elev.shape}, wanted {region.shape}"
            )
        region[...] = elev
        completed += 1
        emit(on_event, TileFetched(tile_key=tile.key(), completed=completed, total=total))

    loop = asyncio.get_running_loop()
    deadline = None if deadline_s is None else loop.time() + deadline_s
    t0 = time.perf_counter()

    tasks = [asyncio.create_task(fetch_one(tile), name=f"tile:{tile.key()}") for tile in tiles]
    watchers: set[asyncio.Task] = set()
    cancel_waiter: Optional[asyncio.Task] = None
    if cancel_event is not None:
        cancel_waiter = asyncio.create_task(cancel_event.wait(), name="tile:cancel")
        watchers.add(cancel_waiter)

    pending: set[asyncio.Task] = set(tasks)
    try:
        while pending:
            timeout = None if deadline is None else max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait(
                pending | watchers,
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                raise HeightmapCancelledError(
                    f"Tile fetch exceeded deadline of {deadline_s:.1f} s "
                    f"({completed}/{total} tiles done)"
                )
            if cancel_waiter is not None and cancel_waiter in done:
                raise HeightmapCancelledError(
                    f"Tile fetch cancelled ({completed}/{total} tiles done)"
                )
            for task in done:
                pending.discard(task)
                exc = task.exception()
                if exc is not None:
                    logger.warning(
                        "heightmap_tile_fetch_failed",
                        extra={
                            "task": task.get_name(),
                            "status": getattr(exc, "status", None),
                            "error": str(exc),
                        },
                    )
                    raise exc
    finally:
        leftovers = [task for task in (*tasks, *watchers) if not task.done()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
        # Mark sibling failures as retrieved; only the first one propagates.
        for task in tasks:
            if task.done() and not task.cancelled():
                task.exception()

    elapsed_s = time.perf_counter() - t0
    emit(on_event, TileFetchCompleted(tile_count=total, elapsed_s=elapsed_s))
    logger.info(
        "heightmap_tiles_fetch_completed",
        extra={"zoom": grid.zoom, "tile_count": total, "elapsed_s": elapsed_s},
    )
    return raster
