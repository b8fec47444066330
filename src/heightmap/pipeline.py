from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import AsyncIterator, Final, Optional

import httpx
import numpy as np

from .config import HeightmapConfig, get_heightmap_config
from .cropper import crop_raster
from .errors import InvalidParametersError
from .events import (
    ElevationRangeFound,
    EventSink,
    HeightmapCompleted,
    ProgressEvent,
    ResizeStarted,
    emit,
)
from .normalize import normalize_elevations, resample_heightmap
from .stitcher import stitch_tiles
from .terrarium import TerrariumTileSource, TileSource
from .tile_grid import GeoBoundingBox, TileGrid

logger = logging.getLogger(__name__)

KM_PER_DEG_LAT: Final[float] = 111.32
MAX_ZOOM: Final[int] = 22


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class HeightmapRequest:
    center_lat: float
    center_lon: float
    area_km: float
    output_px: int
    zoom: int

    def __post_init__(self) -> None:
        for name in ("center_lat", "center_lon", "area_km"):
            value = float(getattr(self, name))
            if not math.isfinite(value):
                raise InvalidParametersError(f"{name} must be finite, got {value}")
        if not (-90.0 <= self.center_lat <= 90.0):
            raise InvalidParametersError(f"center_lat out of range: {self.center_lat}")
        if not (-180.0 <= self.center_lon <= 180.0):
            raise InvalidParametersError(f"center_lon out of range: {self.center_lon}")
        if self.area_km <= 0:
            raise InvalidParametersError(f"area_km must be > 0, got {self.area_km}")
        if not _is_int(self.output_px) or self.output_px < 1:
            raise InvalidParametersError(
                f"output_px must be a positive integer, got {self.output_px}"
            )
        if not _is_int(self.zoom) or not (0 <= self.zoom <= MAX_ZOOM):
            raise InvalidParametersError(
                f"zoom must be an integer in [0, {MAX_ZOOM}], got {self.zoom}"
            )


@dataclass(frozen=True)
class HeightmapResult:
    """Row-major, top-down uint8 heightmap plus the real elevation range in meters."""

    heightmap: np.ndarray
    width: int
    height: int
    elev_min: float
    elev_max: float


def bbox_from_center(center_lat: float, center_lon: float, area_km: float) -> GeoBoundingBox:
    """Square bbox of ``area_km`` per side using a flat-earth degrees-per-km scale."""

    km_per_deg_lon = KM_PER_DEG_LAT * math.cos(math.radians(center_lat))
    half_span_lat = area_km / 2.0 / KM_PER_DEG_LAT
    half_span_lon = area_km / 2.0 / km_per_deg_lon
    try:
        return GeoBoundingBox(
            west=center_lon - half_span_lon,
            east=center_lon + half_span_lon,
            south=center_lat - half_span_lat,
            north=center_lat + half_span_lat,
        )
    except InvalidParametersError as exc:
        raise InvalidParametersError(
            f"Area of {area_km} km around ({center_lat}, {center_lon}) leaves "
            f"the valid coordinate range: {exc}"
        ) from exc


def _source_for(config: HeightmapConfig) -> TerrariumTileSource:
    return TerrariumTileSource(
        url_template=config.tile_url_template,
        tile_size=config.tile_size,
        timeout_s=config.timeout_s,
    )


async def generate_heightmap(
    request: HeightmapRequest,
    *,
    config: Optional[HeightmapConfig] = None,
    source: Optional[TileSource] = None,
    client: Optional[httpx.AsyncClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    on_event: Optional[EventSink] = None,
    cancel_event: Optional[asyncio.Event] = None,
    deadline_s: Optional[float] = None,
) -> HeightmapResult:
    """Fetch, stitch, crop, normalize and resample one heightmap."""

    config = config or get_heightmap_config()
    source = source or _source_for(config)
    started = time.perf_counter()

    bbox = bbox_from_center(request.center_lat, request.center_lon, request.area_km)
    grid = TileGrid.covering(bbox, request.zoom)
    logger.info(
        "heightmap_run_started",
        extra={
            "center_lat": request.center_lat,
            "center_lon": request.center_lon,
            "area_km": request.area_km,
            "output_px": request.output_px,
            "zoom": request.zoom,
            "tile_count": grid.tile_count,
        },
    )

    if client is None:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": config.user_agent},
            transport=transport,
        ) as owned_client:
            raster = await stitch_tiles(
                source,
                grid,
                client=owned_client,
                max_concurrency=config.max_concurrency,
                on_event=on_event,
                cancel_event=cancel_event,
                deadline_s=deadline_s,
            )
    else:
        raster = await stitch_tiles(
            source,
            grid,
            client=client,
            max_concurrency=config.max_concurrency,
            on_event=on_event,
            cancel_event=cancel_event,
            deadline_s=deadline_s,
        )

    cropped = crop_raster(raster, grid, bbox)
    del raster

    gray = normalize_elevations(
        cropped.elevations,
        cropped.elev_min,
        cropped.elev_max,
        epsilon=config.flat_epsilon_m,
    )
    emit(on_event, ResizeStarted(width=request.output_px, height=request.output_px))
    heightmap = resample_heightmap(gray, request.output_px, method=config.resample)

    emit(on_event, ElevationRangeFound(elev_min=cropped.elev_min, elev_max=cropped.elev_max))
    logger.info(
        "heightmap_run_completed",
        extra={
            "width": request.output_px,
            "height": request.output_px,
            "elev_min": cropped.elev_min,
            "elev_max": cropped.elev_max,
            "elapsed_s": time.perf_counter() - started,
        },
    )
    return HeightmapResult(
        heightmap=heightmap,
        width=request.output_px,
        height=request.output_px,
        elev_min=cropped.elev_min,
        elev_max=cropped.elev_max,
    )


async def stream_heightmap(
    request: HeightmapRequest,
    *,
    config: Optional[HeightmapConfig] = None,
    source: Optional[TileSource] = None,
    client: Optional[httpx.AsyncClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    cancel_event: Optional[asyncio.Event] = None,
    deadline_s: Optional[float] = None,
) -> AsyncIterator[ProgressEvent]:
    """Yield progress events, ending with ``HeightmapCompleted``.

    Failures of the run are raised from the iterator; closing the iterator
    early cancels the run.
    """

    queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
    run = asyncio.create_task(
        generate_heightmap(
            request,
            config=config,
            source=source,
            client=client,
            transport=transport,
            on_event=queue.put_nowait,
            cancel_event=cancel_event,
            deadline_s=deadline_s,
        ),
        name="heightmap:run",
    )
    getter: Optional[asyncio.Future] = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, run}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield getter.result()
                continue
            getter.cancel()
            while not queue.empty():
                yield queue.get_nowait()
            yield HeightmapCompleted(result=run.result())
            return
    finally:
        if getter is not None:
            getter.cancel()
        if not run.done():
            run.cancel()
            await asyncio.gather(run, return_exceptions=True)


def generate_heightmap_sync(request: HeightmapRequest, **kwargs) -> HeightmapResult:
    return asyncio.run(generate_heightmap(request, **kwargs))
