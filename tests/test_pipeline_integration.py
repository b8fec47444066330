from __future__ import annotations

import asyncio
import math

import numpy as np
import pytest

from heightmap.config import HeightmapConfig
from heightmap.errors import InvalidParametersError, TileFetchError
from heightmap.events import (
    ElevationRangeFound,
    HeightmapCompleted,
    ResizeStarted,
    TileFetchCompleted,
    TileFetched,
    TileFetchStarted,
)
from heightmap.pipeline import (
    HeightmapRequest,
    HeightmapResult,
    bbox_from_center,
    generate_heightmap,
    generate_heightmap_sync,
    stream_heightmap,
)
from tile_fakes import (
    TEST_URL_TEMPLATE,
    FakeTerrariumServer,
    FakeTileSource,
    constant_tile,
    gaussian_peak,
)

MONT_BLANC = (45.8326, 6.8652)


def _config(**overrides) -> HeightmapConfig:
    return HeightmapConfig(tile_url_template=TEST_URL_TEMPLATE, **overrides)


def _global_pixel(lat: float, lon: float, zoom: int) -> tuple[float, float]:
    n = 2**zoom * 256
    lat_rad = math.radians(lat)
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def test_bbox_from_center_uses_flat_earth_scale() -> None:
    bbox = bbox_from_center(45.0, 7.0, 22.264)

    assert bbox.north - bbox.south == pytest.approx(22.264 / 111.32)
    assert bbox.east - bbox.west == pytest.approx(22.264 / (111.32 * math.cos(math.radians(45.0))))
    assert (bbox.north + bbox.south) / 2 == pytest.approx(45.0)
    assert (bbox.east + bbox.west) / 2 == pytest.approx(7.0)


def test_bbox_from_center_rejects_areas_past_the_pole() -> None:
    with pytest.raises(InvalidParametersError, match="valid coordinate range"):
        bbox_from_center(89.99, 0.0, 50.0)


@pytest.mark.parametrize(
    "kwargs,match",
    [
        ({"center_lat": 91.0}, "center_lat"),
        ({"center_lon": float("nan")}, "finite"),
        ({"area_km": 0.0}, "area_km"),
        ({"output_px": 0}, "output_px"),
        ({"zoom": 23}, "zoom"),
        ({"zoom": 12.0}, "zoom must be an integer"),
        ({"output_px": 32.0}, "output_px must be a positive integer"),
        ({"output_px": True}, "output_px must be a positive integer"),
    ],
)
def test_request_validation(kwargs: dict, match: str) -> None:
    params = {"center_lat": 45.0, "center_lon": 7.0, "area_km": 10.0, "output_px": 100, "zoom": 10}
    params.update(kwargs)
    with pytest.raises(InvalidParametersError, match=match):
        HeightmapRequest(**params)


@pytest.mark.integration
def test_mont_blanc_high_relief_heightmap() -> None:
    zoom = 12
    server = FakeTerrariumServer(
        elevation_fn=gaussian_peak(
            zoom=zoom,
            center_px=_global_pixel(*MONT_BLANC, zoom),
            base_m=1000.0,
            peak_m=4808.0,
            sigma_px=200.0,
        )
    )
    request = HeightmapRequest(
        center_lat=MONT_BLANC[0], center_lon=MONT_BLANC[1], area_km=20.0, output_px=200, zoom=zoom
    )
    events: list = []

    result = generate_heightmap_sync(
        request, config=_config(), transport=server.transport(), on_event=events.append
    )

    assert isinstance(result, HeightmapResult)
    assert result.heightmap.shape == (200, 200)
    assert (result.width, result.height) == (200, 200)
    assert result.heightmap.dtype == np.uint8
    assert result.elev_min < result.elev_max
    assert result.elev_max > 4000.0
    assert result.elev_min < 2000.0
    # Peak sits at the center of the heightmap, lowlands at the corners.
    assert int(result.heightmap[100, 100]) >= 250
    assert int(result.heightmap[0, 0]) <= 10
    assert len(server.requested) == len(set(server.requested)) >= 9

    ordered = [e for e in events if not isinstance(e, TileFetched)]
    assert [type(e) for e in ordered] == [
        TileFetchStarted,
        TileFetchCompleted,
        ResizeStarted,
        ElevationRangeFound,
    ]
    assert ordered[0].tile_count == len(server.requested)
    assert ordered[2] == ResizeStarted(width=200, height=200)
    assert ordered[3].elev_min == result.elev_min
    assert ordered[3].elev_max == result.elev_max
    assert ordered[3].message.startswith("Elevation: ")


@pytest.mark.integration
def test_flat_terrain_yields_uniform_heightmap() -> None:
    server = FakeTerrariumServer(elevation_fn=constant_tile(1500.0))
    request = HeightmapRequest(center_lat=52.0, center_lon=5.0, area_km=8.0, output_px=64, zoom=11)

    result = generate_heightmap_sync(request, config=_config(), transport=server.transport())

    assert result.elev_min == result.elev_max == pytest.approx(1500.0)
    assert np.unique(result.heightmap).size == 1
    assert result.heightmap.shape == (64, 64)


@pytest.mark.integration
def test_single_tile_grid_fetches_once() -> None:
    server = FakeTerrariumServer(elevation_fn=constant_tile(10.0))
    request = HeightmapRequest(center_lat=45.86, center_lon=6.885, area_km=2.0, output_px=50, zoom=12)

    result = generate_heightmap_sync(request, config=_config(), transport=server.transport())

    assert server.requested == [(12, 2126, 1459)]
    assert result.heightmap.shape == (50, 50)


@pytest.mark.integration
def test_failed_tile_aborts_the_run() -> None:
    # Center on the corner shared by tiles 2126..2127 x 1459..1460 at zoom 12.
    server = FakeTerrariumServer(
        elevation_fn=constant_tile(10.0), failures={(12, 2127, 1460): 404}
    )
    request = HeightmapRequest(center_lat=45.829, center_lon=6.9434, area_km=2.0, output_px=50, zoom=12)
    events: list = []

    with pytest.raises(TileFetchError, match=r"Tile 12/2127/1460 -> 404") as excinfo:
        generate_heightmap_sync(
            request, config=_config(), transport=server.transport(), on_event=events.append
        )

    assert excinfo.value.status == 404
    assert events[0] == TileFetchStarted(tile_count=4, zoom=12)
    assert not any(isinstance(e, (TileFetchCompleted, ResizeStarted)) for e in events)


@pytest.mark.integration
def test_stream_yields_events_then_result() -> None:
    server = FakeTerrariumServer(elevation_fn=constant_tile(10.0))
    request = HeightmapRequest(center_lat=45.86, center_lon=6.885, area_km=2.0, output_px=32, zoom=12)

    async def collect() -> list:
        return [
            event
            async for event in stream_heightmap(
                request, config=_config(), transport=server.transport()
            )
        ]

    events = asyncio.run(collect())

    assert isinstance(events[0], TileFetchStarted)
    assert isinstance(events[-1], HeightmapCompleted)
    assert isinstance(events[-2], ElevationRangeFound)
    assert events[-1].result.heightmap.shape == (32, 32)


@pytest.mark.integration
def test_stream_raises_run_failures() -> None:
    server = FakeTerrariumServer(elevation_fn=constant_tile(10.0), failures={(12, 2126, 1459): 500})
    request = HeightmapRequest(center_lat=45.86, center_lon=6.885, area_km=2.0, output_px=32, zoom=12)

    async def collect() -> list:
        seen = []
        async for event in stream_heightmap(request, config=_config(), transport=server.transport()):
            seen.append(event)
        return seen

    with pytest.raises(TileFetchError, match="500"):
        asyncio.run(collect())


def test_cancelling_stream_consumer_leaves_no_pending_tasks() -> None:
    request = HeightmapRequest(center_lat=45.86, center_lon=6.885, area_km=2.0, output_px=32, zoom=12)
    source = FakeTileSource(elevation_fn=constant_tile(10.0))

    async def scenario() -> list[asyncio.Task]:
        source.block = asyncio.Event()
        first_event = asyncio.Event()

        async def consume() -> None:
            async for _ in stream_heightmap(request, config=_config(), source=source):
                first_event.set()

        consumer = asyncio.create_task(consume())
        await first_event.wait()
        await asyncio.sleep(0)
        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer
        for _ in range(3):
            await asyncio.sleep(0)
        return [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]

    leftovers = asyncio.run(scenario())

    assert leftovers == []
    assert source.cancelled == [(2126, 1459)]
    assert source.fetched == []


@pytest.mark.integration
def test_concurrent_runs_do_not_share_state() -> None:
    low = FakeTerrariumServer(elevation_fn=constant_tile(100.0))
    high = FakeTerrariumServer(elevation_fn=constant_tile(3000.0))
    request = HeightmapRequest(center_lat=45.86, center_lon=6.885, area_km=2.0, output_px=16, zoom=12)

    async def both() -> tuple[HeightmapResult, HeightmapResult]:
        return await asyncio.gather(
            generate_heightmap(request, config=_config(), transport=low.transport()),
            generate_heightmap(request, config=_config(), transport=high.transport()),
        )

    first, second = asyncio.run(both())

    assert first.elev_max == pytest.approx(100.0)
    assert second.elev_max == pytest.approx(3000.0)
