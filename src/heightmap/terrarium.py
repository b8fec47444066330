from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Final, Protocol

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import TileFetchError
from .tile_grid import TileCoordinate

logger = logging.getLogger(__name__)

DEFAULT_TERRARIUM_URL_TEMPLATE: Final[str] = (
    "https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png"
)
TERRARIUM_OFFSET_M: Final[float] = 32768.0


class TileSource(Protocol):
    tile_size: int

    async def fetch(
        self, client: httpx.AsyncClient, tile: TileCoordinate
    ) -> np.ndarray: ...


def decode_terrarium(rgb: np.ndarray) -> np.ndarray:
    """Decode a (h, w, 3+) Terrarium RGB array into elevations in meters."""

    if rgb.ndim != 3 or rgb.shape[2] < 3:
        raise ValueError(f"Expected an RGB array, got shape {rgb.shape}")
    channels = rgb[..., :3].astype(np.float32)
    r = channels[..., 0]
    g = channels[..., 1]
    b = channels[..., 2]
    return (r * 256.0 + g + b / 256.0 - TERRARIUM_OFFSET_M).astype(np.float32)


def encode_terrarium(elevations: np.ndarray) -> np.ndarray:
    """Pack elevations in meters into a (h, w, 3) uint8 Terrarium array."""

    shifted = np.asarray(elevations, dtype=np.float64) + TERRARIUM_OFFSET_M
    shifted = np.clip(shifted, 0.0, 65535.0 + 255.0 / 256.0)
    r = np.floor(shifted / 256.0)
    g = np.floor(shifted - r * 256.0)
    b = np.floor((shifted - r * 256.0 - g) * 256.0)
    return np.stack([r, g, b], axis=-1).astype(np.uint8)


@dataclass(frozen=True)
class TerrariumTileSource:
    """Fetches Terrarium-encoded PNG tiles from a `{z}/{x}/{y}` endpoint."""

    url_template: str = DEFAULT_TERRARIUM_URL_TEMPLATE
    tile_size: int = 256
    timeout_s: float = 30.0

    def tile_url(self, tile: TileCoordinate) -> str:
        return self.url_template.format(z=tile.zoom, x=tile.x, y=tile.y)

    async def fetch(self, client: httpx.AsyncClient, tile: TileCoordinate) -> np.ndarray:
        url = self.tile_url(tile)
        try:
            resp = await client.get(url, timeout=httpx.Timeout(self.timeout_s))
        except httpx.RequestError as exc:
            raise TileFetchError(tile, reason=f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code >= 400:
            raise TileFetchError(tile, status=resp.status_code, reason=resp.reason_phrase)

        try:
            elev = self.decode(resp.content)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise TileFetchError(
                tile, status=resp.status_code, reason=f"decode failed: {exc}"
            ) from exc

        logger.debug(
            "terrarium_tile_decoded",
            extra={"tile": tile.key(), "bytes": len(resp.content)},
        )
        return elev

    def decode(self, payload: bytes) -> np.ndarray:
        with Image.open(io.BytesIO(payload)) as img:
            rgb = np.asarray(img.convert("RGB"))
        if rgb.shape[0] != self.tile_size or rgb.shape[1] != self.tile_size:
            raise ValueError(
                f"Expected {self.tile_size}x{self.tile_size} tile, "
                f"got {rgb.shape[1]}x{rgb.shape[0]}"
            )
        return decode_terrarium(rgb)
