from __future__ import annotations

import base64
import io
from pathlib import Path
from typing import Final, Iterable

import numpy as np
from PIL import Image

from .pipeline import HeightmapResult

SUPPORTED_EXPORT_FORMATS: Final[tuple[str, ...]] = ("png", "dat")


def _pixels(result: HeightmapResult) -> np.ndarray:
    grid = np.asarray(result.heightmap, dtype=np.uint8)
    if grid.shape != (result.height, result.width):
        raise ValueError(
            f"heightmap shape {grid.shape} does not match {result.height}x{result.width}"
        )
    return grid


def heightmap_to_image(result: HeightmapResult) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(_pixels(result)))


def heightmap_to_png_bytes(result: HeightmapResult) -> bytes:
    buf = io.BytesIO()
    heightmap_to_image(result).save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def heightmap_to_data_url(result: HeightmapResult) -> str:
    encoded = base64.b64encode(heightmap_to_png_bytes(result)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def heightmap_to_dat(result: HeightmapResult) -> str:
    """Render the whitespace-delimited grid read by CAD ``surface()`` importers.

    Row 0 of the file is the bottom of the model, so rows are written
    south -> north (reverse of the top-down heightmap).
    """

    grid = _pixels(result)
    lines = [" ".join(str(int(v)) for v in row) for row in grid[::-1]]
    return "\n".join(lines) + "\n"


def normalize_formats(formats: Iterable[str]) -> tuple[str, ...]:
    normalized: list[str] = []
    for fmt in formats:
        f = (fmt or "").strip().lower()
        if f == "":
            continue
        if f not in SUPPORTED_EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt!r}")
        if f not in normalized:
            normalized.append(f)
    if not normalized:
        raise ValueError("At least one export format must be specified")
    return tuple(normalized)


def write_heightmap(result: HeightmapResult, path: Path) -> Path:
    suffix = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".png":
        path.write_bytes(heightmap_to_png_bytes(result))
        return path
    if suffix == ".dat":
        path.write_text(heightmap_to_dat(result), encoding="ascii")
        return path
    raise ValueError(f"Unsupported heightmap file extension: {path.suffix}")
