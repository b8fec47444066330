from __future__ import annotations

import base64
import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from heightmap.export import (
    heightmap_to_data_url,
    heightmap_to_dat,
    heightmap_to_png_bytes,
    normalize_formats,
    write_heightmap,
)
from heightmap.pipeline import HeightmapResult


def _result() -> HeightmapResult:
    grid = np.array([[0, 10, 20], [30, 40, 50]], dtype=np.uint8)
    return HeightmapResult(heightmap=grid, width=3, height=2, elev_min=100.0, elev_max=900.0)


def test_dat_rows_are_bottom_up() -> None:
    assert heightmap_to_dat(_result()) == "30 40 50\n0 10 20\n"


def test_png_bytes_roundtrip_to_grayscale() -> None:
    payload = heightmap_to_png_bytes(_result())

    with Image.open(io.BytesIO(payload)) as img:
        assert img.mode == "L"
        assert img.size == (3, 2)
        assert np.asarray(img).tolist() == [[0, 10, 20], [30, 40, 50]]


def test_data_url_wraps_png() -> None:
    url = heightmap_to_data_url(_result())

    assert url.startswith("data:image/png;base64,")
    raw = base64.b64decode(url.split(",", 1)[1])
    assert raw == heightmap_to_png_bytes(_result())


def test_shape_mismatch_is_rejected() -> None:
    bad = HeightmapResult(
        heightmap=np.zeros((2, 2), dtype=np.uint8), width=3, height=2, elev_min=0.0, elev_max=1.0
    )
    with pytest.raises(ValueError, match="does not match"):
        heightmap_to_dat(bad)


def test_write_heightmap_by_suffix(tmp_path: Path) -> None:
    png = write_heightmap(_result(), tmp_path / "out" / "heightmap.png")
    dat = write_heightmap(_result(), tmp_path / "out" / "heightmap.dat")

    assert png.read_bytes().startswith(b"\x89PNG")
    assert dat.read_text(encoding="ascii").splitlines() == ["30 40 50", "0 10 20"]
    with pytest.raises(ValueError, match="Unsupported heightmap file extension"):
        write_heightmap(_result(), tmp_path / "heightmap.stl")


def test_normalize_formats() -> None:
    assert normalize_formats(["PNG", " dat ", "png", ""]) == ("png", "dat")
    with pytest.raises(ValueError, match="Unsupported export format"):
        normalize_formats(["tiff"])
    with pytest.raises(ValueError, match="At least one export format"):
        normalize_formats([""])
