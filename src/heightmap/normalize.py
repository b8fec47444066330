from __future__ import annotations

from typing import Final, Literal

import numpy as np
from PIL import Image

ResampleMethod = Literal["box", "bilinear", "bicubic", "lanczos"]

DEFAULT_FLAT_EPSILON_M: Final[float] = 1e-6

_PIL_RESAMPLING: Final[dict[str, Image.Resampling]] = {
    "box": Image.Resampling.BOX,
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}


def normalize_elevations(
    elevations: np.ndarray,
    elev_min: float,
    elev_max: float,
    *,
    epsilon: float = DEFAULT_FLAT_EPSILON_M,
) -> np.ndarray:
    """Linearly rescale elevations into uint8 0..255.

    Flat terrain (``elev_min == elev_max``) maps to a constant 0 instead of
    dividing by zero.
    """

    if epsilon <= 0:
        raise ValueError("epsilon must be > 0")
    span = max(float(elev_max) - float(elev_min), float(epsilon))
    scaled = (np.asarray(elevations, dtype=np.float64) - float(elev_min)) / span
    scaled = np.clip(scaled, 0.0, 1.0)
    return np.floor(scaled * 255.0 + 0.5).astype(np.uint8)


def resample_heightmap(
    gray: np.ndarray, output_px: int, *, method: ResampleMethod = "bilinear"
) -> np.ndarray:
    """Resize a uint8 grid to ``output_px x output_px``."""

    if output_px <= 0:
        raise ValueError("output_px must be > 0")
    if gray.ndim != 2:
        raise ValueError("gray must be a 2D array")
    try:
        resample = _PIL_RESAMPLING[method]
    except KeyError as exc:
        raise ValueError(f"Unknown resample method: {method!r}") from exc

    img = Image.fromarray(np.ascontiguousarray(gray, dtype=np.uint8))
    if img.size != (output_px, output_px):
        img = img.resize((output_px, output_px), resample=resample)
    return np.asarray(img, dtype=np.uint8).copy()
