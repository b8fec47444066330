from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class LocationPreset:
    slug: str
    label: str
    lat: float
    lon: float


PRESETS: Final[tuple[LocationPreset, ...]] = (
    LocationPreset(slug="mont-blanc", label="Mont Blanc", lat=45.8326, lon=6.8652),
    LocationPreset(slug="everest", label="Mt. Everest", lat=27.9881, lon=86.925),
    LocationPreset(slug="k2", label="K2", lat=35.88, lon=76.5151),
    LocationPreset(slug="fuji", label="Mt. Fuji", lat=35.3606, lon=138.7274),
    LocationPreset(slug="matterhorn", label="Matterhorn", lat=45.9766, lon=7.6585),
    LocationPreset(slug="grand-canyon", label="Grand Canyon", lat=36.1069, lon=-112.1129),
)

DEFAULT_PRESET: Final[str] = "mont-blanc"


def get_preset(slug: str) -> LocationPreset:
    key = (slug or "").strip().lower()
    for preset in PRESETS:
        if preset.slug == key:
            return preset
    known = ", ".join(p.slug for p in PRESETS)
    raise KeyError(f"Unknown preset {slug!r}; expected one of: {known}")
