from __future__ import annotations

import pytest

from heightmap.presets import DEFAULT_PRESET, PRESETS, get_preset


def test_presets_have_unique_slugs_and_valid_coordinates() -> None:
    slugs = [p.slug for p in PRESETS]
    assert len(slugs) == len(set(slugs))
    for preset in PRESETS:
        assert -90.0 <= preset.lat <= 90.0
        assert -180.0 <= preset.lon <= 180.0


def test_get_preset() -> None:
    assert get_preset(DEFAULT_PRESET).label == "Mont Blanc"
    assert get_preset(" Everest ").lat == pytest.approx(27.9881)
    with pytest.raises(KeyError, match="Unknown preset"):
        get_preset("olympus-mons")
