from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .normalize import DEFAULT_FLAT_EPSILON_M, ResampleMethod
from .terrarium import DEFAULT_TERRARIUM_URL_TEMPLATE

DEFAULT_HEIGHTMAP_CONFIG_NAME: Final[str] = "heightmap.yaml"
DEFAULT_HEIGHTMAP_CONFIG_ENV: Final[str] = "HEIGHTMAP_CONFIG"
_ENV_PREFIX: Final[str] = "HEIGHTMAP_"


class HeightmapConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tile_url_template: str = DEFAULT_TERRARIUM_URL_TEMPLATE
    tile_size: int = Field(default=256, gt=0)

    # Concurrent tile requests per run.
    max_concurrency: int = Field(default=8, ge=1, le=64)
    timeout_s: float = Field(default=30.0, gt=0)

    resample: ResampleMethod = "bilinear"
    flat_epsilon_m: float = Field(default=DEFAULT_FLAT_EPSILON_M, gt=0)
    user_agent: str = "terrain-heightmap/0.1"

    @field_validator("tile_url_template")
    @classmethod
    def _require_placeholders(cls, value: str) -> str:
        normalized = (value or "").strip()
        missing = [key for key in ("{z}", "{x}", "{y}") if key not in normalized]
        if missing:
            raise ValueError(
                f"tile_url_template must contain {', '.join(missing)}: {value!r}"
            )
        return normalized


class HeightmapConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    heightmap: HeightmapConfig = Field(default_factory=HeightmapConfig)


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Optional[Path]:
    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    explicit = os.environ.get(DEFAULT_HEIGHTMAP_CONFIG_ENV)
    if explicit:
        candidate = Path(explicit).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    cwd = Path.cwd()
    for candidate_root in (cwd, *cwd.parents):
        candidate = candidate_root / "config" / DEFAULT_HEIGHTMAP_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to load heightmap YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"heightmap config must be a mapping: {source}")
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    fields = set(HeightmapConfig.model_fields)
    result: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(_ENV_PREFIX) or key == DEFAULT_HEIGHTMAP_CONFIG_ENV:
            continue
        field_name = key[len(_ENV_PREFIX) :].lower()
        if field_name in fields:
            result[field_name] = value
    return result


def load_heightmap_config(
    path: Optional[Union[str, Path]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> HeightmapConfig:
    environ = os.environ if environ is None else environ
    config_path = _resolve_config_path(path)

    data: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.is_file():
            raise FileNotFoundError(f"heightmap config file not found: {config_path}")
        raw = config_path.read_text(encoding="utf-8")
        data = dict(_parse_yaml(raw, source=config_path))

    section = data.get("heightmap")
    if section is not None and not isinstance(section, Mapping):
        raise ValueError(f"heightmap section must be a mapping: {config_path}")
    merged = dict(section or {})
    merged.update(_env_overrides(environ))
    data["heightmap"] = merged

    try:
        parsed = HeightmapConfigFile.model_validate(data)
    except ValidationError as exc:
        source = config_path or "defaults"
        raise ValueError(f"Invalid heightmap config ({source}): {exc}") from exc

    return parsed.heightmap


@lru_cache(maxsize=8)
def _get_heightmap_config_cached(
    config_path: Optional[str],
    mtime_ns: int,
    size: int,
    env_items: tuple[tuple[str, str], ...],
) -> HeightmapConfig:
    _ = (mtime_ns, size)
    return load_heightmap_config(config_path, environ=dict(env_items))


def _env_cache_key(environ: Mapping[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(
        sorted(
            (key, value)
            for key, value in environ.items()
            if key.startswith(_ENV_PREFIX) and key != DEFAULT_HEIGHTMAP_CONFIG_ENV
        )
    )


def get_heightmap_config(path: Optional[Union[str, Path]] = None) -> HeightmapConfig:
    resolved = _resolve_config_path(path)
    env_items = _env_cache_key(os.environ)
    if resolved is None:
        return _get_heightmap_config_cached(None, 0, 0, env_items)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"heightmap config file not found: {resolved}") from exc

    return _get_heightmap_config_cached(
        str(resolved), stat.st_mtime_ns, stat.st_size, env_items
    )


get_heightmap_config.cache_clear = _get_heightmap_config_cached.cache_clear  # type: ignore[attr-defined]
