from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from .config import get_heightmap_config
from .errors import HeightmapError
from .events import ProgressEvent
from .export import normalize_formats, write_heightmap
from .observability import configure_logging, run_context
from .pipeline import HeightmapRequest, generate_heightmap_sync
from .presets import DEFAULT_PRESET, PRESETS, get_preset


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="heightmap",
        description="Terrarium elevation tiles -> normalized grayscale heightmap (PNG / .dat).",
    )
    parser.add_argument(
        "--preset",
        choices=[p.slug for p in PRESETS],
        default=None,
        help=f"Named location (default when --lat/--lon are omitted: {DEFAULT_PRESET})",
    )
    parser.add_argument("--lat", type=float, default=None, help="Center latitude in degrees")
    parser.add_argument("--lon", type=float, default=None, help="Center longitude in degrees")
    parser.add_argument(
        "--area-km", type=float, default=20.0, help="Side length of the square area (default: 20)"
    )
    parser.add_argument(
        "--output-px", type=int, default=200, help="Output resolution per edge (default: 200)"
    )
    parser.add_argument("--zoom", type=int, default=12, help="Tile zoom level (default: 12)")
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to heightmap.yaml (defaults to HEIGHTMAP_CONFIG / config/heightmap.yaml).",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        required=True,
        help="Output directory for heightmap.png / heightmap.dat",
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        default=None,
        help="Output format, repeatable: png, dat (default: png and dat)",
    )
    parser.add_argument(
        "--deadline-s",
        type=float,
        default=None,
        help="Abort tile downloads after N seconds",
    )
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Emit JSON log lines on stderr (default: false)",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    return parser


def _resolve_center(args: argparse.Namespace) -> tuple[float, float]:
    if args.lat is not None or args.lon is not None:
        if args.lat is None or args.lon is None:
            raise SystemExit("--lat and --lon must be given together")
        if args.preset is not None:
            raise SystemExit("--preset cannot be combined with --lat/--lon")
        return float(args.lat), float(args.lon)
    preset = get_preset(args.preset or DEFAULT_PRESET)
    return preset.lat, preset.lon


def _print_progress(event: ProgressEvent) -> None:
    print(event.message, file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(json_logs=bool(args.json_logs), log_level=args.log_level)

    try:
        formats = normalize_formats(args.formats or ["png", "dat"])
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    center_lat, center_lon = _resolve_center(args)
    config = get_heightmap_config(args.config_path)

    with run_context() as run_id:
        try:
            request = HeightmapRequest(
                center_lat=center_lat,
                center_lon=center_lon,
                area_km=float(args.area_km),
                output_px=int(args.output_px),
                zoom=int(args.zoom),
            )
            result = generate_heightmap_sync(
                request,
                config=config,
                on_event=_print_progress,
                deadline_s=args.deadline_s,
            )
        except HeightmapError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1

    written = [
        str(write_heightmap(result, args.out_dir / f"heightmap.{fmt}")) for fmt in formats
    ]
    print(
        json.dumps(
            {
                "run_id": run_id,
                "center": [center_lat, center_lon],
                "area_km": float(args.area_km),
                "zoom": int(args.zoom),
                "width": result.width,
                "height": result.height,
                "elev_min": result.elev_min,
                "elev_max": result.elev_max,
                "files": written,
            },
            ensure_ascii=False,
            indent=2,
            sort_keys=True,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
