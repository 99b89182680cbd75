#!/usr/bin/env python3
"""Render a political map view from a map config to a PNG file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from provmap.compositor import render_frame_png
from provmap.config import MapConfig
from provmap.errors import AssetError, AssetLoadError
from provmap.maplog import MapLog
from provmap.session import MapSession


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render the political map to PNG")
    parser.add_argument("config", help="Path to the map config JSON")
    parser.add_argument("--out", default="map.png", help="Output PNG path")
    parser.add_argument("--full", action="store_true", help="Render the whole map at zoom 1")
    parser.add_argument("--zoom", type=float, default=None, help="Zoom level (default: config initial zoom)")
    parser.add_argument(
        "--center",
        type=float,
        nargs=2,
        metavar=("X", "Y"),
        default=None,
        help="Map point to center the view on",
    )
    parser.add_argument("--select", default=None, help="Province id to highlight")
    parser.add_argument("--no-log", action="store_true", help="Do not write a run log under logs/")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = MapConfig.load(args.config)
    run_log = None if args.no_log else MapLog(run_label="render_map")
    log_fn = run_log.log if run_log is not None else None
    try:
        try:
            session = MapSession.load(config, log_fn=log_fn)
        except AssetLoadError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        except AssetError as exc:
            print(str(exc), file=sys.stderr)
            return 2

        session.finish_labels()
        if args.select:
            session.select(args.select)

        if args.full:
            session.render()
            frame = session.compositor.render_map()
        else:
            if args.zoom is not None:
                cam = session.camera.camera
                factor = args.zoom / cam.zoom
                session.zoom_at(session.viewport_width / 2, session.viewport_height / 2, factor)
            if args.center is not None:
                sx, sy = session.camera.map_to_screen(*args.center)
                session.pan(session.viewport_width / 2 - sx, session.viewport_height / 2 - sy)
            frame = session.render()

        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(render_frame_png(frame))
        print(f"Wrote {out} ({frame.width}x{frame.height})")
        if log_fn is not None:
            log_fn(f"Wrote {out} ({frame.width}x{frame.height})")
        return 0
    finally:
        if run_log is not None:
            run_log.close()


if __name__ == "__main__":
    raise SystemExit(main())
