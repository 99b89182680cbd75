from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .camera import DEFAULT_INITIAL_ZOOM, DEFAULT_MAX_ZOOM, DEFAULT_MIN_ZOOM
from .compositor import DEFAULT_OPACITY, LAYER_ORDER
from .labels import DEFAULT_BATCH_SIZE
from .political import DEFAULT_POLITICAL_ALPHA

DEFAULT_DRAG_THRESHOLD = 5.0
ASSET_FIELDS = ("provinces", "terrain", "rivers", "water")
TABLE_FIELDS = ("definitions", "countries", "ownership")


@dataclass
class CameraConfig:
    initial_zoom: float = DEFAULT_INITIAL_ZOOM
    min_zoom: float = DEFAULT_MIN_ZOOM
    max_zoom: float = DEFAULT_MAX_ZOOM


@dataclass
class MapConfig:
    """Map sizes, asset/table paths and rendering knobs.

    Only ``provinces`` and ``definitions`` are required; the other layers are
    skipped when their path is unset.
    """

    map_width: int
    map_height: int
    provinces: Path
    definitions: Path
    viewport_width: int = 1280
    viewport_height: int = 720
    terrain: Optional[Path] = None
    rivers: Optional[Path] = None
    water: Optional[Path] = None
    countries: Optional[Path] = None
    ownership: Optional[Path] = None
    camera: CameraConfig = field(default_factory=CameraConfig)
    layers: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_OPACITY))
    political_alpha: int = DEFAULT_POLITICAL_ALPHA
    border_thickness: int = 1
    label_batch_size: int = DEFAULT_BATCH_SIZE
    drag_threshold: float = DEFAULT_DRAG_THRESHOLD
    font_path: Optional[str] = None

    @classmethod
    def load(cls, path: Path | str) -> MapConfig:
        path = Path(path)
        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        return cls.from_dict(raw, base_dir=path.parent)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, base_dir: Path | str = ".") -> MapConfig:
        if not isinstance(raw, Mapping):
            raise ValueError("Map config must be a JSON object")
        base_dir = Path(base_dir)

        def _path(name: str, required: bool = False) -> Optional[Path]:
            value = raw.get(name)
            if value is None:
                if required:
                    raise ValueError(f"Map config is missing {name!r}")
                return None
            if not isinstance(value, str) or not value:
                raise ValueError(f"Map config field {name!r} must be a path string")
            p = Path(value)
            return p if p.is_absolute() else base_dir / p

        cam_raw = raw.get("camera", {})
        if not isinstance(cam_raw, Mapping):
            raise ValueError("Map config field 'camera' must be an object")
        camera = CameraConfig(
            initial_zoom=_number(cam_raw, "initial_zoom", DEFAULT_INITIAL_ZOOM, prefix="camera."),
            min_zoom=_number(cam_raw, "min_zoom", DEFAULT_MIN_ZOOM, prefix="camera."),
            max_zoom=_number(cam_raw, "max_zoom", DEFAULT_MAX_ZOOM, prefix="camera."),
        )
        if camera.min_zoom <= 0 or camera.max_zoom < camera.min_zoom:
            raise ValueError(f"Map config field 'camera' has invalid zoom limits {camera}")

        layers_raw = raw.get("layers", {})
        if not isinstance(layers_raw, Mapping):
            raise ValueError("Map config field 'layers' must be an object")
        layers = dict(DEFAULT_OPACITY)
        for name, value in layers_raw.items():
            if name not in LAYER_ORDER:
                raise ValueError(f"Map config field 'layers' names unknown layer {name!r}")
            opacity = _number(layers_raw, name, 1.0, prefix="layers.")
            if not 0.0 <= opacity <= 1.0:
                raise ValueError(f"Map config field 'layers.{name}' must be within [0, 1]")
            layers[name] = opacity

        font_path = raw.get("font_path")
        if font_path is not None and not isinstance(font_path, str):
            raise ValueError("Map config field 'font_path' must be a string")

        cfg = cls(
            map_width=_integer(raw, "map_width", None, minimum=1),
            map_height=_integer(raw, "map_height", None, minimum=1),
            provinces=_path("provinces", required=True),  # type: ignore[arg-type]
            definitions=_path("definitions", required=True),  # type: ignore[arg-type]
            viewport_width=_integer(raw, "viewport_width", 1280, minimum=1),
            viewport_height=_integer(raw, "viewport_height", 720, minimum=1),
            terrain=_path("terrain"),
            rivers=_path("rivers"),
            water=_path("water"),
            countries=_path("countries"),
            ownership=_path("ownership"),
            camera=camera,
            layers=layers,
            political_alpha=_integer(raw, "political_alpha", DEFAULT_POLITICAL_ALPHA, minimum=1),
            border_thickness=_integer(raw, "border_thickness", 1, minimum=1),
            label_batch_size=_integer(raw, "label_batch_size", DEFAULT_BATCH_SIZE, minimum=1),
            drag_threshold=_number(raw, "drag_threshold", DEFAULT_DRAG_THRESHOLD),
            font_path=font_path,
        )
        if cfg.political_alpha > 255:
            raise ValueError("Map config field 'political_alpha' must be within [1, 255]")
        return cfg

    def asset_paths(self) -> Dict[str, Path]:
        """Raster assets that are configured, keyed by layer/asset name."""
        return {name: getattr(self, name) for name in ASSET_FIELDS if getattr(self, name) is not None}


def _integer(raw: Mapping[str, Any], name: str, default: Optional[int], *, minimum: int | None = None) -> int:
    value = raw.get(name, default)
    if value is None:
        raise ValueError(f"Map config is missing {name!r}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Map config field {name!r} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ValueError(f"Map config field {name!r} must be >= {minimum}, got {value}")
    return value


def _number(raw: Mapping[str, Any], name: str, default: float, *, prefix: str = "") -> float:
    value = raw.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Map config field '{prefix}{name}' must be a number, got {value!r}")
    return float(value)
