"""Province map raster engine (province lookup, borders, labels, compositing)."""

from .borders import BorderKind, BorderSet, ProvinceBorderCache, country_borders, province_borders
from .camera import Camera, CameraController
from .compositor import BlendMode, CompositorPipeline, Layer, RenderScheduler
from .config import MapConfig
from .errors import AssetError, AssetLoadError, DefinitionError, MutationError
from .labels import LabelAnchor, LabelLayoutEngine, LabelPlacementJob, LabelPlacer, PlacedLabel
from .maplog import MapLog
from .political import CountryDisplay, PoliticalMap, build_political
from .provinces import OCEAN_ID, Province, ProvinceIndex, load_definitions
from .raster import PixelRaster

__all__ = [
    "AssetError",
    "AssetLoadError",
    "BlendMode",
    "BorderKind",
    "BorderSet",
    "Camera",
    "CameraController",
    "CompositorPipeline",
    "CountryDisplay",
    "DefinitionError",
    "LabelAnchor",
    "LabelLayoutEngine",
    "LabelPlacementJob",
    "LabelPlacer",
    "Layer",
    "MapConfig",
    "MapLog",
    "MapSession",
    "MutationError",
    "OCEAN_ID",
    "PixelRaster",
    "PlacedLabel",
    "PoliticalMap",
    "Province",
    "ProvinceBorderCache",
    "ProvinceIndex",
    "RenderScheduler",
    "build_political",
    "country_borders",
    "load_definitions",
    "province_borders",
]


def __getattr__(name: str):
    if name == "MapSession":
        from .session import MapSession

        return MapSession
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
