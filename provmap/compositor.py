from __future__ import annotations

import enum
import io
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping

import numpy as np

from .camera import Camera
from .provinces import ProvinceIndex
from .raster import PixelRaster


LAYER_ORDER = ("terrain", "political", "water", "rivers", "borders", "overlay")
DEFAULT_OPACITY = {
    "terrain": 0.6,
    "political": 0.85,
    "water": 1.0,
    "rivers": 0.8,
    "borders": 1.0,
    "overlay": 1.0,
}
RIVER_COLOR = (0x28, 0x3A, 0x4A)


class BlendMode(enum.Enum):
    NORMAL = "normal"
    MULTIPLY = "multiply"


@dataclass
class Layer:
    name: str
    raster: PixelRaster | None = None
    blend: BlendMode = BlendMode.NORMAL
    opacity: float = 1.0
    visible: bool = True

    @property
    def drawable(self) -> bool:
        return self.visible and self.raster is not None and self.opacity > 0


# ----------------------------
# Layer preparation
# ----------------------------
def prepare_terrain(terrain: PixelRaster, index: ProvinceIndex) -> PixelRaster:
    """Terrain with everything that is not a land province made transparent."""
    out = terrain.copy()
    out.data[~index.land_mask(), 3] = 0
    return out


def prepare_water(water: PixelRaster, index: ProvinceIndex) -> PixelRaster:
    out = water.copy()
    out.data[index.land_mask(), 3] = 0
    return out


def prepare_rivers(rivers: PixelRaster, color: tuple[int, int, int] = RIVER_COLOR) -> PixelRaster:
    """Recolor every river pixel, keeping its alpha."""
    out = rivers.copy()
    out.data[:, :, :3] = color
    return out


# ----------------------------
# Compositing
# ----------------------------
def _blend_into(
    premul: np.ndarray,
    alpha: np.ndarray,
    src: np.ndarray,
    blend: BlendMode,
    opacity: float,
) -> None:
    """Source-over ``src`` (float RGBA in 0..1) onto a premultiplied accumulator."""
    sa = src[:, :, 3:4] * opacity
    src_rgb = src[:, :, :3]
    if blend is BlendMode.MULTIPLY:
        safe = np.where(alpha > 0, alpha, 1.0)
        dst_rgb = premul / safe
        src_rgb = (1.0 - alpha) * src_rgb + alpha * (src_rgb * dst_rgb)
    premul *= 1.0 - sa
    premul += src_rgb * sa
    alpha *= 1.0 - sa
    alpha += sa


class CompositorPipeline:
    """Fixed-order layer stack drawn under the camera transform.

    Layers are map-sized rasters; sampling is nearest-neighbor, so one map
    pixel becomes a ``zoom`` x ``zoom`` block on screen.
    """

    def __init__(
        self,
        map_width: int,
        map_height: int,
        *,
        background: tuple[int, int, int, int] = (0, 0, 0, 0),
        opacities: Mapping[str, float] | None = None,
        blends: Mapping[str, BlendMode | str] | None = None,
    ) -> None:
        self.map_width = int(map_width)
        self.map_height = int(map_height)
        self.background = background
        opacities = {**DEFAULT_OPACITY, **(opacities or {})}
        blends = dict(blends or {})
        self.layers: Dict[str, Layer] = {}
        for name in LAYER_ORDER:
            self.layers[name] = Layer(
                name=name,
                blend=BlendMode(blends.get(name, BlendMode.NORMAL)),
                opacity=float(opacities[name]),
            )

    def set_layer(self, name: str, raster: PixelRaster | None) -> None:
        if name not in self.layers:
            raise KeyError(f"Unknown layer {name!r}; expected one of {LAYER_ORDER}")
        if raster is not None and (raster.width, raster.height) != (self.map_width, self.map_height):
            raise ValueError(
                f"Layer {name} is {raster.width}x{raster.height}, "
                f"map is {self.map_width}x{self.map_height}"
            )
        self.layers[name].raster = raster

    def layer(self, name: str) -> Layer:
        return self.layers[name]

    def plan(self) -> List[Layer]:
        return [self.layers[name] for name in LAYER_ORDER if self.layers[name].drawable]

    def render(self, camera: Camera, viewport_width: int, viewport_height: int) -> PixelRaster:
        vw = int(viewport_width)
        vh = int(viewport_height)
        premul = np.zeros((vh, vw, 3), dtype=np.float32)
        alpha = np.zeros((vh, vw, 1), dtype=np.float32)
        bg = np.array(self.background, dtype=np.float32) / 255.0
        alpha[:] = bg[3]
        premul[:] = bg[:3] * bg[3]

        if vw > 0 and vh > 0 and self.map_width > 0 and self.map_height > 0:
            mx = np.floor((np.arange(vw) - camera.x) / camera.zoom).astype(np.int64)
            my = np.floor((np.arange(vh) - camera.y) / camera.zoom).astype(np.int64)
            cols = np.flatnonzero((mx >= 0) & (mx < self.map_width))
            rows = np.flatnonzero((my >= 0) & (my < self.map_height))
            if cols.size and rows.size:
                c0, c1 = int(cols[0]), int(cols[-1]) + 1
                r0, r1 = int(rows[0]), int(rows[-1]) + 1
                idx_x = mx[c0:c1]
                idx_y = my[r0:r1]
                region_p = premul[r0:r1, c0:c1]
                region_a = alpha[r0:r1, c0:c1]
                for layer in self.plan():
                    sampled = layer.raster.data[idx_y[:, None], idx_x[None, :]]
                    _blend_into(region_p, region_a, sampled.astype(np.float32) / 255.0, layer.blend, layer.opacity)

        safe = np.where(alpha > 0, alpha, 1.0)
        rgb = premul / safe
        out = np.concatenate([rgb, alpha], axis=2)
        data = np.clip(out * 255.0 + 0.5, 0, 255).astype(np.uint8)
        return PixelRaster(vw, vh, data=np.ascontiguousarray(data))

    def render_map(self) -> PixelRaster:
        """Whole map at zoom 1, no offset."""
        return self.render(Camera(x=0.0, y=0.0, zoom=1.0), self.map_width, self.map_height)


class RenderScheduler:
    """Coalesces render requests so a frame draws at most once."""

    def __init__(self, draw: Callable[[], object]) -> None:
        self._draw = draw
        self._dirty = False
        self.frames = 0

    @property
    def pending(self) -> bool:
        return self._dirty

    def request(self) -> None:
        self._dirty = True

    def flush(self) -> bool:
        if not self._dirty:
            return False
        self._dirty = False
        self._draw()
        self.frames += 1
        return True


def render_frame_png(frame: PixelRaster) -> bytes:
    buf = io.BytesIO()
    frame.to_image().save(buf, format="PNG")
    return buf.getvalue()
