from __future__ import annotations

from pathlib import Path
from typing import Iterable

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import AssetError

RGBA = tuple[int, int, int, int]


class PixelRaster:
    """Width x height RGBA buffer backed by a (H, W, 4) uint8 array."""

    def __init__(self, width: int, height: int, *, data: np.ndarray | None = None) -> None:
        if width < 0 or height < 0:
            raise ValueError(f"Raster size must be non-negative, got {width}x{height}")
        if data is None:
            data = np.zeros((height, width, 4), dtype=np.uint8)
        elif data.shape != (height, width, 4) or data.dtype != np.uint8:
            raise ValueError(
                f"Raster data must be uint8 with shape {(height, width, 4)}, "
                f"got {data.dtype} {data.shape}"
            )
        self.width = int(width)
        self.height = int(height)
        self.data = data

    @classmethod
    def from_array(cls, arr: np.ndarray) -> PixelRaster:
        arr = np.asarray(arr)
        if arr.ndim == 2:
            arr = np.stack([arr, arr, arr, np.full_like(arr, 255)], axis=2)
        elif arr.ndim == 3 and arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=arr.dtype)
            arr = np.concatenate([arr, alpha], axis=2)
        elif arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Unsupported raster array shape {arr.shape}")
        arr = np.ascontiguousarray(arr, dtype=np.uint8)
        return cls(arr.shape[1], arr.shape[0], data=arr)

    @classmethod
    def from_image(cls, image: Image.Image) -> PixelRaster:
        return cls.from_array(np.array(image.convert("RGBA"), dtype=np.uint8))

    @classmethod
    def load(cls, path: Path | str, *, asset: str | None = None) -> PixelRaster:
        path = Path(path)
        name = asset or path.name
        if not path.exists():
            raise AssetError(name, path, "file not found")
        try:
            with Image.open(path) as img:
                img.load()
                return cls.from_image(img)
        except (UnidentifiedImageError, OSError) as exc:
            raise AssetError(name, path, f"unreadable image: {exc}") from exc

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def alpha(self) -> np.ndarray:
        return self.data[:, :, 3]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_pixel(self, x: int, y: int) -> RGBA | None:
        if not self.in_bounds(x, y):
            return None
        r, g, b, a = self.data[y, x]
        return (int(r), int(g), int(b), int(a))

    def set_pixel(self, x: int, y: int, rgba: Iterable[int]) -> None:
        if not self.in_bounds(x, y):
            return
        self.data[y, x] = tuple(rgba)

    def _clip(self, x: int, y: int, w: int, h: int) -> tuple[int, int, int, int]:
        x0 = max(0, x)
        y0 = max(0, y)
        x1 = min(self.width, x + w)
        y1 = min(self.height, y + h)
        return x0, y0, max(x0, x1), max(y0, y1)

    def read_region(self, x: int, y: int, w: int, h: int) -> PixelRaster:
        """Copy of the sub-rectangle clipped to the raster bounds."""
        x0, y0, x1, y1 = self._clip(x, y, w, h)
        sub = self.data[y0:y1, x0:x1].copy()
        return PixelRaster(x1 - x0, y1 - y0, data=sub)

    def write_region(self, x: int, y: int, src: PixelRaster) -> None:
        """Paste ``src`` with its top-left at (x, y); parts outside are dropped."""
        x0, y0, x1, y1 = self._clip(x, y, src.width, src.height)
        if x1 <= x0 or y1 <= y0:
            return
        sx = x0 - x
        sy = y0 - y
        self.data[y0:y1, x0:x1] = src.data[sy : sy + (y1 - y0), sx : sx + (x1 - x0)]

    def fill(self, rgba: Iterable[int]) -> None:
        self.data[:, :] = tuple(rgba)

    def clear(self) -> None:
        self.data.fill(0)

    def copy(self) -> PixelRaster:
        return PixelRaster(self.width, self.height, data=self.data.copy())

    def packed_rgb(self) -> np.ndarray:
        """One uint32 per pixel holding ``r << 16 | g << 8 | b``."""
        rgb = self.data[:, :, :3].astype(np.uint32)
        return (rgb[:, :, 0] << 16) | (rgb[:, :, 1] << 8) | rgb[:, :, 2]

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.data)

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def __repr__(self) -> str:
        return f"PixelRaster({self.width}x{self.height})"


def pack_rgb(r: int, g: int, b: int) -> int:
    return (int(r) << 16) | (int(g) << 8) | int(b)


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    color = color.lstrip("#")
    return tuple(int(color[i : i + 2], 16) for i in (0, 2, 4))  # type: ignore[return-value]


def require_size(raster: PixelRaster, width: int, height: int, *, asset: str, path: Path | str | None = None) -> None:
    if raster.width != width or raster.height != height:
        raise AssetError(
            asset,
            path,
            f"expected {width}x{height} pixels, got {raster.width}x{raster.height}",
        )
