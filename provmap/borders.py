from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

import numpy as np
from scipy import ndimage as ndi

from .provinces import ProvinceIndex
from .raster import PixelRaster

LogFn = Optional[Callable[[str], None]]


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


class BorderKind(enum.Enum):
    PROVINCE = "province"
    COUNTRY = "country"


@dataclass
class BorderSet:
    kind: BorderKind
    xs: np.ndarray
    ys: np.ndarray
    shape: tuple[int, int]
    province_id: str | None = None
    _mask: np.ndarray | None = field(default=None, repr=False, compare=False)

    @classmethod
    def empty(cls, kind: BorderKind, shape: tuple[int, int] = (0, 0), province_id: str | None = None) -> BorderSet:
        none = np.zeros(0, dtype=np.intp)
        return cls(kind=kind, xs=none, ys=none.copy(), shape=shape, province_id=province_id)

    @classmethod
    def from_mask(cls, kind: BorderKind, mask: np.ndarray, province_id: str | None = None) -> BorderSet:
        ys, xs = np.nonzero(mask)
        return cls(kind=kind, xs=xs, ys=ys, shape=mask.shape, province_id=province_id, _mask=mask)

    def __len__(self) -> int:
        return int(self.xs.size)

    def __bool__(self) -> bool:
        return self.xs.size > 0

    def __contains__(self, point: object) -> bool:
        if not isinstance(point, tuple) or len(point) != 2:
            return False
        x, y = point
        h, w = self.shape
        if not (0 <= x < w and 0 <= y < h):
            return False
        return bool(self.mask()[y, x])

    def pixels(self) -> list[tuple[int, int]]:
        return [(int(x), int(y)) for x, y in zip(self.xs, self.ys)]

    def mask(self) -> np.ndarray:
        if self._mask is None:
            mask = np.zeros(self.shape, dtype=bool)
            mask[self.ys, self.xs] = True
            self._mask = mask
        return self._mask


def _bbox(mask: np.ndarray) -> tuple[int, int, int, int] | None:
    rows = np.flatnonzero(mask.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(mask.any(axis=0))
    return int(rows[0]), int(rows[-1]) + 1, int(cols[0]), int(cols[-1]) + 1


def edge_pixels(mask: np.ndarray) -> np.ndarray:
    """Mask pixels with at least one 8-neighbor outside the mask or the raster."""
    h, w = mask.shape
    padded = np.pad(mask, 1, constant_values=False)
    interior = mask.copy()
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            interior &= padded[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]
    return mask & ~interior


def province_borders(index: ProvinceIndex, province_id: str, *, log_fn: LogFn = None) -> BorderSet:
    shape = index.slots.shape
    slot = index.slot_of(province_id)
    if slot is None or index.slots.size == 0:
        return BorderSet.empty(BorderKind.PROVINCE, shape, province_id)
    mask = index.slots == slot
    box = _bbox(mask)
    if box is None:
        return BorderSet.empty(BorderKind.PROVINCE, shape, province_id)
    # Everything outside the bounding box is "different", same as padding.
    y0, y1, x0, x1 = box
    edge = edge_pixels(mask[y0:y1, x0:x1])
    ys, xs = np.nonzero(edge)
    result = BorderSet(
        kind=BorderKind.PROVINCE,
        xs=xs + x0,
        ys=ys + y0,
        shape=shape,
        province_id=province_id,
    )
    _log(log_fn, f"Province borders for {province_id}: {len(result)} pixels")
    return result


def country_borders(political: PixelRaster, *, log_fn: LogFn = None) -> BorderSet:
    """Edges between differently colored non-transparent pixels of the political raster.

    Only right and down neighbors are compared; the scan covers the whole
    raster so every adjacency is seen once. Both pixels of a differing pair
    are flagged. Transparent (unowned/water) pixels never take part.
    """
    if political.is_empty():
        return BorderSet.empty(BorderKind.COUNTRY, political.shape)
    start = time.perf_counter()
    opaque = political.alpha > 0
    packed = political.packed_rgb()
    border = np.zeros(political.shape, dtype=bool)

    m = opaque[:, :-1] & opaque[:, 1:] & (packed[:, :-1] != packed[:, 1:])
    border[:, :-1] |= m
    border[:, 1:] |= m

    m = opaque[:-1, :] & opaque[1:, :] & (packed[:-1, :] != packed[1:, :])
    border[:-1, :] |= m
    border[1:, :] |= m

    result = BorderSet.from_mask(BorderKind.COUNTRY, border)
    elapsed = (time.perf_counter() - start) * 1000
    _log(log_fn, f"Country borders generated: {len(result)} border pixels (land-only) in {elapsed:.0f}ms")
    return result


class ProvinceBorderCache:
    """Lazily computed province borders, memoised per province id."""

    def __init__(self, index: ProvinceIndex, *, log_fn: LogFn = None) -> None:
        self.index = index
        self.log_fn = log_fn
        self._cache: Dict[str, BorderSet] = {}
        self._highlights: Dict[str, HighlightMask | None] = {}

    def get(self, province_id: str) -> BorderSet:
        cached = self._cache.get(province_id)
        if cached is None:
            cached = province_borders(self.index, province_id, log_fn=self.log_fn)
            self._cache[province_id] = cached
        return cached

    def highlight(self, province_id: str) -> HighlightMask | None:
        if province_id not in self._highlights:
            self._highlights[province_id] = highlight_mask(self.get(province_id))
        return self._highlights[province_id]

    def invalidate(self, province_ids: Iterable[str]) -> int:
        dropped = 0
        for pid in province_ids:
            self._highlights.pop(pid, None)
            if self._cache.pop(pid, None) is not None:
                dropped += 1
        return dropped

    def clear(self) -> None:
        self._cache.clear()
        self._highlights.clear()

    def __contains__(self, province_id: object) -> bool:
        return province_id in self._cache

    def __len__(self) -> int:
        return len(self._cache)


def render_border_raster(
    borders: BorderSet,
    *,
    color: tuple[int, int, int, int] = (0, 0, 0, 255),
    thickness: int = 1,
) -> PixelRaster:
    h, w = borders.shape
    raster = PixelRaster(w, h)
    if not borders:
        return raster
    mask = borders.mask()
    if thickness > 1:
        mask = ndi.binary_dilation(mask, structure=np.ones((thickness, thickness), dtype=bool))
    raster.data[mask] = color
    return raster


@dataclass
class HighlightMask:
    """3x3-dilated border mask cropped to its bounding box; (x0, y0) is the map offset."""

    province_id: str | None
    x0: int
    y0: int
    mask: np.ndarray

    @property
    def box(self) -> tuple[int, int, int, int]:
        h, w = self.mask.shape
        return self.x0, self.y0, w, h


def highlight_mask(borders: BorderSet) -> HighlightMask | None:
    if not borders:
        return None
    h, w = borders.shape
    # One pixel of padding holds the dilation.
    x0 = max(0, int(borders.xs.min()) - 1)
    y0 = max(0, int(borders.ys.min()) - 1)
    x1 = min(w, int(borders.xs.max()) + 2)
    y1 = min(h, int(borders.ys.max()) + 2)
    local = np.zeros((y1 - y0, x1 - x0), dtype=bool)
    local[borders.ys - y0, borders.xs - x0] = True
    struct8 = ndi.generate_binary_structure(2, 2)
    local = ndi.binary_dilation(local, structure=struct8)
    return HighlightMask(province_id=borders.province_id, x0=x0, y0=y0, mask=local)


def paint_highlight_mask(
    raster: PixelRaster,
    highlight: HighlightMask,
    *,
    rgb: tuple[int, int, int],
    opacity: float,
    origin: tuple[int, int] = (0, 0),
) -> None:
    """Paint ``highlight`` onto ``raster``, whose top-left sits at map point ``origin``."""
    ox, oy = origin
    hx, hy, hw, hh = highlight.box
    x0 = max(hx, ox)
    y0 = max(hy, oy)
    x1 = min(hx + hw, ox + raster.width)
    y1 = min(hy + hh, oy + raster.height)
    if x1 <= x0 or y1 <= y0:
        return
    mask = highlight.mask[y0 - hy : y1 - hy, x0 - hx : x1 - hx]
    alpha = int(round(max(0.0, min(1.0, opacity)) * 255))
    region = raster.data[y0 - oy : y1 - oy, x0 - ox : x1 - ox]
    region[mask] = (rgb[0], rgb[1], rgb[2], alpha)


def paint_highlight(
    raster: PixelRaster,
    borders: BorderSet,
    *,
    rgb: tuple[int, int, int],
    opacity: float,
) -> None:
    """Paint a 3x3-thickened border set onto ``raster`` (selection/hover overlay)."""
    if borders.shape != raster.shape:
        return
    highlight = highlight_mask(borders)
    if highlight is not None:
        paint_highlight_mask(raster, highlight, rgb=rgb, opacity=opacity)
