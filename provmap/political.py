from __future__ import annotations

import colorsys
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np

from .provinces import ProvinceIndex
from .raster import PixelRaster

LogFn = Optional[Callable[[str], None]]

DEFAULT_POLITICAL_ALPHA = 255
SATURATION_BOOST = 1.05


@dataclass(frozen=True)
class CountryDisplay:
    id: str
    name: str
    color: tuple[int, int, int]


@dataclass
class PoliticalMap:
    """Ownership-derived rasters rebuilt on every ownership change.

    ``owners`` labels each pixel with 1..N (position in ``country_ids`` plus
    one) or 0 when unowned, the layout ``scipy.ndimage`` expects.
    """

    raster: PixelRaster
    owners: np.ndarray
    country_ids: List[str]
    pixel_counts: Dict[str, int]

    def label_of(self, country_id: str) -> int | None:
        try:
            return self.country_ids.index(country_id) + 1
        except ValueError:
            return None


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


def boost_saturation(color: tuple[int, int, int], factor: float = SATURATION_BOOST) -> tuple[int, int, int]:
    r, g, b = (c / 255.0 for c in color)
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    s = min(1.0, s * factor)
    r2, g2, b2 = colorsys.hls_to_rgb(h, l, s)
    return (int(round(r2 * 255)), int(round(g2 * 255)), int(round(b2 * 255)))


def build_political(
    index: ProvinceIndex,
    ownership: Mapping[str, str],
    countries: Mapping[str, CountryDisplay],
    *,
    alpha: int = DEFAULT_POLITICAL_ALPHA,
    log_fn: LogFn = None,
) -> PoliticalMap:
    """Color every owned land pixel with its owner's color; the rest stays transparent."""
    start = time.perf_counter()
    n = len(index.provinces)
    # One extra trailing row absorbs slot -1 (unregistered colors).
    lut = np.zeros((n + 1, 4), dtype=np.uint8)
    owner_lut = np.zeros(n + 1, dtype=np.int32)

    country_ids: List[str] = []
    country_label: Dict[str, int] = {}
    boosted: Dict[str, tuple[int, int, int]] = {}
    for slot, province in enumerate(index.provinces):
        if not province.is_land:
            continue
        owner = ownership.get(province.id)
        if owner is None:
            continue
        country = countries.get(owner)
        if country is None:
            continue
        if owner not in country_label:
            country_ids.append(owner)
            country_label[owner] = len(country_ids)
            boosted[owner] = boost_saturation(country.color)
        lut[slot, :3] = boosted[owner]
        lut[slot, 3] = alpha
        owner_lut[slot] = country_label[owner]

    slots = index.slots
    data = lut[slots] if slots.size else np.zeros(slots.shape + (4,), dtype=np.uint8)
    owners = owner_lut[slots] if slots.size else np.zeros(slots.shape, dtype=np.int32)
    raster = PixelRaster(index.width, index.height, data=np.ascontiguousarray(data))

    counts = np.bincount(owners.ravel(), minlength=len(country_ids) + 1)
    pixel_counts = {cid: int(counts[i + 1]) for i, cid in enumerate(country_ids)}

    elapsed = (time.perf_counter() - start) * 1000
    _log(
        log_fn,
        f"Political map built: {int(counts[1:].sum())} pixels colored for "
        f"{len(country_ids)} countries in {elapsed:.0f}ms",
    )
    return PoliticalMap(raster=raster, owners=owners, country_ids=country_ids, pixel_counts=pixel_counts)
