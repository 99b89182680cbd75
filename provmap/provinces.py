from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import numpy as np

from .errors import DefinitionError
from .raster import PixelRaster, pack_rgb

OCEAN_ID = "OCEAN"
WATER_KINDS = {"sea", "lake"}
LAND_KINDS = {"land", ""}

Color = tuple[int, int, int]


@dataclass(frozen=True)
class Province:
    id: str
    display_name: str
    color: Color
    is_water: bool = False

    @property
    def is_land(self) -> bool:
        return not self.is_water and self.id != OCEAN_ID


def _parse_channel(raw: str, *, path: Path, line_no: int, field_name: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise DefinitionError(
            "definitions", path, f"line {line_no}: {field_name} is not an integer: {raw!r}"
        ) from None
    if not 0 <= value <= 255:
        raise DefinitionError(
            "definitions", path, f"line {line_no}: {field_name} out of range 0-255: {value}"
        )
    return value


def parse_definition_rows(rows: Iterable[Sequence[str]], *, path: Path | str = "<memory>") -> List[Province]:
    """Turn ``id;r;g;b;name[;kind]`` rows into provinces (header row optional)."""
    path = Path(path)
    provinces: List[Province] = []
    seen_ids: Dict[str, int] = {}
    seen_colors: Dict[Color, str] = {}
    for line_no, row in enumerate(rows, start=1):
        if not row or not "".join(row).strip():
            continue
        if row[0].lstrip().startswith("#"):
            continue
        if len(row) < 5:
            raise DefinitionError(
                "definitions", path, f"line {line_no}: expected at least 5 fields, got {len(row)}"
            )
        if line_no == 1 and not row[1].strip().isdigit():
            continue
        pid = row[0].strip()
        if not pid:
            raise DefinitionError("definitions", path, f"line {line_no}: empty province id")
        color = (
            _parse_channel(row[1], path=path, line_no=line_no, field_name="red"),
            _parse_channel(row[2], path=path, line_no=line_no, field_name="green"),
            _parse_channel(row[3], path=path, line_no=line_no, field_name="blue"),
        )
        name = row[4].strip() or pid
        kind = row[5].strip().lower() if len(row) > 5 else ""
        if kind not in WATER_KINDS and kind not in LAND_KINDS:
            raise DefinitionError("definitions", path, f"line {line_no}: unknown province kind {kind!r}")
        if pid in seen_ids:
            raise DefinitionError(
                "definitions", path, f"line {line_no}: duplicate province id {pid} (first on line {seen_ids[pid]})"
            )
        if color in seen_colors:
            raise DefinitionError(
                "definitions",
                path,
                f"line {line_no}: color {color} already registered for {seen_colors[color]}",
            )
        seen_ids[pid] = line_no
        seen_colors[color] = pid
        provinces.append(Province(id=pid, display_name=name, color=color, is_water=kind in WATER_KINDS))
    return provinces


def load_definitions(path: Path | str) -> List[Province]:
    path = Path(path)
    if not path.exists():
        raise DefinitionError("definitions", path, "file not found")
    with path.open("r", encoding="utf-8", newline="") as fh:
        return parse_definition_rows(csv.reader(fh, delimiter=";"), path=path)


class ProvinceIndex:
    """Color-keyed province lookup over the static province raster.

    ``slots`` holds, per pixel, the position of its province in ``provinces``
    (-1 where the color is not registered). Both it and the color table are
    built once; the base raster never changes at runtime.
    """

    def __init__(self, base: PixelRaster, provinces: Sequence[Province], slots: np.ndarray) -> None:
        self.base = base
        self.provinces = tuple(provinces)
        self.slots = slots
        self._by_color: Dict[Color, Province] = {p.color: p for p in self.provinces}
        self._by_id: Dict[str, Province] = {p.id: p for p in self.provinces}
        self._slot_by_id: Dict[str, int] = {p.id: i for i, p in enumerate(self.provinces)}

    @classmethod
    def build(cls, base: PixelRaster, provinces: Sequence[Province]) -> ProvinceIndex:
        provinces = list(provinces)
        if base.is_empty() or not provinces:
            slots = np.full(base.shape, -1, dtype=np.int32)
            return cls(base, provinces, slots)

        keys = np.array([pack_rgb(*p.color) for p in provinces], dtype=np.uint32)
        order = np.argsort(keys, kind="stable")
        sorted_keys = keys[order]
        packed = base.packed_rgb()
        pos = np.searchsorted(sorted_keys, packed)
        pos = np.minimum(pos, len(sorted_keys) - 1)
        hit = sorted_keys[pos] == packed
        slots = np.where(hit, order[pos], -1).astype(np.int32)
        return cls(base, provinces, slots)

    @property
    def width(self) -> int:
        return self.base.width

    @property
    def height(self) -> int:
        return self.base.height

    def __len__(self) -> int:
        return len(self.provinces)

    def __contains__(self, province_id: object) -> bool:
        return province_id in self._by_id

    def province_at(self, x: int, y: int) -> Province | None:
        if not (0 <= x < self.base.width and 0 <= y < self.base.height):
            return None
        r, g, b = self.base.data[y, x, :3]
        return self._by_color.get((int(r), int(g), int(b)))

    def by_color(self, color: Color) -> Province | None:
        return self._by_color.get(tuple(int(c) for c in color))  # type: ignore[arg-type]

    def by_id(self, province_id: str) -> Province | None:
        return self._by_id.get(province_id)

    def slot_of(self, province_id: str) -> int | None:
        return self._slot_by_id.get(province_id)

    def color_of(self, province_id: str) -> Color | None:
        province = self._by_id.get(province_id)
        return province.color if province is not None else None

    def land_mask(self) -> np.ndarray:
        """Pixels covered by a registered land province."""
        # trailing False catches slot -1
        land_slots = np.array([p.is_land for p in self.provinces] + [False], dtype=bool)
        return land_slots[self.slots]
