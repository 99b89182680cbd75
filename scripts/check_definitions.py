#!/usr/bin/env python3
"""Check a province definition table against the province raster.

Reports raster colors with no definition row, definition rows whose color never
appears in the raster, and ownership entries naming unknown provinces or
countries.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np

BASE_DIR = Path(__file__).resolve().parent
if str(BASE_DIR.parent) not in sys.path:
    sys.path.insert(0, str(BASE_DIR.parent))

from provmap.editor import load_country_table, load_ownership
from provmap.errors import AssetError
from provmap.provinces import ProvinceIndex, load_definitions
from provmap.raster import PixelRaster


def unregistered_colors(index: ProvinceIndex, limit: int = 20) -> list[tuple[tuple[int, int, int], int]]:
    """Most frequent colors of the raster that no province claims."""
    miss = index.slots < 0
    if not miss.any():
        return []
    packed = index.base.packed_rgb()[miss]
    values, counts = np.unique(packed, return_counts=True)
    order = np.argsort(-counts, kind="stable")[:limit]
    out = []
    for i in order:
        v = int(values[i])
        out.append((((v >> 16) & 0xFF, (v >> 8) & 0xFF, v & 0xFF), int(counts[i])))
    return out


def unused_provinces(index: ProvinceIndex) -> list[str]:
    present = np.zeros(len(index) + 1, dtype=bool)
    present[index.slots.ravel()] = True
    return [p.id for slot, p in enumerate(index.provinces) if not present[slot]]


def check_ownership(index: ProvinceIndex, ownership: dict[str, str], countries: dict) -> list[str]:
    problems = []
    for pid, cid in sorted(ownership.items()):
        province = index.by_id(pid)
        if province is None:
            problems.append(f"ownership names unknown province {pid}")
        elif not province.is_land:
            problems.append(f"ownership assigns water province {pid} to {cid}")
        if countries and cid not in countries:
            problems.append(f"province {pid} owned by unknown country {cid}")
    return problems


def main() -> None:
    parser = argparse.ArgumentParser(description="Check a definition table against a province raster.")
    parser.add_argument("provinces", help="Province color PNG")
    parser.add_argument("definitions", help="Definition table (id;r;g;b;name[;kind])")
    parser.add_argument("--ownership", default=None, help="Ownership JSON to cross-check")
    parser.add_argument("--countries", default=None, help="Country table JSON to cross-check")
    parser.add_argument("--limit", type=int, default=20, help="Max unregistered colors to list")
    args = parser.parse_args()

    try:
        definitions = load_definitions(args.definitions)
        base = PixelRaster.load(args.provinces, asset="provinces")
        countries = load_country_table(args.countries) if args.countries else {}
        ownership = load_ownership(args.ownership) if args.ownership else {}
    except AssetError as exc:
        raise SystemExit(str(exc))

    index = ProvinceIndex.build(base, definitions)
    missing = unregistered_colors(index, args.limit)
    unused = unused_provinces(index)
    problems = check_ownership(index, ownership, countries)

    print(f"{len(index)} provinces, raster {base.width}x{base.height}")
    for color, count in missing:
        print(f"unregistered color #{color[0]:02x}{color[1]:02x}{color[2]:02x}: {count} pixels")
    for pid in unused:
        print(f"province {pid} has no pixels")
    for line in problems:
        print(line)

    if not missing and not unused and not problems:
        print("No problems found.")
        return
    raise SystemExit(1)


if __name__ == "__main__":
    main()
