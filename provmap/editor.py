from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional

from .errors import AssetError, MutationError
from .political import CountryDisplay
from .provinces import Province
from .raster import hex_to_rgb

LogFn = Optional[Callable[[str], None]]

COUNTRY_ID_RE = re.compile(r"^[A-Z]{3}$")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


def validate_country_id(country_id: Any) -> str:
    if not isinstance(country_id, str) or not COUNTRY_ID_RE.match(country_id):
        raise MutationError(f"Invalid country id {country_id!r} (must be 3 uppercase letters)")
    return country_id


def parse_hex_color(color: Any) -> tuple[int, int, int]:
    if not isinstance(color, str) or not HEX_COLOR_RE.match(color):
        raise MutationError(f"Invalid color format {color!r} (must be hex #RRGGBB)")
    return hex_to_rgb(color)


def make_country(country_id: Any, name: Any, color: Any) -> CountryDisplay:
    cid = validate_country_id(country_id)
    if not isinstance(name, str) or not name.strip():
        raise MutationError(f"Country {cid} needs a non-empty name")
    return CountryDisplay(id=cid, name=name.strip(), color=parse_hex_color(color))


def parse_country_table(raw: Any, *, path: Path | str | None = None) -> Dict[str, CountryDisplay]:
    if not isinstance(raw, dict):
        raise AssetError("countries", path, "expected a JSON object of country entries")
    countries: Dict[str, CountryDisplay] = {}
    for cid, entry in raw.items():
        if not isinstance(entry, dict):
            raise AssetError("countries", path, f"entry {cid!r} is not an object")
        try:
            countries[cid] = make_country(cid, entry.get("name"), entry.get("color"))
        except MutationError as exc:
            raise AssetError("countries", path, str(exc)) from exc
    return countries


def load_country_table(path: Path | str) -> Dict[str, CountryDisplay]:
    path = Path(path)
    if not path.exists():
        raise AssetError("countries", path, "file not found")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AssetError("countries", path, f"invalid JSON: {exc}") from exc
    return parse_country_table(raw, path=path)


def load_ownership(path: Path | str) -> Dict[str, str]:
    path = Path(path)
    if not path.exists():
        raise AssetError("ownership", path, "file not found")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AssetError("ownership", path, f"invalid JSON: {exc}") from exc
    if not isinstance(raw, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in raw.items()):
        raise AssetError("ownership", path, "expected an object of province id -> country id strings")
    return dict(raw)


class MapEditor:
    """Boundary for editor-driven ownership and country changes.

    Every method validates first and mutates only on success; it returns the
    set of affected country ids (empty when nothing changed).
    """

    def __init__(
        self,
        ownership: MutableMapping[str, str],
        countries: MutableMapping[str, CountryDisplay],
        province_at: Callable[[int, int], Province | None],
        *,
        log_fn: LogFn = None,
    ) -> None:
        self.ownership = ownership
        self.countries = countries
        self.province_at = province_at
        self.log_fn = log_fn
        self.paint_country: str | None = None

    def set_paint_country(self, country_id: str | None) -> None:
        if country_id is not None and country_id not in self.countries:
            raise MutationError(f"Unknown country {country_id!r}")
        self.paint_country = country_id

    def assign(self, province: Province, country_id: str | None) -> set[str]:
        if not province.is_land:
            return set()
        if country_id is not None and country_id not in self.countries:
            raise MutationError(f"Unknown country {country_id!r}")
        current = self.ownership.get(province.id)
        if current == country_id:
            return set()
        if country_id is None:
            del self.ownership[province.id]
        else:
            self.ownership[province.id] = country_id
        _log(self.log_fn, f"Province {province.id} owner {current} -> {country_id}")
        return {c for c in (current, country_id) if c is not None}

    def paint(self, x: int, y: int, *, clear: bool = False) -> tuple[Province | None, set[str]]:
        province = self.province_at(x, y)
        if province is None:
            return None, set()
        target = None if clear else self.paint_country
        return province, self.assign(province, target)

    def create_country(self, country_id: Any, name: Any, color: Any) -> set[str]:
        country = make_country(country_id, name, color)
        if country.id in self.countries:
            raise MutationError(f"Country {country.id} already exists")
        self.countries[country.id] = country
        _log(self.log_fn, f"Created country: {country.id} - {country.name} ({color})")
        return {country.id}

    def recolor_country(self, country_id: str, color: Any) -> set[str]:
        rgb = parse_hex_color(color)
        country = self.countries.get(country_id)
        if country is None:
            raise MutationError(f"Unknown country {country_id!r}")
        if country.color == rgb:
            return set()
        self.countries[country_id] = CountryDisplay(id=country.id, name=country.name, color=rgb)
        _log(self.log_fn, f"Changed {country_id} color to {color}")
        return {country_id}

    def rename_country(self, country_id: str, name: Any) -> set[str]:
        country = self.countries.get(country_id)
        if country is None:
            raise MutationError(f"Unknown country {country_id!r}")
        if not isinstance(name, str) or not name.strip():
            raise MutationError(f"Country {country_id} needs a non-empty name")
        self.countries[country_id] = CountryDisplay(id=country.id, name=name.strip(), color=country.color)
        return {country_id}

    def delete_country(self, country_id: str) -> set[str]:
        if country_id not in self.countries:
            raise MutationError(f"Unknown country {country_id!r}")
        released = [pid for pid, owner in self.ownership.items() if owner == country_id]
        for pid in released:
            del self.ownership[pid]
        del self.countries[country_id]
        _log(self.log_fn, f"Deleted country {country_id}, released {len(released)} provinces")
        return {country_id}

    def export_ownership(self) -> str:
        return json.dumps(dict(sorted(self.ownership.items())), indent=2)
