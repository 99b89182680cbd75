from __future__ import annotations

from pathlib import Path
from typing import Mapping


class AssetError(Exception):
    """A raster or table asset is missing, unreadable or has the wrong shape."""

    def __init__(self, asset: str, path: Path | str | None, reason: str) -> None:
        self.asset = asset
        self.path = Path(path) if path is not None else None
        self.reason = reason
        where = f" ({self.path})" if self.path is not None else ""
        super().__init__(f"Asset {asset}{where}: {reason}")


class DefinitionError(AssetError):
    """Malformed or conflicting row in the province definition table."""


class AssetLoadError(Exception):
    """One or more assets of a parallel load failed."""

    def __init__(self, failures: Mapping[str, AssetError]) -> None:
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        lines = [str(err) for _name, err in sorted(self.failures.items())]
        super().__init__(f"Failed to load assets: {names}\n" + "\n".join(lines))


class MutationError(ValueError):
    """Editor-driven change rejected at the boundary; state is left unchanged."""
