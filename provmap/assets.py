from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .errors import AssetError, AssetLoadError
from .raster import PixelRaster, require_size

LogFn = Optional[Callable[[str], None]]


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


class LoadBarrier:
    """Counts N independent completions and fires once when all have landed.

    Each name may signal exactly once, in any order.
    """

    def __init__(self, names: Iterable[str], *, on_ready: Callable[[], None] | None = None) -> None:
        self._pending = set(names)
        self.expected = len(self._pending)
        self.completed: List[str] = []
        self._on_ready = on_ready
        self._lock = threading.Lock()
        self._event = threading.Event()
        if not self._pending:
            self._fire()

    def _fire(self) -> None:
        self._event.set()
        if self._on_ready is not None:
            self._on_ready()

    def signal(self, name: str) -> None:
        with self._lock:
            if name not in self._pending:
                if name in self.completed:
                    raise ValueError(f"Load {name!r} already signalled")
                raise ValueError(f"Unknown load {name!r}")
            self._pending.remove(name)
            self.completed.append(name)
            fire = not self._pending
        if fire:
            self._fire()

    @property
    def ready(self) -> bool:
        return self._event.is_set()

    @property
    def remaining(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class AssetLoader:
    """Loads map-sized rasters in parallel behind a ``LoadBarrier``."""

    def __init__(
        self,
        assets: Mapping[str, Path | str],
        width: int,
        height: int,
        *,
        max_workers: int = 4,
        log_fn: LogFn = None,
    ) -> None:
        self.assets = {name: Path(path) for name, path in assets.items()}
        self.width = int(width)
        self.height = int(height)
        self.max_workers = max_workers
        self.log_fn = log_fn
        self.loaded: Dict[str, PixelRaster] = {}
        self.failures: Dict[str, AssetError] = {}
        self.barrier: LoadBarrier | None = None
        self._pool: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()
        self._started = 0.0

    def _load_one(self, name: str, path: Path) -> PixelRaster:
        raster = PixelRaster.load(path, asset=name)
        require_size(raster, self.width, self.height, asset=name, path=path)
        return raster

    def _done(self, name: str, future: Future) -> None:
        path = self.assets[name]
        try:
            raster = future.result()
        except AssetError as exc:
            with self._lock:
                self.failures[name] = exc
            _log(self.log_fn, f"FAILED to load {name}: {exc.reason}")
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self.failures[name] = AssetError(name, path, f"{type(exc).__name__}: {exc}")
            _log(self.log_fn, f"FAILED to load {name}: {exc}")
        else:
            with self._lock:
                self.loaded[name] = raster
            _log(self.log_fn, f"Asset loaded: {name} ({raster.width}x{raster.height})")
        assert self.barrier is not None
        self.barrier.signal(name)

    def start(self, on_ready: Callable[[], None] | None = None) -> LoadBarrier:
        if self.barrier is not None:
            raise RuntimeError("AssetLoader already started")
        self._started = time.perf_counter()
        self.barrier = LoadBarrier(self.assets.keys(), on_ready=on_ready)
        if not self.assets:
            return self.barrier
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="asset")
        for name, path in self.assets.items():
            _log(self.log_fn, f"Loading {name} from {path}")
            future = self._pool.submit(self._load_one, name, path)
            future.add_done_callback(partial(self._done, name))
        return self.barrier

    def result(self, timeout: float | None = None) -> Dict[str, PixelRaster]:
        barrier = self.barrier or self.start()
        if not barrier.wait(timeout):
            raise TimeoutError(f"{barrier.remaining} asset(s) still loading after {timeout}s")
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        if self.failures:
            raise AssetLoadError(self.failures)
        elapsed = (time.perf_counter() - self._started) * 1000
        _log(self.log_fn, f"All assets loaded: {sorted(self.loaded)} in {elapsed:.0f}ms")
        return dict(self.loaded)


def load_assets(
    assets: Mapping[str, Path | str],
    width: int,
    height: int,
    *,
    log_fn: LogFn = None,
) -> Dict[str, PixelRaster]:
    return AssetLoader(assets, width, height, log_fn=log_fn).result()
