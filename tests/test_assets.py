import tempfile
import threading
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from provmap.assets import AssetLoader, LoadBarrier, load_assets
from provmap.errors import AssetError, AssetLoadError


def _save_png(path: Path, w: int, h: int) -> Path:
    Image.fromarray(np.zeros((h, w, 3), dtype=np.uint8)).save(path)
    return path


class LoadBarrierTests(unittest.TestCase):
    def test_fires_once_after_all_signals(self):
        fired = []
        barrier = LoadBarrier(["a", "b", "c"], on_ready=lambda: fired.append(True))
        barrier.signal("b")
        barrier.signal("a")
        self.assertFalse(barrier.ready)
        self.assertEqual(barrier.remaining, 1)
        barrier.signal("c")
        self.assertTrue(barrier.ready)
        self.assertEqual(fired, [True])
        self.assertEqual(barrier.completed, ["b", "a", "c"])

    def test_duplicate_and_unknown_signals_rejected(self):
        barrier = LoadBarrier(["a", "b"])
        barrier.signal("a")
        with self.assertRaises(ValueError):
            barrier.signal("a")
        with self.assertRaises(ValueError):
            barrier.signal("zzz")
        self.assertFalse(barrier.ready)

    def test_empty_barrier_is_ready(self):
        fired = []
        barrier = LoadBarrier([], on_ready=lambda: fired.append(1))
        self.assertTrue(barrier.ready)
        self.assertTrue(barrier.wait(0))
        self.assertEqual(fired, [1])

    def test_signals_from_threads(self):
        names = [f"asset{i}" for i in range(16)]
        barrier = LoadBarrier(names)
        threads = [threading.Thread(target=barrier.signal, args=(name,)) for name in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertTrue(barrier.wait(1.0))
        self.assertEqual(sorted(barrier.completed), sorted(names))


class AssetLoaderTests(unittest.TestCase):
    def test_loads_all_assets(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            root = Path(tmp_dir)
            paths = {
                "provinces": _save_png(root / "provinces.png", 8, 4),
                "terrain": _save_png(root / "terrain.png", 8, 4),
            }
            rasters = load_assets(paths, 8, 4)
        self.assertEqual(sorted(rasters), ["provinces", "terrain"])
        self.assertEqual(rasters["terrain"].shape, (4, 8))

    def test_failures_name_each_asset(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            root = Path(tmp_dir)
            paths = {
                "provinces": _save_png(root / "provinces.png", 8, 4),
                "terrain": _save_png(root / "terrain.png", 7, 4),
                "rivers": root / "missing.png",
            }
            loader = AssetLoader(paths, 8, 4)
            with self.assertRaises(AssetLoadError) as ctx:
                loader.result(timeout=10)
        failures = ctx.exception.failures
        self.assertEqual(sorted(failures), ["rivers", "terrain"])
        self.assertIsInstance(failures["terrain"], AssetError)
        self.assertEqual(failures["rivers"].asset, "rivers")
        self.assertIn("provinces", loader.loaded)
        self.assertTrue(loader.barrier.ready)

    def test_start_twice_rejected(self):
        loader = AssetLoader({}, 1, 1)
        barrier = loader.start()
        self.assertTrue(barrier.ready)
        with self.assertRaises(RuntimeError):
            loader.start()
        self.assertEqual(loader.result(), {})

    def test_log_fn_receives_messages(self):
        lines = []
        lock = threading.Lock()

        def log_fn(msg):
            with lock:
                lines.append(msg)

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = _save_png(Path(tmp_dir) / "water.png", 2, 2)
            load_assets({"water": path}, 2, 2, log_fn=log_fn)
        self.assertTrue(any("water" in line for line in lines))


if __name__ == "__main__":
    unittest.main()
