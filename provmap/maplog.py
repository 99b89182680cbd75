from __future__ import annotations

import datetime as dt
import os
import threading


class MapLog:
    """Per-run log file under ``logs/``; pass ``log`` wherever a ``log_fn`` is taken."""

    def __init__(self, *, run_label: str = "map", log_dir: str = "logs") -> None:
        self.run_label = run_label
        os.makedirs(log_dir, exist_ok=True)
        run_id = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d_%H%M%S")
        self.log_path = os.path.join(log_dir, f"{run_label}_{run_id}.log")
        self._log_fp = open(self.log_path, "w", encoding="utf-8")
        # asset loads log from worker threads
        self._lock = threading.Lock()

    def close(self) -> None:
        with self._lock:
            if not self._log_fp.closed:
                self._log_fp.close()

    def log(self, msg: str) -> None:
        with self._lock:
            if self._log_fp.closed:
                return
            self._log_fp.write(msg + "\n")
            self._log_fp.flush()

    def __enter__(self) -> MapLog:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
