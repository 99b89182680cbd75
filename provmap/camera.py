from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_INITIAL_ZOOM = 2.0
DEFAULT_MIN_ZOOM = 0.1
DEFAULT_MAX_ZOOM = 15.0


@dataclass
class Camera:
    """Screen-space offset plus scale; one map pixel covers ``zoom`` screen pixels."""

    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0
    min_zoom: float = DEFAULT_MIN_ZOOM
    max_zoom: float = DEFAULT_MAX_ZOOM

    def snapshot(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.zoom)


class CameraController:
    def __init__(
        self,
        viewport_width: int,
        viewport_height: int,
        map_width: int,
        map_height: int,
        *,
        initial_zoom: float = DEFAULT_INITIAL_ZOOM,
        min_zoom: float = DEFAULT_MIN_ZOOM,
        max_zoom: float = DEFAULT_MAX_ZOOM,
    ) -> None:
        if min_zoom <= 0 or max_zoom < min_zoom:
            raise ValueError(f"Invalid zoom limits: min={min_zoom} max={max_zoom}")
        self.viewport_width = int(viewport_width)
        self.viewport_height = int(viewport_height)
        self.map_width = int(map_width)
        self.map_height = int(map_height)
        self.initial_zoom = float(initial_zoom)
        self.configured_min_zoom = float(min_zoom)
        self.camera = Camera(zoom=self.initial_zoom, min_zoom=min_zoom, max_zoom=max_zoom)
        self._update_min_zoom()
        self.reset()

    def _update_min_zoom(self) -> None:
        fill = 0.0
        if self.map_width > 0 and self.map_height > 0:
            fill = max(
                self.viewport_width / self.map_width,
                self.viewport_height / self.map_height,
            )
        self.camera.min_zoom = min(max(self.configured_min_zoom, fill), self.camera.max_zoom)

    def _limit_zoom(self, zoom: float) -> float:
        return max(self.camera.min_zoom, min(self.camera.max_zoom, zoom))

    def reset(self) -> None:
        cam = self.camera
        cam.zoom = self._limit_zoom(self.initial_zoom)
        cam.x = self.viewport_width / 2 - (self.map_width / 2) * cam.zoom
        cam.y = self.viewport_height / 2 - (self.map_height / 2) * cam.zoom
        self.clamp()

    def pan(self, dx: float, dy: float) -> None:
        self.camera.x += dx
        self.camera.y += dy
        self.clamp()

    def zoom(self, pivot_x: float, pivot_y: float, factor: float) -> bool:
        """Zoom toward the pivot; returns False when the zoom did not change."""
        cam = self.camera
        new_zoom = self._limit_zoom(cam.zoom * factor)
        if new_zoom == cam.zoom:
            return False
        ratio = new_zoom / cam.zoom
        cam.x = pivot_x - (pivot_x - cam.x) * ratio
        cam.y = pivot_y - (pivot_y - cam.y) * ratio
        cam.zoom = new_zoom
        self.clamp()
        return True

    zoom_at = zoom

    def resize(self, width: int, height: int) -> None:
        self.viewport_width = int(width)
        self.viewport_height = int(height)
        self._update_min_zoom()
        self.clamp()

    def clamp(self) -> None:
        cam = self.camera
        cam.zoom = self._limit_zoom(cam.zoom)
        cam.x = self._clamp_axis(cam.x, self.map_width * cam.zoom, self.viewport_width)
        cam.y = self._clamp_axis(cam.y, self.map_height * cam.zoom, self.viewport_height)

    @staticmethod
    def _clamp_axis(offset: float, scaled: float, viewport: int) -> float:
        if scaled <= viewport:
            return (viewport - scaled) / 2
        return max(viewport - scaled, min(0.0, offset))

    def screen_to_map(self, sx: float, sy: float) -> tuple[int, int]:
        cam = self.camera
        return (
            math.floor((sx - cam.x) / cam.zoom),
            math.floor((sy - cam.y) / cam.zoom),
        )

    map_point_from_screen = screen_to_map

    def map_to_screen(self, mx: float, my: float) -> tuple[float, float]:
        cam = self.camera
        return (mx * cam.zoom + cam.x, my * cam.zoom + cam.y)

    def visible_map_rect(self) -> tuple[int, int, int, int]:
        """Map-space (x0, y0, x1, y1) covered by the viewport, clipped to the map."""
        x0, y0 = self.screen_to_map(0, 0)
        x1, y1 = self.screen_to_map(self.viewport_width - 1, self.viewport_height - 1)
        return (
            max(0, x0),
            max(0, y0),
            min(self.map_width, x1 + 1),
            min(self.map_height, y1 + 1),
        )
