from __future__ import annotations

from typing import Dict, Optional, Protocol

DRAG_THRESHOLD = 5.0
EDGE_SCROLL_ZONE = 20
EDGE_SCROLL_SPEED = 8.0
WHEEL_ZOOM_IN = 1.05
WHEEL_ZOOM_OUT = 0.95

BUTTONS = ("left", "middle", "right")


class PointerTarget(Protocol):
    viewport_width: int
    viewport_height: int
    editor_mode: bool

    def pan(self, dx: float, dy: float) -> None: ...

    def zoom_at(self, sx: float, sy: float, factor: float) -> bool: ...

    def click_at(self, sx: float, sy: float) -> None: ...

    def paint_at(self, sx: float, sy: float, *, clear: bool = False) -> None: ...

    def hover_at(self, sx: float, sy: float) -> None: ...


class PointerController:
    """Turns raw pointer events (viewport coordinates) into camera moves and clicks.

    A press/release pair that stays within ``drag_threshold`` on both axes is a
    click; anything further becomes a drag-pan. Left click selects (or paints
    in editor mode), right click clears a province in editor mode.
    """

    def __init__(
        self,
        target: PointerTarget,
        *,
        drag_threshold: float = DRAG_THRESHOLD,
        edge_zone: int = EDGE_SCROLL_ZONE,
        edge_speed: float = EDGE_SCROLL_SPEED,
        edge_scroll: bool = True,
    ) -> None:
        self.target = target
        self.drag_threshold = float(drag_threshold)
        self.edge_zone = edge_zone
        self.edge_speed = float(edge_speed)
        self.edge_scroll_enabled = edge_scroll
        self.button: Optional[str] = None
        self.panning = False
        self._press_pos = (0.0, 0.0)
        self._last_pos = (0.0, 0.0)
        self.at_edge: Dict[str, bool] = dict.fromkeys(("left", "right", "top", "bottom"), False)

    def _reset_edges(self) -> None:
        for key in self.at_edge:
            self.at_edge[key] = False

    def press(self, x: float, y: float, button: str = "left") -> None:
        if button not in BUTTONS:
            raise ValueError(f"Unknown pointer button {button!r}")
        self.button = button
        self.panning = button == "middle"
        self._press_pos = (x, y)
        self._last_pos = (x, y)
        self._reset_edges()

    def move(self, x: float, y: float) -> None:
        if self.button in ("left", "middle"):
            px, py = self._press_pos
            if not self.panning and (
                abs(x - px) > self.drag_threshold or abs(y - py) > self.drag_threshold
            ):
                self.panning = True
            if self.panning:
                lx, ly = self._last_pos
                self.target.pan(x - lx, y - ly)
                self._last_pos = (x, y)
            return

        if self.edge_scroll_enabled:
            self.at_edge["left"] = x < self.edge_zone
            self.at_edge["right"] = self.target.viewport_width - x < self.edge_zone
            self.at_edge["top"] = y < self.edge_zone
            self.at_edge["bottom"] = self.target.viewport_height - y < self.edge_zone
        self.target.hover_at(x, y)

    def release(self, x: float, y: float, button: str = "left") -> None:
        px, py = self._press_pos
        is_click = abs(x - px) < self.drag_threshold and abs(y - py) < self.drag_threshold
        was_panning = self.panning and button != "middle"
        self.button = None
        self.panning = False
        if not is_click or was_panning:
            return
        if button == "left":
            if self.target.editor_mode:
                self.target.paint_at(x, y, clear=False)
            else:
                self.target.click_at(x, y)
        elif button == "right" and self.target.editor_mode:
            self.target.paint_at(x, y, clear=True)

    def wheel(self, x: float, y: float, delta_y: float) -> bool:
        """Positive ``delta_y`` (wheel down) zooms out around the cursor."""
        factor = WHEEL_ZOOM_OUT if delta_y > 0 else WHEEL_ZOOM_IN
        return self.target.zoom_at(x, y, factor)

    def leave(self) -> None:
        self.button = None
        self.panning = False
        self._reset_edges()

    def edge_scroll_delta(self) -> tuple[float, float]:
        dx = dy = 0.0
        if self.at_edge["left"]:
            dx = self.edge_speed
        if self.at_edge["right"]:
            dx = -self.edge_speed
        if self.at_edge["top"]:
            dy = self.edge_speed
        if self.at_edge["bottom"]:
            dy = -self.edge_speed
        return dx, dy

    def step(self) -> bool:
        """One animation frame of edge scrolling; True when the camera was panned."""
        if self.panning or self.button is not None:
            return False
        dx, dy = self.edge_scroll_delta()
        if dx == 0 and dy == 0:
            return False
        self.target.pan(dx, dy)
        return True
