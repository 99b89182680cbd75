from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable, Iterable, List, Mapping, MutableMapping, Optional

from .assets import AssetLoader
from .borders import (
    BorderSet,
    HighlightMask,
    ProvinceBorderCache,
    country_borders,
    paint_highlight_mask,
    render_border_raster,
)
from .camera import CameraController
from .compositor import CompositorPipeline, RenderScheduler, prepare_rivers, prepare_terrain, prepare_water
from .config import MapConfig
from .editor import MapEditor, load_country_table, load_ownership
from .errors import MutationError
from .interaction import PointerController
from .labels import (
    LabelAnchor,
    LabelLayoutEngine,
    LabelPlacementJob,
    LabelPlacer,
    MeasureFn,
    PlacedLabel,
    composite_patch,
    zoom_band,
)
from .political import CountryDisplay, PoliticalMap, build_political
from .provinces import Province, ProvinceIndex, load_definitions
from .raster import PixelRaster

LogFn = Optional[Callable[[str], None]]

PULSE_COLOR = (255, 255, 240)
PULSE_PERIOD_MS = 1500.0
PULSE_REST_OPACITY = 0.7
HOVER_OPACITY = 0.35


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


def pulse_opacity(elapsed_ms: float) -> float:
    progress = (elapsed_ms % PULSE_PERIOD_MS) / PULSE_PERIOD_MS
    return math.sin(progress * math.pi) * 0.4 + 0.3


class SequenceGate:
    """Hands out increasing sequence numbers and rejects results older than the
    newest one already applied for the same key."""

    def __init__(self) -> None:
        self._issued = 0
        self._applied: Dict[Hashable, int] = {}

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    @property
    def latest(self) -> int:
        return self._issued

    def applied(self, key: Hashable = None) -> int:
        return self._applied.get(key, 0)

    def accept(self, seq: int, key: Hashable = None) -> bool:
        if seq < self._applied.get(key, 0):
            return False
        self._applied[key] = seq
        return True


class MapSession:
    """Owns one map: province index, ownership, derived layers, camera and overlay.

    Full-raster work (political tint, country borders) runs on ownership
    change; label placement is queued as batched jobs pumped by ``tick``.
    """

    def __init__(
        self,
        index: ProvinceIndex,
        countries: MutableMapping[str, CountryDisplay],
        ownership: MutableMapping[str, str] | None = None,
        *,
        viewport_width: int = 1280,
        viewport_height: int = 720,
        terrain: PixelRaster | None = None,
        rivers: PixelRaster | None = None,
        water: PixelRaster | None = None,
        initial_zoom: float = 2.0,
        min_zoom: float = 0.1,
        max_zoom: float = 15.0,
        opacities: Mapping[str, float] | None = None,
        political_alpha: int = 255,
        border_thickness: int = 1,
        label_batch_size: int = 5,
        jobs_per_tick: int = 1,
        drag_threshold: float = 5.0,
        font_path: str | None = None,
        measure: MeasureFn | None = None,
        on_select: Callable[[Optional[str]], None] | None = None,
        log_fn: LogFn = None,
    ) -> None:
        self.index = index
        self.countries = countries
        self.ownership: MutableMapping[str, str] = ownership if ownership is not None else {}
        self.map_width = index.width
        self.map_height = index.height
        self.political_alpha = political_alpha
        self.border_thickness = border_thickness
        self.label_batch_size = label_batch_size
        self.jobs_per_tick = max(1, int(jobs_per_tick))
        self.on_select = on_select
        self.log_fn = log_fn

        self.camera = CameraController(
            viewport_width,
            viewport_height,
            self.map_width,
            self.map_height,
            initial_zoom=initial_zoom,
            min_zoom=min_zoom,
            max_zoom=max_zoom,
        )
        self.compositor = CompositorPipeline(self.map_width, self.map_height, opacities=opacities)
        if terrain is not None:
            self.compositor.set_layer("terrain", prepare_terrain(terrain, index))
        if water is not None:
            self.compositor.set_layer("water", prepare_water(water, index))
        if rivers is not None:
            self.compositor.set_layer("rivers", prepare_rivers(rivers))

        self.border_cache = ProvinceBorderCache(index, log_fn=log_fn)
        self.placer = LabelPlacer(log_fn=log_fn)
        self.layout_engine = LabelLayoutEngine(measure=measure, font_path=font_path)
        self.editor = MapEditor(self.ownership, self.countries, index.province_at, log_fn=log_fn)
        self.pointer = PointerController(self, drag_threshold=drag_threshold)
        self.scheduler = RenderScheduler(self._draw)
        self.gate = SequenceGate()

        self.political: PoliticalMap | None = None
        self.country_border_set: BorderSet | None = None
        self.anchors: Dict[str, LabelAnchor] = {}
        self.placed_labels: List[PlacedLabel] = []
        self.label_jobs: Deque[LabelPlacementJob] = deque()
        self.frame: PixelRaster | None = None
        self.editor_mode = False

        self.selected: Province | None = None
        self.hovered: Province | None = None
        self.pulse_opacity = PULSE_REST_OPACITY
        self._pulse_start: float | None = None

        self._label_raster: PixelRaster | None = None
        self._overlay: PixelRaster | None = None
        self._painted: Dict[str, tuple[int, int, int, int]] = {}
        self._labels_dirty = True
        self._overlay_dirty = True
        self._label_band = zoom_band(self.camera.camera.zoom)

        self.ownership_changed(None)

    # ----------------------------
    # Loading
    # ----------------------------
    @classmethod
    def load(
        cls,
        config: MapConfig,
        *,
        measure: MeasureFn | None = None,
        log_fn: LogFn = None,
        **kwargs,
    ) -> MapSession:
        start = time.perf_counter()
        definitions = load_definitions(config.definitions)
        loader = AssetLoader(config.asset_paths(), config.map_width, config.map_height, log_fn=log_fn)
        rasters = loader.result()
        index = ProvinceIndex.build(rasters["provinces"], definitions)
        _log(log_fn, f"Province index built: {len(index)} provinces")
        countries = load_country_table(config.countries) if config.countries is not None else {}
        ownership = load_ownership(config.ownership) if config.ownership is not None else {}
        session = cls(
            index,
            countries,
            ownership,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            terrain=rasters.get("terrain"),
            rivers=rasters.get("rivers"),
            water=rasters.get("water"),
            initial_zoom=config.camera.initial_zoom,
            min_zoom=config.camera.min_zoom,
            max_zoom=config.camera.max_zoom,
            opacities=config.layers,
            political_alpha=config.political_alpha,
            border_thickness=config.border_thickness,
            label_batch_size=config.label_batch_size,
            drag_threshold=config.drag_threshold,
            font_path=config.font_path,
            measure=measure,
            log_fn=log_fn,
            **kwargs,
        )
        elapsed = (time.perf_counter() - start) * 1000
        _log(log_fn, f"Map session ready in {elapsed:.0f}ms")
        return session

    # ----------------------------
    # Camera
    # ----------------------------
    @property
    def viewport_width(self) -> int:
        return self.camera.viewport_width

    @property
    def viewport_height(self) -> int:
        return self.camera.viewport_height

    def _camera_moved(self) -> None:
        band = zoom_band(self.camera.camera.zoom)
        if band != self._label_band:
            self._label_band = band
            self._labels_dirty = True
            self._overlay_dirty = True
        self.scheduler.request()

    def pan(self, dx: float, dy: float) -> None:
        self.camera.pan(dx, dy)
        self._camera_moved()

    def zoom_at(self, sx: float, sy: float, factor: float) -> bool:
        changed = self.camera.zoom(sx, sy, factor)
        if changed:
            self._camera_moved()
        return changed

    def resize(self, width: int, height: int) -> None:
        self.camera.resize(width, height)
        self._camera_moved()

    def reset_camera(self) -> None:
        self.camera.reset()
        self._camera_moved()

    def map_point_from_screen(self, sx: float, sy: float) -> tuple[int, int]:
        return self.camera.screen_to_map(sx, sy)

    def province_at_screen(self, sx: float, sy: float) -> Province | None:
        return self.index.province_at(*self.camera.screen_to_map(sx, sy))

    # ----------------------------
    # Pointer callbacks
    # ----------------------------
    def click_at(self, sx: float, sy: float) -> None:
        province = self.province_at_screen(sx, sy)
        if province is None or not province.is_land:
            self.deselect()
            return
        self.select(province.id)

    def hover_at(self, sx: float, sy: float) -> None:
        province = self.province_at_screen(sx, sy)
        previous = self.hovered.id if self.hovered is not None else None
        current = province.id if province is not None else None
        if previous != current:
            self.hovered = province
            self._overlay_dirty = True
            self.scheduler.request()

    def paint_at(self, sx: float, sy: float, *, clear: bool = False) -> None:
        mx, my = self.camera.screen_to_map(sx, sy)
        province, affected = self.editor.paint(mx, my, clear=clear)
        if province is not None and affected:
            self.border_cache.invalidate([province.id])
            self.ownership_changed(affected)

    # ----------------------------
    # Selection
    # ----------------------------
    def select(self, province_id: str) -> None:
        province = self.index.by_id(province_id)
        if province is None:
            _log(self.log_fn, f"Select ignored: unknown province {province_id!r}")
            self.deselect()
            return
        self.selected = province
        self._pulse_start = None
        self.pulse_opacity = PULSE_REST_OPACITY
        self._overlay_dirty = True
        self.scheduler.request()
        if self.on_select is not None:
            self.on_select(self.ownership.get(province.id))

    def deselect(self) -> None:
        if self.selected is None:
            return
        self.selected = None
        self._pulse_start = None
        self.pulse_opacity = PULSE_REST_OPACITY
        self._overlay_dirty = True
        self.scheduler.request()
        if self.on_select is not None:
            self.on_select(None)

    def set_editor_mode(self, enabled: bool) -> None:
        self.editor_mode = bool(enabled)
        self._overlay_dirty = True
        self.scheduler.request()

    # ----------------------------
    # Ownership
    # ----------------------------
    def set_province_owner(self, province_id: str, country_id: str | None) -> set[str]:
        province = self.index.by_id(province_id)
        if province is None:
            raise MutationError(f"Unknown province {province_id!r}")
        affected = self.editor.assign(province, country_id)
        if affected:
            self.border_cache.invalidate([province_id])
            self.ownership_changed(affected)
        return affected

    def create_country(self, country_id: str, name: str, color: str) -> set[str]:
        affected = self.editor.create_country(country_id, name, color)
        if affected:
            self.ownership_changed(affected)
        return affected

    def recolor_country(self, country_id: str, color: str) -> set[str]:
        affected = self.editor.recolor_country(country_id, color)
        if affected:
            self.ownership_changed(affected)
        return affected

    def rename_country(self, country_id: str, name: str) -> set[str]:
        # Names only reach the label overlay.
        affected = self.editor.rename_country(country_id, name)
        if affected:
            self._labels_dirty = True
            self._overlay_dirty = True
            self.scheduler.request()
        return affected

    def delete_country(self, country_id: str) -> set[str]:
        affected = self.editor.delete_country(country_id)
        if affected:
            self.ownership_changed(affected)
        return affected

    def ownership_changed(self, country_ids: Iterable[str] | None = None) -> None:
        """Rebuild ownership-derived layers; ``None`` recomputes every country."""
        seq = self.gate.issue()
        political = build_political(
            self.index, self.ownership, self.countries, alpha=self.political_alpha, log_fn=self.log_fn
        )
        self.political = political
        self.compositor.set_layer("political", political.raster)
        self.apply_country_borders(seq, country_borders(political.raster, log_fn=self.log_fn))

        if country_ids is None:
            # Earlier jobs are fully superseded.
            self.label_jobs.clear()
            targets = list(dict.fromkeys(list(political.country_ids) + list(self.anchors)))
        else:
            targets = list(dict.fromkeys(country_ids))
        if targets:
            self.label_jobs.append(
                LabelPlacementJob(seq, self.placer, political, targets, batch_size=self.label_batch_size)
            )
        self._labels_dirty = True
        self._overlay_dirty = True
        self.scheduler.request()

    def apply_country_borders(self, seq: int, borders: BorderSet) -> bool:
        if not self.gate.accept(seq, "borders"):
            _log(self.log_fn, f"Discarded stale country borders (seq {seq})")
            return False
        self.country_border_set = borders
        self.compositor.set_layer(
            "borders", render_border_raster(borders, thickness=self.border_thickness)
        )
        return True

    def apply_label_results(self, seq: int, results: Mapping[str, LabelAnchor | None]) -> int:
        """Merge finished placements; entries older than the newest applied one per country are dropped."""
        applied = 0
        for cid, anchor in results.items():
            if not self.gate.accept(seq, ("label", cid)):
                continue
            if anchor is None:
                self.anchors.pop(cid, None)
            else:
                self.anchors[cid] = anchor
            applied += 1
        if applied:
            self._labels_dirty = True
            self._overlay_dirty = True
            self.scheduler.request()
        if applied < len(results):
            _log(self.log_fn, f"Discarded {len(results) - applied} stale label placements (seq {seq})")
        return applied

    def pump_labels(self, batches: int | None = None) -> bool:
        """Run up to ``batches`` placement batches; True when no job is left."""
        budget = self.jobs_per_tick if batches is None else batches
        while self.label_jobs and budget > 0:
            job = self.label_jobs[0]
            budget -= 1
            if job.step():
                self.label_jobs.popleft()
                self.apply_label_results(job.seq, job.results)
        return not self.label_jobs

    def finish_labels(self) -> None:
        while self.label_jobs:
            job = self.label_jobs.popleft()
            self.apply_label_results(job.seq, job.run())

    # ----------------------------
    # Frame loop
    # ----------------------------
    def tick(self, now: float | None = None) -> bool:
        """Advance one animation frame; returns True when a frame was drawn."""
        now = time.monotonic() if now is None else now
        if self.pointer.step():
            self._camera_moved()
        self.pump_labels()
        if self.selected is not None and not self.editor_mode:
            if self._pulse_start is None:
                self._pulse_start = now
            self.pulse_opacity = pulse_opacity((now - self._pulse_start) * 1000.0)
            self._overlay_dirty = True
            self.scheduler.request()
        return self.scheduler.flush()

    def render(self) -> PixelRaster:
        self.scheduler.request()
        self.scheduler.flush()
        assert self.frame is not None
        return self.frame

    def _relayout_labels(self) -> None:
        political = self.political
        names = {cid: c.name for cid, c in self.countries.items()}
        sizes = political.pixel_counts if political is not None else {}
        self.placed_labels = self.layout_engine.layout(self.anchors, sizes, names, self.camera.camera.zoom)
        raster = PixelRaster(self.map_width, self.map_height)
        self.layout_engine.draw(raster, self.placed_labels)
        self._label_raster = raster
        self._overlay = raster.copy()
        self._painted = {}
        self._labels_dirty = False
        self.compositor.set_layer("overlay", self._overlay)

    def _highlights(self) -> list[tuple[HighlightMask, float]]:
        found = []
        if self.hovered is not None and self.hovered.is_land:
            found.append((self.hovered.id, HOVER_OPACITY))
        if self.selected is not None and not self.editor_mode:
            found.append((self.selected.id, self.pulse_opacity))
        result = []
        for province_id, opacity in found:
            highlight = self.border_cache.highlight(province_id)
            if highlight is not None:
                result.append((highlight, opacity))
        return result

    def _refresh_highlights(self) -> None:
        """Rewrite only the boxes of the old and new highlights; labels stay on top."""
        overlay = self._overlay
        labels = self._label_raster
        highlights = self._highlights()
        boxes = list(self._painted.values()) + [h.box for h, _ in highlights]
        for x, y, w, h in dict.fromkeys(boxes):
            region = labels.read_region(x, y, w, h)
            hits = [(hl, op) for hl, op in highlights if _boxes_touch(hl.box, (x, y, w, h))]
            if hits:
                patch = PixelRaster(region.width, region.height)
                for highlight, opacity in hits:
                    paint_highlight_mask(patch, highlight, rgb=PULSE_COLOR, opacity=opacity, origin=(x, y))
                composite_patch(patch, region.data, 0, 0)
                region = patch
            overlay.write_region(x, y, region)
        self._painted = {h.province_id: h.box for h, _ in highlights}

    def _draw(self) -> None:
        if self._labels_dirty or self._overlay is None:
            self._relayout_labels()
            self._refresh_highlights()
        elif self._overlay_dirty:
            self._refresh_highlights()
        self._overlay_dirty = False
        cam = self.camera
        self.frame = self.compositor.render(cam.camera, cam.viewport_width, cam.viewport_height)


def _boxes_touch(a: tuple[int, int, int, int], b: tuple[int, int, int, int]) -> bool:
    return a[0] < b[0] + b[2] and b[0] < a[0] + a[2] and a[1] < b[1] + b[3] and b[1] < a[1] + a[3]
