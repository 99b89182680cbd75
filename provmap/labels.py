from __future__ import annotations

import math
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont
from scipy import ndimage as ndi

from .political import PoliticalMap
from .raster import PixelRaster

LogFn = Optional[Callable[[str], None]]
MeasureFn = Callable[[str, int], float]

# (shorter bbox side upper bound, cell size in pixels)
CELL_SIZE_BUCKETS = ((100, 10), (250, 20), (500, 30), (1000, 40))
LARGEST_CELL_SIZE = 50

DEFAULT_BATCH_SIZE = 5

BASE_FONT_SIZE = 16.0
FONT_SIZE_SPAN = 32.0
MIN_FONT_SIZE = 14.0
MAX_FONT_SIZE = 56.0
BASE_LETTER_SPACING = 4.0
LETTER_SPACING_SPAN = 12.0
BOX_EXTRA_WIDTH = 40.0
BOX_EXTRA_HEIGHT = 25.0
LABEL_PADDING = 25.0

# (zoom below, minimum territory size shown)
ZOOM_CULL_RULES = ((0.5, 100), (1.0, 30), (2.0, 10))
ZOOM_BAND_EDGES = (0.5, 1.0, 2.0, 3.0)

TEXT_FILL = (255, 255, 255, 255)
TEXT_STROKE = (0, 0, 0, 255)


def _log(log_fn: LogFn, msg: str) -> None:
    if log_fn is not None:
        log_fn(msg)


@dataclass(frozen=True)
class LabelAnchor:
    country_id: str
    x: float
    y: float


@dataclass(frozen=True)
class GridRect:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


EMPTY_RECT = GridRect(0, 0, 0, 0)


# ----------------------------
# Largest inscribed rectangle
# ----------------------------
def largest_rectangle_in_histogram(heights: Sequence[int]) -> GridRect:
    """Monotonic-stack sweep; returned rect has y=0 and spans ``height`` rows."""
    stack: List[int] = []
    best = EMPTY_RECT
    n = len(heights)
    for i in range(n + 1):
        h = 0 if i == n else heights[i]
        while stack and h < heights[stack[-1]]:
            height = heights[stack.pop()]
            left = stack[-1] + 1 if stack else 0
            width = i - left
            if height * width > best.area:
                best = GridRect(x=left, y=0, width=width, height=height)
        stack.append(i)
    return best


def largest_rectangle(grid: np.ndarray) -> GridRect:
    """Largest all-True axis-aligned rectangle of a (rows, cols) boolean grid.

    The first rectangle reaching the maximum area (top row first) wins.
    """
    grid = np.asarray(grid, dtype=bool)
    if grid.ndim != 2 or grid.size == 0:
        return EMPTY_RECT
    rows, cols = grid.shape
    heights = [0] * cols
    best = EMPTY_RECT
    for row in range(rows):
        line = grid[row]
        for col in range(cols):
            heights[col] = heights[col] + 1 if line[col] else 0
        rect = largest_rectangle_in_histogram(heights)
        if rect.area > best.area:
            best = GridRect(x=rect.x, y=row - rect.height + 1, width=rect.width, height=rect.height)
    return best


def cell_size_for(span: int) -> int:
    for bound, cell in CELL_SIZE_BUCKETS:
        if span < bound:
            return cell
    return LARGEST_CELL_SIZE


def occupancy_grid(
    owners: np.ndarray,
    label: int,
    bbox: tuple[int, int, int, int],
) -> tuple[np.ndarray, int]:
    """Down-sampled occupancy over an inclusive (min_x, min_y, max_x, max_y) box.

    Each cell is sampled at its center, clipped to the box.
    """
    min_x, min_y, max_x, max_y = bbox
    width = max_x - min_x
    height = max_y - min_y
    cell = cell_size_for(min(width, height))
    grid_w = math.ceil(width / cell)
    grid_h = math.ceil(height / cell)
    half = cell // 2
    xs = np.minimum(min_x + np.arange(grid_w) * cell + half, max_x)
    ys = np.minimum(min_y + np.arange(grid_h) * cell + half, max_y)
    grid = owners[ys[:, None], xs[None, :]] == label
    return grid, cell


def place_label(
    owners: np.ndarray,
    label: int,
    country_id: str,
    box: tuple[slice, slice] | None,
) -> LabelAnchor | None:
    if box is None:
        return None
    ys, xs = box
    min_x, max_x = xs.start, xs.stop - 1
    min_y, max_y = ys.start, ys.stop - 1
    if min_x >= max_x or min_y >= max_y:
        return None
    grid, cell = occupancy_grid(owners, label, (min_x, min_y, max_x, max_y))
    rect = largest_rectangle(grid)
    if rect.area == 0:
        return None
    cx = min_x + rect.x * cell + rect.width * cell / 2
    cy = min_y + rect.y * cell + rect.height * cell / 2
    return LabelAnchor(country_id=country_id, x=float(cx), y=float(cy))


class LabelPlacer:
    def __init__(self, *, log_fn: LogFn = None) -> None:
        self.log_fn = log_fn

    def iter_anchors(
        self,
        political: PoliticalMap,
        country_ids: Iterable[str] | None = None,
    ) -> Iterator[tuple[str, LabelAnchor | None]]:
        owners = political.owners
        if owners.size == 0:
            targets = list(country_ids) if country_ids is not None else list(political.country_ids)
            for cid in targets:
                yield cid, None
            return
        # One pass for every country's bounding box.
        boxes = ndi.find_objects(owners, max_label=len(political.country_ids))
        targets = list(country_ids) if country_ids is not None else list(political.country_ids)
        for cid in targets:
            label = political.label_of(cid)
            if label is None:
                yield cid, None
                continue
            yield cid, place_label(owners, label, cid, boxes[label - 1])

    def place_all(
        self,
        political: PoliticalMap,
        country_ids: Iterable[str] | None = None,
    ) -> Dict[str, LabelAnchor]:
        start = time.perf_counter()
        anchors = {cid: anchor for cid, anchor in self.iter_anchors(political, country_ids) if anchor is not None}
        elapsed = (time.perf_counter() - start) * 1000
        _log(self.log_fn, f"Cached {len(anchors)} country label positions in {elapsed:.0f}ms")
        return anchors


class LabelPlacementJob:
    """Label placement broken into batches; ``step()`` runs one batch.

    ``results`` maps every processed country to its anchor or None, so the
    caller can drop anchors of countries that lost all their land.
    """

    def __init__(
        self,
        seq: int,
        placer: LabelPlacer,
        political: PoliticalMap,
        country_ids: Iterable[str] | None = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.seq = seq
        self.batch_size = batch_size
        self.results: Dict[str, LabelAnchor | None] = {}
        self.done = False
        self._iter = placer.iter_anchors(political, country_ids)

    def step(self) -> bool:
        if self.done:
            return True
        for _ in range(self.batch_size):
            try:
                cid, anchor = next(self._iter)
            except StopIteration:
                self.done = True
                break
            self.results[cid] = anchor
        return self.done

    def run(self) -> Dict[str, LabelAnchor | None]:
        while not self.step():
            pass
        return self.results

    @property
    def anchors(self) -> Dict[str, LabelAnchor]:
        return {cid: a for cid, a in self.results.items() if a is not None}


# ----------------------------
# Layout
# ----------------------------
@dataclass(frozen=True)
class PlacedLabel:
    country_id: str
    text: str
    x: float
    y: float
    font_size: float
    letter_spacing: float
    width: float
    height: float
    size: int

    def box(self, padding: float = 0.0) -> tuple[float, float, float, float]:
        half_w = self.width / 2 + padding / 2
        half_h = self.height / 2 + padding / 2
        return (self.x - half_w, self.y - half_h, self.x + half_w, self.y + half_h)


def boxes_overlap(a: tuple[float, float, float, float], b: tuple[float, float, float, float]) -> bool:
    return a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]


def zoom_band(zoom: float) -> int:
    """Bucket of zoom levels inside which label layout does not change."""
    for idx, edge in enumerate(ZOOM_BAND_EDGES[:3]):
        if zoom < edge:
            return idx
    return 3 if zoom <= ZOOM_BAND_EDGES[3] else 4


def zoom_font_multiplier(zoom: float) -> float:
    if zoom < 0.5:
        return 2.0
    if zoom < 1.0:
        return 1.5
    if zoom > 3.0:
        return 0.8
    return 1.0


def visible_at_zoom(size: int, zoom: float) -> bool:
    for below, min_size in ZOOM_CULL_RULES:
        if zoom < below and size < min_size:
            return False
    return True


def font_size_for(ratio: float, zoom: float) -> float:
    size = (BASE_FONT_SIZE + ratio * FONT_SIZE_SPAN) * zoom_font_multiplier(zoom)
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, size))


@lru_cache(maxsize=64)
def load_label_font(size: int, path: str | None = None) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    candidates = [path] if path else []
    candidates += ["DejaVuSans-Bold.ttf", "DejaVuSans.ttf", "Arial Bold.ttf", "arialbd.ttf"]
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default()


def pillow_measure(font_path: str | None = None) -> MeasureFn:
    def measure(text: str, font_size: int) -> float:
        font = load_label_font(int(font_size), font_path)
        return float(font.getlength(text))

    return measure


class LabelLayoutEngine:
    """Sizes country labels by territory size and zoom, then resolves overlaps."""

    def __init__(
        self,
        *,
        measure: MeasureFn | None = None,
        font_path: str | None = None,
        padding: float = LABEL_PADDING,
    ) -> None:
        self.font_path = font_path
        self.measure = measure or pillow_measure(font_path)
        self.padding = padding

    def candidates(
        self,
        anchors: Mapping[str, LabelAnchor],
        sizes: Mapping[str, int],
        names: Mapping[str, str],
        zoom: float,
    ) -> List[PlacedLabel]:
        values = [int(v) for v in sizes.values()]
        if not values:
            return []
        max_size = max(values)
        min_size = min(values)
        out: List[PlacedLabel] = []
        for cid, anchor in anchors.items():
            name = names.get(cid)
            if name is None:
                continue
            size = int(sizes.get(cid, 0))
            if not visible_at_zoom(size, zoom):
                continue
            ratio = 1.0 if max_size == min_size else (size - min_size) / (max_size - min_size)
            font_size = font_size_for(ratio, zoom)
            spacing = BASE_LETTER_SPACING + ratio * LETTER_SPACING_SPAN
            text = name.upper()
            text_width = self.measure(text, int(round(font_size))) + spacing * max(len(text) - 1, 0)
            out.append(
                PlacedLabel(
                    country_id=cid,
                    text=text,
                    x=anchor.x,
                    y=anchor.y,
                    font_size=font_size,
                    letter_spacing=spacing,
                    width=text_width + BOX_EXTRA_WIDTH,
                    height=font_size + BOX_EXTRA_HEIGHT,
                    size=size,
                )
            )
        return out

    def resolve(self, labels: Iterable[PlacedLabel]) -> List[PlacedLabel]:
        """Greedy acceptance, larger territories first."""
        ordered = sorted(labels, key=lambda lb: (-lb.size, lb.country_id))
        drawn: List[PlacedLabel] = []
        drawn_boxes: List[tuple[float, float, float, float]] = []
        for label in ordered:
            box = label.box(self.padding)
            if any(boxes_overlap(box, other) for other in drawn_boxes):
                continue
            drawn.append(label)
            drawn_boxes.append(box)
        return drawn

    def layout(
        self,
        anchors: Mapping[str, LabelAnchor],
        sizes: Mapping[str, int],
        names: Mapping[str, str],
        zoom: float,
    ) -> List[PlacedLabel]:
        return self.resolve(self.candidates(anchors, sizes, names, zoom))

    def draw(self, raster: PixelRaster, labels: Sequence[PlacedLabel]) -> None:
        for label in labels:
            self._draw_one(raster, label)

    def _draw_one(self, raster: PixelRaster, label: PlacedLabel) -> None:
        font_px = int(round(label.font_size))
        font = load_label_font(font_px, self.font_path)
        stroke = max(1, font_px // 10)
        widths = [float(font.getlength(ch)) for ch in label.text]
        total = sum(widths) + label.letter_spacing * max(len(widths) - 1, 0)

        pad = stroke + 2
        patch_w = int(math.ceil(total)) + pad * 2
        patch_h = int(math.ceil(font_px * 1.4)) + pad * 2
        patch = Image.new("RGBA", (patch_w, patch_h), (0, 0, 0, 0))
        draw = ImageDraw.Draw(patch)
        cursor = float(pad)
        for ch, w in zip(label.text, widths):
            try:
                draw.text(
                    (cursor, pad),
                    ch,
                    font=font,
                    fill=TEXT_FILL,
                    stroke_width=stroke,
                    stroke_fill=TEXT_STROKE,
                )
            except TypeError:
                draw.text((cursor + 1, pad + 1), ch, font=font, fill=TEXT_STROKE)
                draw.text((cursor, pad), ch, font=font, fill=TEXT_FILL)
            cursor += w + label.letter_spacing

        x0 = int(round(label.x - patch_w / 2))
        y0 = int(round(label.y - patch_h / 2))
        composite_patch(raster, np.array(patch, dtype=np.uint8), x0, y0)


def composite_patch(raster: PixelRaster, patch: np.ndarray, x0: int, y0: int) -> None:
    """Source-over an RGBA patch onto ``raster`` at (x0, y0), clipped."""
    ph, pw = patch.shape[:2]
    dx0 = max(0, x0)
    dy0 = max(0, y0)
    dx1 = min(raster.width, x0 + pw)
    dy1 = min(raster.height, y0 + ph)
    if dx1 <= dx0 or dy1 <= dy0:
        return
    src = patch[dy0 - y0 : dy1 - y0, dx0 - x0 : dx1 - x0].astype(np.float32) / 255.0
    dst = raster.data[dy0:dy1, dx0:dx1].astype(np.float32) / 255.0
    sa = src[:, :, 3:4]
    da = dst[:, :, 3:4]
    out_a = sa + da * (1.0 - sa)
    safe = np.where(out_a > 0, out_a, 1.0)
    out_rgb = (src[:, :, :3] * sa + dst[:, :, :3] * da * (1.0 - sa)) / safe
    out = np.concatenate([out_rgb, out_a], axis=2)
    raster.data[dy0:dy1, dx0:dx1] = np.clip(out * 255.0 + 0.5, 0, 255).astype(np.uint8)
