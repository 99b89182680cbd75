import io
import unittest

import numpy as np
from PIL import Image

from provmap.camera import Camera
from provmap.compositor import (
    LAYER_ORDER,
    RIVER_COLOR,
    BlendMode,
    CompositorPipeline,
    RenderScheduler,
    prepare_rivers,
    prepare_terrain,
    prepare_water,
    render_frame_png,
)
from provmap.provinces import Province
from provmap.raster import PixelRaster

from map_fixtures import RED, SEA, make_index


def _solid(w, h, rgba):
    raster = PixelRaster(w, h)
    raster.fill(rgba)
    return raster


class CompositorTests(unittest.TestCase):
    def test_layer_order_is_fixed(self):
        self.assertEqual(LAYER_ORDER, ("terrain", "political", "water", "rivers", "borders", "overlay"))
        comp = CompositorPipeline(4, 4)
        comp.set_layer("overlay", _solid(4, 4, (0, 0, 0, 255)))
        comp.set_layer("terrain", _solid(4, 4, (0, 0, 0, 255)))
        self.assertEqual([layer.name for layer in comp.plan()], ["terrain", "overlay"])

    def test_later_layers_draw_on_top(self):
        comp = CompositorPipeline(2, 2, opacities={"terrain": 1.0, "borders": 1.0})
        comp.set_layer("terrain", _solid(2, 2, (255, 0, 0, 255)))
        borders = PixelRaster(2, 2)
        borders.set_pixel(0, 0, (0, 0, 255, 255))
        comp.set_layer("borders", borders)
        frame = comp.render_map()
        self.assertEqual(frame.get_pixel(0, 0), (0, 0, 255, 255))
        self.assertEqual(frame.get_pixel(1, 1), (255, 0, 0, 255))

    def test_opacity_blends_with_background(self):
        comp = CompositorPipeline(1, 1, background=(0, 0, 0, 255), opacities={"rivers": 0.5})
        comp.set_layer("rivers", _solid(1, 1, (200, 200, 200, 255)))
        self.assertEqual(comp.render_map().get_pixel(0, 0), (100, 100, 100, 255))

    def test_multiply_blend(self):
        comp = CompositorPipeline(
            1, 1, opacities={"terrain": 1.0, "political": 1.0}, blends={"political": "multiply"}
        )
        comp.set_layer("terrain", _solid(1, 1, (200, 100, 50, 255)))
        comp.set_layer("political", _solid(1, 1, (128, 255, 0, 255)))
        self.assertEqual(comp.layer("political").blend, BlendMode.MULTIPLY)
        r, g, b, a = comp.render_map().get_pixel(0, 0)
        self.assertEqual(a, 255)
        self.assertAlmostEqual(r, 100, delta=1)
        self.assertAlmostEqual(g, 100, delta=1)
        self.assertEqual(b, 0)

    def test_camera_transform_nearest_neighbor(self):
        comp = CompositorPipeline(2, 2, opacities={"terrain": 1.0})
        terrain = PixelRaster(2, 2)
        terrain.set_pixel(0, 0, (255, 0, 0, 255))
        terrain.set_pixel(1, 0, (0, 255, 0, 255))
        terrain.set_pixel(0, 1, (0, 0, 255, 255))
        terrain.set_pixel(1, 1, (255, 255, 255, 255))
        comp.set_layer("terrain", terrain)
        frame = comp.render(Camera(x=1.0, y=0.0, zoom=2.0), 6, 4)
        self.assertEqual(frame.get_pixel(0, 0)[3], 0)
        self.assertEqual(frame.get_pixel(1, 0), (255, 0, 0, 255))
        self.assertEqual(frame.get_pixel(2, 1), (255, 0, 0, 255))
        self.assertEqual(frame.get_pixel(3, 0), (0, 255, 0, 255))
        self.assertEqual(frame.get_pixel(4, 3), (255, 255, 255, 255))
        self.assertEqual(frame.get_pixel(5, 0)[3], 0)

    def test_hidden_and_missing_layers_skipped(self):
        comp = CompositorPipeline(2, 2)
        comp.set_layer("terrain", _solid(2, 2, (255, 0, 0, 255)))
        comp.layer("terrain").visible = False
        self.assertEqual(comp.plan(), [])
        self.assertFalse(comp.render_map().data.any())

    def test_set_layer_validation(self):
        comp = CompositorPipeline(2, 2)
        with self.assertRaises(KeyError):
            comp.set_layer("clouds", _solid(2, 2, (0, 0, 0, 255)))
        with self.assertRaises(ValueError):
            comp.set_layer("terrain", _solid(3, 2, (0, 0, 0, 255)))

    def test_render_frame_png(self):
        png = render_frame_png(_solid(3, 2, (1, 2, 3, 255)))
        with Image.open(io.BytesIO(png)) as img:
            self.assertEqual(img.size, (3, 2))


class LayerPreparationTests(unittest.TestCase):
    def setUp(self):
        provinces = [Province("P1", "Land", RED), Province("S1", "Sea", SEA, is_water=True)]
        self.index = make_index([[0, 1, 9]], provinces)

    def test_terrain_only_on_land(self):
        terrain = prepare_terrain(_solid(3, 1, (90, 90, 90, 255)), self.index)
        self.assertEqual(terrain.alpha.tolist(), [[255, 0, 0]])

    def test_water_hidden_on_land(self):
        water = prepare_water(_solid(3, 1, (0, 0, 90, 255)), self.index)
        self.assertEqual(water.alpha.tolist(), [[0, 255, 255]])

    def test_rivers_recolored_keep_alpha(self):
        rivers = PixelRaster(2, 1)
        rivers.set_pixel(1, 0, (255, 255, 255, 200))
        out = prepare_rivers(rivers)
        self.assertEqual(out.get_pixel(1, 0), RIVER_COLOR + (200,))
        self.assertEqual(out.get_pixel(0, 0)[3], 0)


class RenderSchedulerTests(unittest.TestCase):
    def test_requests_coalesce_into_one_frame(self):
        calls = []
        scheduler = RenderScheduler(lambda: calls.append(1))
        for _ in range(5):
            scheduler.request()
        self.assertTrue(scheduler.pending)
        self.assertTrue(scheduler.flush())
        self.assertFalse(scheduler.flush())
        self.assertEqual(len(calls), 1)
        self.assertEqual(scheduler.frames, 1)


if __name__ == "__main__":
    unittest.main()
