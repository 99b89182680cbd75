import unittest

from provmap.camera import CameraController


class CameraControllerTests(unittest.TestCase):
    def test_reset_fills_small_map_without_void(self):
        cam = CameraController(200, 200, 100, 100, initial_zoom=1.0, min_zoom=1.0)
        cam.reset()
        self.assertAlmostEqual(cam.camera.zoom, 2.0)
        self.assertAlmostEqual(cam.camera.x, 0.0)
        self.assertAlmostEqual(cam.camera.y, 0.0)

    def test_default_initial_zoom(self):
        cam = CameraController(400, 300, 2000, 1000)
        self.assertAlmostEqual(cam.camera.zoom, 2.0)

    def test_min_zoom_follows_viewport(self):
        cam = CameraController(400, 300, 1000, 500, min_zoom=0.1)
        self.assertAlmostEqual(cam.camera.min_zoom, 0.6)
        cam.resize(800, 300)
        self.assertAlmostEqual(cam.camera.min_zoom, 0.8)
        self.assertGreaterEqual(cam.camera.zoom, cam.camera.min_zoom)

    def test_clamp_is_idempotent(self):
        cam = CameraController(300, 200, 1000, 800)
        for dx, dy in [(500, 500), (-5000, 40), (12, -9000), (0, 0)]:
            cam.pan(dx, dy)
            before = cam.camera.snapshot()
            cam.clamp()
            self.assertEqual(cam.camera.snapshot(), before)

    def test_pan_cannot_expose_void(self):
        cam = CameraController(300, 200, 1000, 800, initial_zoom=1.0)
        cam.pan(10_000, 10_000)
        self.assertEqual((cam.camera.x, cam.camera.y), (0.0, 0.0))
        cam.pan(-10_000, -10_000)
        self.assertEqual(cam.camera.x, 300 - 1000)
        self.assertEqual(cam.camera.y, 200 - 800)

    def test_zoom_keeps_pivot_fixed(self):
        cam = CameraController(400, 300, 2000, 1500, initial_zoom=1.0)
        cam.pan(-300, -200)
        pivot = (150.0, 120.0)
        mx = (pivot[0] - cam.camera.x) / cam.camera.zoom
        my = (pivot[1] - cam.camera.y) / cam.camera.zoom
        self.assertTrue(cam.zoom(pivot[0], pivot[1], 1.05))
        self.assertAlmostEqual((pivot[0] - cam.camera.x) / cam.camera.zoom, mx)
        self.assertAlmostEqual((pivot[1] - cam.camera.y) / cam.camera.zoom, my)

    def test_zoom_clamped_to_same_value_is_noop(self):
        cam = CameraController(400, 300, 2000, 1500, initial_zoom=15.0)
        before = cam.camera.snapshot()
        self.assertFalse(cam.zoom_at(10, 10, 1.05))
        self.assertEqual(cam.camera.snapshot(), before)

    def test_zoom_respects_limits(self):
        cam = CameraController(400, 300, 2000, 1500, max_zoom=4.0)
        for _ in range(100):
            cam.zoom(200, 150, 1.05)
        self.assertAlmostEqual(cam.camera.zoom, 4.0)
        for _ in range(200):
            cam.zoom(200, 150, 0.95)
        self.assertAlmostEqual(cam.camera.zoom, cam.camera.min_zoom)

    def test_screen_to_map_floors(self):
        cam = CameraController(100, 100, 100, 100, initial_zoom=2.0, min_zoom=1.0)
        cam.camera.x = -10.0
        cam.camera.y = -10.0
        self.assertEqual(cam.screen_to_map(0, 0), (5, 5))
        self.assertEqual(cam.map_point_from_screen(13, 14), (11, 12))
        self.assertEqual(cam.screen_to_map(-11, -10), (-1, 0))
        self.assertEqual(cam.map_to_screen(1, 2), (-8.0, -6.0))

    def test_visible_map_rect(self):
        cam = CameraController(100, 50, 400, 400, initial_zoom=1.0)
        cam.pan(10_000, 10_000)
        self.assertEqual(cam.visible_map_rect(), (0, 0, 100, 50))

    def test_invalid_limits(self):
        with self.assertRaises(ValueError):
            CameraController(10, 10, 10, 10, min_zoom=2.0, max_zoom=1.0)


if __name__ == "__main__":
    unittest.main()
