import unittest

from provmap.interaction import PointerController


class FakeTarget:
    def __init__(self, editor_mode=False):
        self.viewport_width = 400
        self.viewport_height = 300
        self.editor_mode = editor_mode
        self.calls = []

    def pan(self, dx, dy):
        self.calls.append(("pan", dx, dy))

    def zoom_at(self, sx, sy, factor):
        self.calls.append(("zoom", sx, sy, factor))
        return True

    def click_at(self, sx, sy):
        self.calls.append(("click", sx, sy))

    def paint_at(self, sx, sy, *, clear=False):
        self.calls.append(("paint", sx, sy, clear))

    def hover_at(self, sx, sy):
        self.calls.append(("hover", sx, sy))


class PointerControllerTests(unittest.TestCase):
    def setUp(self):
        self.target = FakeTarget()
        self.pointer = PointerController(self.target)

    def _kinds(self):
        return [call[0] for call in self.target.calls]

    def test_small_movement_is_a_click(self):
        self.pointer.press(100, 100)
        self.pointer.move(103, 102)
        self.pointer.release(103, 102)
        self.assertEqual(self.target.calls, [("click", 103, 102)])

    def test_drag_beyond_threshold_pans_without_click(self):
        self.pointer.press(100, 100)
        self.pointer.move(110, 100)
        self.pointer.move(120, 95)
        self.pointer.release(120, 95)
        self.assertEqual(self.target.calls, [("pan", 10, 0), ("pan", 10, -5)])

    def test_right_click_clears_only_in_editor_mode(self):
        self.pointer.press(50, 50, "right")
        self.pointer.release(50, 50, "right")
        self.assertEqual(self.target.calls, [])
        self.target.editor_mode = True
        self.pointer.press(50, 50, "right")
        self.pointer.release(50, 50, "right")
        self.assertEqual(self.target.calls, [("paint", 50, 50, True)])

    def test_left_click_paints_in_editor_mode(self):
        self.target.editor_mode = True
        self.pointer.press(20, 30)
        self.pointer.release(20, 30)
        self.assertEqual(self.target.calls, [("paint", 20, 30, False)])

    def test_wheel_zoom_factors(self):
        self.pointer.wheel(10, 20, -120)
        self.pointer.wheel(10, 20, 120)
        self.assertEqual(self.target.calls, [("zoom", 10, 20, 1.05), ("zoom", 10, 20, 0.95)])

    def test_hover_and_edge_scroll(self):
        self.pointer.move(5, 150)
        self.assertEqual(self.target.calls, [("hover", 5, 150)])
        self.assertTrue(self.pointer.step())
        self.assertEqual(self.target.calls[-1], ("pan", 8.0, 0.0))
        self.pointer.move(395, 295)
        self.assertEqual(self.pointer.edge_scroll_delta(), (-8.0, -8.0))
        self.pointer.move(200, 150)
        self.assertFalse(self.pointer.step())

    def test_leave_stops_edge_scroll(self):
        self.pointer.move(2, 2)
        self.pointer.leave()
        self.assertFalse(self.pointer.step())

    def test_no_edge_scroll_while_button_held(self):
        self.pointer.move(2, 150)
        self.pointer.press(2, 150)
        self.assertFalse(self.pointer.step())

    def test_middle_button_pans_immediately(self):
        self.pointer.press(100, 100, "middle")
        self.pointer.move(102, 101)
        self.pointer.release(102, 101, "middle")
        self.assertEqual(self._kinds(), ["pan"])

    def test_unknown_button(self):
        with self.assertRaises(ValueError):
            self.pointer.press(0, 0, "thumb")


if __name__ == "__main__":
    unittest.main()
