import itertools
import unittest

import numpy as np

from provmap.labels import (
    GridRect,
    LabelPlacementJob,
    LabelPlacer,
    cell_size_for,
    largest_rectangle,
    largest_rectangle_in_histogram,
    place_label,
)
from provmap.political import build_political

from map_fixtures import countries, make_index, three_provinces


def _brute_force_area(grid):
    rows, cols = grid.shape
    best = 0
    for y0, y1 in itertools.combinations_with_replacement(range(rows), 2):
        for x0, x1 in itertools.combinations_with_replacement(range(cols), 2):
            if grid[y0 : y1 + 1, x0 : x1 + 1].all():
                best = max(best, (y1 - y0 + 1) * (x1 - x0 + 1))
    return best


class LargestRectangleTests(unittest.TestCase):
    def test_histogram(self):
        rect = largest_rectangle_in_histogram([2, 1, 5, 6, 2, 3])
        self.assertEqual((rect.x, rect.width, rect.height), (2, 2, 5))
        self.assertEqual(rect.area, 10)

    def test_five_by_five_block(self):
        grid = np.zeros((5, 5), dtype=bool)
        grid[1:3, 1:4] = True
        rect = largest_rectangle(grid)
        self.assertEqual(rect, GridRect(x=1, y=1, width=3, height=2))
        self.assertEqual(rect.area, 6)

    def test_matches_brute_force(self):
        rng = np.random.default_rng(11)
        for _ in range(40):
            shape = tuple(int(v) for v in rng.integers(1, 7, size=2))
            grid = rng.random(shape) < 0.65
            rect = largest_rectangle(grid)
            self.assertEqual(rect.area, _brute_force_area(grid))
            if rect.area:
                self.assertTrue(grid[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width].all())

    def test_first_maximum_wins(self):
        grid = np.array([[1, 1, 0, 1, 1]], dtype=bool)
        self.assertEqual(largest_rectangle(grid), GridRect(x=0, y=0, width=2, height=1))

    def test_empty_grid(self):
        self.assertEqual(largest_rectangle(np.zeros((3, 3), dtype=bool)).area, 0)
        self.assertEqual(largest_rectangle(np.zeros((0, 0), dtype=bool)).area, 0)

    def test_cell_size_buckets(self):
        self.assertEqual(cell_size_for(99), 10)
        self.assertEqual(cell_size_for(100), 20)
        self.assertEqual(cell_size_for(499), 30)
        self.assertEqual(cell_size_for(999), 40)
        self.assertEqual(cell_size_for(1000), 50)


class PlacementTests(unittest.TestCase):
    def test_anchor_at_rectangle_center(self):
        owners = np.zeros((60, 60), dtype=np.int32)
        owners[10:50, 10:50] = 1
        anchor = place_label(owners, 1, "AAA", (slice(10, 50), slice(10, 50)))
        self.assertIsNotNone(anchor)
        self.assertEqual(anchor.country_id, "AAA")
        self.assertAlmostEqual(anchor.x, 30.0)
        self.assertAlmostEqual(anchor.y, 30.0)
        self.assertEqual(owners[int(anchor.y), int(anchor.x)], 1)

    def test_degenerate_box_has_no_anchor(self):
        owners = np.zeros((5, 5), dtype=np.int32)
        owners[2, 1:4] = 1
        self.assertIsNone(place_label(owners, 1, "AAA", (slice(2, 3), slice(1, 4))))
        self.assertIsNone(place_label(owners, 1, "AAA", None))

    def _political(self):
        grid = [[0] * 30 + [1] * 30 + [2] * 30 for _ in range(40)]
        index = make_index(grid, three_provinces())
        ownership = {"P1": "AAA", "P2": "BBB", "P3": "CCC"}
        return build_political(index, ownership, countries())

    def test_place_all(self):
        anchors = LabelPlacer().place_all(self._political())
        self.assertEqual(sorted(anchors), ["AAA", "BBB", "CCC"])
        self.assertLess(anchors["AAA"].x, anchors["BBB"].x)
        self.assertLess(anchors["BBB"].x, anchors["CCC"].x)

    def test_unknown_country_yields_none(self):
        results = dict(LabelPlacer().iter_anchors(self._political(), ["AAA", "ZZZ"]))
        self.assertIsNotNone(results["AAA"])
        self.assertIsNone(results["ZZZ"])

    def test_job_runs_in_batches(self):
        job = LabelPlacementJob(1, LabelPlacer(), self._political(), batch_size=2)
        self.assertFalse(job.step())
        self.assertEqual(len(job.results), 2)
        self.assertTrue(job.step())
        self.assertEqual(len(job.results), 3)
        self.assertTrue(job.step())
        self.assertEqual(sorted(job.anchors), ["AAA", "BBB", "CCC"])

    def test_job_with_exact_batches_finishes_on_next_step(self):
        job = LabelPlacementJob(1, LabelPlacer(), self._political(), ["AAA", "BBB"], batch_size=2)
        self.assertFalse(job.step())
        self.assertTrue(job.step())
        self.assertEqual(job.run(), job.results)

    def test_job_batch_size_must_be_positive(self):
        with self.assertRaises(ValueError):
            LabelPlacementJob(1, LabelPlacer(), self._political(), batch_size=0)


if __name__ == "__main__":
    unittest.main()
