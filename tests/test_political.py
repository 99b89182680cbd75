import unittest

from provmap.political import boost_saturation, build_political
from provmap.provinces import OCEAN_ID, Province

from map_fixtures import BLUE, GREEN, RED, SEA, countries, make_index


class PoliticalMapTests(unittest.TestCase):
    def setUp(self):
        provinces = [
            Province("P1", "West", RED),
            Province("P2", "Middle", GREEN),
            Province("P3", "East", BLUE),
            Province("S1", "Sea", SEA, is_water=True),
        ]
        grid = [
            [0, 0, 1, 2],
            [0, 0, 1, 2],
            [3, 3, 3, 3],
        ]
        self.index = make_index(grid, provinces)
        self.countries = countries()

    def test_owned_land_takes_boosted_owner_color(self):
        ownership = {"P1": "AAA", "P2": "AAA", "P3": "BBB", "S1": "BBB"}
        pol = build_political(self.index, ownership, self.countries, alpha=102)
        expected = boost_saturation(self.countries["AAA"].color) + (102,)
        self.assertEqual(pol.raster.get_pixel(0, 0), expected)
        self.assertEqual(pol.raster.get_pixel(2, 1), expected)
        # water is never tinted, even when listed in the ownership map
        self.assertEqual(pol.raster.get_pixel(0, 2)[3], 0)

    def test_owner_labels_and_counts(self):
        ownership = {"P1": "AAA", "P3": "BBB"}
        pol = build_political(self.index, ownership, self.countries)
        self.assertEqual(pol.country_ids, ["AAA", "BBB"])
        self.assertEqual(pol.owners[0].tolist(), [1, 1, 0, 2])
        self.assertEqual(pol.pixel_counts, {"AAA": 4, "BBB": 2})
        self.assertEqual(pol.label_of("BBB"), 2)
        self.assertIsNone(pol.label_of("CCC"))

    def test_unowned_and_unknown_country_stay_transparent(self):
        pol = build_political(self.index, {"P2": "ZZZ"}, self.countries)
        self.assertFalse(pol.raster.alpha.any())
        self.assertEqual(pol.country_ids, [])

    def test_ocean_sentinel_is_not_land(self):
        index = make_index([[0, 1]], [Province(OCEAN_ID, "Ocean", SEA), Province("P1", "Land", RED)])
        pol = build_political(index, {OCEAN_ID: "AAA", "P1": "AAA"}, self.countries)
        self.assertEqual(pol.raster.get_pixel(0, 0)[3], 0)
        self.assertEqual(pol.pixel_counts["AAA"], 1)

    def test_boost_saturation(self):
        grey = (128, 128, 128)
        self.assertEqual(boost_saturation(grey), grey)
        r, g, b = boost_saturation((200, 100, 100))
        self.assertGreaterEqual(r, 200)
        self.assertLessEqual(g, 100)


if __name__ == "__main__":
    unittest.main()
