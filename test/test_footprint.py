import unittest

import numpy as np

from multishapelet.footprint import Box, Footprint, Span


class BoxTest(unittest.TestCase):
    def testFromShape(self):
        box = Box.from_shape((4, 6), xy0=(10, 20))
        self.assertEqual(box, Box(10, 20, 15, 23))
        self.assertEqual((box.width, box.height, box.area), (6, 4, 24))

    def testClipAndGrow(self):
        box = Box(0, 0, 9, 9)
        self.assertEqual(box.grown(2), Box(-2, -2, 11, 11))
        self.assertEqual(box.clipped_to(Box(5, -3, 20, 4)), Box(5, 0, 9, 4))
        self.assertTrue(box.clipped_to(Box(20, 20, 30, 30)).is_empty())


class FootprintTest(unittest.TestCase):
    def setUp(self):
        self.mask = np.array(
            [
                [0, 1, 1, 0, 1],
                [0, 0, 0, 0, 0],
                [1, 1, 1, 1, 1],
            ],
            dtype=bool,
        )
        self.footprint = Footprint.from_mask(self.mask, xy0=(3, 7))

    def testSpans(self):
        self.assertEqual(
            self.footprint.spans,
            (Span(7, 4, 5), Span(7, 7, 7), Span(9, 3, 7)),
        )
        self.assertEqual(self.footprint.area, 8)
        self.assertEqual(self.footprint.bbox, Box(3, 7, 7, 9))

    def testMaskRoundTrip(self):
        np.testing.assert_array_equal(self.footprint.to_mask(), self.mask)

    def testCoordinatesAndFlatten(self):
        image = np.arange(15, dtype=float).reshape(3, 5)
        x, y = self.footprint.get_coordinates()
        np.testing.assert_array_equal(x, [4, 5, 7, 3, 4, 5, 6, 7])
        np.testing.assert_array_equal(y, [7, 7, 7, 9, 9, 9, 9, 9])
        values = self.footprint.flatten(image, xy0=(3, 7))
        np.testing.assert_array_equal(values, image[self.mask])

    def testGrown(self):
        grown = Footprint([(0, 0, 0)]).grown(2)
        self.assertEqual(grown.area, 13)
        self.assertEqual(grown.bbox, Box(-2, -2, 2, 2))
        self.assertEqual(self.footprint.grown(0).spans, self.footprint.spans)

    def testClipped(self):
        clipped = self.footprint.clipped_to(Box(5, 0, 6, 8))
        self.assertEqual(clipped.spans, (Span(7, 5, 5),))

    def testIntersectedWithMask(self):
        footprint = Footprint.from_box(Box(0, 0, 3, 2))
        mask = np.zeros((3, 3), dtype=np.int32)
        mask[1, 1] = 0b01
        mask[2, 0] = 0b10
        good = footprint.intersected_with_mask(mask, 0b01)
        # column 3 lies outside the mask array
        self.assertEqual(good.area, 8)
        self.assertFalse(good.to_mask(Box(0, 0, 2, 2))[1, 1])
        self.assertTrue(good.to_mask(Box(0, 0, 2, 2))[2, 0])

    def testEmpty(self):
        empty = Footprint()
        self.assertEqual(empty.area, 0)
        self.assertTrue(empty.bbox.is_empty())
        x, y = empty.get_coordinates()
        self.assertEqual(x.size, 0)
        self.assertEqual(empty.grown(3).area, 0)
