"""Pixel regions: inclusive boxes and span-based footprints.

Images are indexed as ``array[y - y0, x - x0]`` where ``(x0, y0)`` is
the position of the first pixel.

"""

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
from scipy import ndimage


@dataclass(frozen=True)
class Box:
    """Rectangle of pixels with inclusive bounds."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @classmethod
    def from_shape(cls, shape, xy0=(0, 0)):
        """Box covering an array of the given ``(ny, nx)`` shape."""
        return cls(xy0[0], xy0[1], xy0[0] + shape[1] - 1, xy0[1] + shape[0] - 1)

    @property
    def width(self):
        return max(self.max_x - self.min_x + 1, 0)

    @property
    def height(self):
        return max(self.max_y - self.min_y + 1, 0)

    @property
    def area(self):
        return self.width * self.height

    def is_empty(self):
        return self.area == 0

    def grown(self, margin):
        return Box(
            self.min_x - margin,
            self.min_y - margin,
            self.max_x + margin,
            self.max_y + margin,
        )

    def clipped_to(self, other):
        return Box(
            max(self.min_x, other.min_x),
            max(self.min_y, other.min_y),
            min(self.max_x, other.max_x),
            min(self.max_y, other.max_y),
        )


class Span(NamedTuple):
    """Run of pixels ``x0..x1`` (inclusive) in row ``y``."""

    y: int
    x0: int
    x1: int

    @property
    def width(self):
        return self.x1 - self.x0 + 1


class Footprint:
    """Set of pixels stored as sorted, non-overlapping horizontal spans.

    Parameters
    ----------
    spans : iterable of Span or tuple
        ``(y, x0, x1)`` triples; empty spans are dropped.

    """

    def __init__(self, spans=()):
        self.spans = tuple(
            sorted(Span(*s) for s in spans if s[2] >= s[1])
        )

    @classmethod
    def from_box(cls, box):
        return cls(
            Span(y, box.min_x, box.max_x) for y in range(box.min_y, box.max_y + 1)
        )

    @classmethod
    def from_mask(cls, mask, xy0=(0, 0)):
        """Footprint of the ``True`` pixels of a boolean array."""
        mask = np.asarray(mask, dtype=bool)
        spans = []
        for row, values in enumerate(mask):
            padded = np.concatenate(([False], values, [False]))
            edges = np.flatnonzero(np.diff(padded.astype(np.int8)))
            for start, stop in zip(edges[::2], edges[1::2]):
                spans.append(
                    Span(row + xy0[1], start + xy0[0], stop - 1 + xy0[0])
                )
        return cls(spans)

    def __len__(self):
        return len(self.spans)

    def __repr__(self):
        return f"Footprint(area={self.area}, bbox={self.bbox})"

    @property
    def area(self):
        return sum(s.width for s in self.spans)

    @property
    def bbox(self):
        if not self.spans:
            return Box(0, 0, -1, -1)
        return Box(
            min(s.x0 for s in self.spans),
            self.spans[0].y,
            max(s.x1 for s in self.spans),
            self.spans[-1].y,
        )

    def to_mask(self, box=None):
        """Boolean array over ``box`` (default: the bounding box)."""
        box = self.bbox if box is None else box
        mask = np.zeros((box.height, box.width), dtype=bool)
        for s in self.spans:
            if box.min_y <= s.y <= box.max_y:
                x0 = max(s.x0, box.min_x)
                x1 = min(s.x1, box.max_x)
                if x1 >= x0:
                    mask[s.y - box.min_y, x0 - box.min_x : x1 - box.min_x + 1] = True
        return mask

    def grown(self, radius):
        """Footprint dilated by a disk of the given radius in pixels."""
        if radius <= 0 or not self.spans:
            return Footprint(self.spans)
        box = self.bbox.grown(radius)
        yy, xx = np.mgrid[-radius : radius + 1, -radius : radius + 1]
        disk = xx**2 + yy**2 <= radius**2
        grown = ndimage.binary_dilation(self.to_mask(box), structure=disk)
        return Footprint.from_mask(grown, (box.min_x, box.min_y))

    def clipped_to(self, box):
        return Footprint(
            Span(s.y, max(s.x0, box.min_x), min(s.x1, box.max_x))
            for s in self.spans
            if box.min_y <= s.y <= box.max_y
        )

    def intersected_with_mask(self, mask, bitmask, xy0=(0, 0)):
        """Drop the pixels where ``mask & bitmask`` is non-zero.

        Pixels outside the mask array are dropped as well.

        """
        if not self.spans:
            return Footprint()
        mask_box = Box.from_shape(np.shape(mask), xy0)
        box = self.bbox.clipped_to(mask_box)
        if box.is_empty():
            return Footprint()
        sub = np.asarray(mask)[
            box.min_y - xy0[1] : box.max_y - xy0[1] + 1,
            box.min_x - xy0[0] : box.max_x - xy0[0] + 1,
        ]
        good = self.to_mask(box) & ((sub & bitmask) == 0)
        return Footprint.from_mask(good, (box.min_x, box.min_y))

    def get_coordinates(self):
        """Return ``(x, y)`` arrays of pixel positions in span order."""
        if not self.spans:
            return np.empty(0), np.empty(0)
        x = np.concatenate([np.arange(s.x0, s.x1 + 1) for s in self.spans])
        y = np.concatenate([np.full(s.width, s.y) for s in self.spans])
        return x.astype(float), y.astype(float)

    def flatten(self, array, xy0=(0, 0)):
        """Values of ``array`` at the footprint pixels, in span order."""
        if not self.spans:
            return np.empty(0, dtype=np.asarray(array).dtype)
        return np.concatenate(
            [
                array[s.y - xy0[1], s.x0 - xy0[0] : s.x1 - xy0[0] + 1]
                for s in self.spans
            ]
        )
