"""Flattened pixel data for a single source.

"""

import logging

import numpy as np

from multishapelet.footprint import Box, Footprint

logger = logging.getLogger(__name__)


def _as_footprint(region):
    if isinstance(region, Box):
        return Footprint.from_box(region)
    return region


class ModelInputHandler:
    """Pixel values, weights and coordinates of the pixels used in a fit.

    Use :meth:`from_image` or :meth:`from_masked_image` to construct.
    All arrays are in the span order of :attr:`footprint` and must be
    treated as read-only.

    Attributes
    ----------
    data : np.ndarray
        Pixel values, already multiplied by :attr:`weights` if present.
    weights : np.ndarray or None
        Inverse standard deviation of each pixel.
    x, y : np.ndarray
        Pixel positions relative to the source center.
    footprint : multishapelet.footprint.Footprint
        The pixels actually used.

    """

    def __init__(self, data, weights, x, y, footprint):
        if data.size == 0:
            raise ValueError("no pixels left to fit")
        self.data = data
        self.weights = weights
        self.x = x
        self.y = y
        self.footprint = footprint
        for array in (self.data, self.weights, self.x, self.y):
            if array is not None:
                array.setflags(write=False)

    @classmethod
    def from_image(cls, image, center, region, grow_footprint=0, xy0=(0, 0)):
        """Inputs from a plain image without weights.

        Parameters
        ----------
        image : np.ndarray
            Pixel values indexed ``[y - y0, x - x0]``.
        center : tuple of float
            Source position.
        region : Footprint or Box
            Pixels to use; clipped to the image bounds.
        grow_footprint : int, default: 0
            Dilate the region by this many pixels first.
        xy0 : tuple of int
            Position of ``image[0, 0]``.

        """
        image = np.asarray(image, dtype=float)
        footprint = (
            _as_footprint(region)
            .grown(grow_footprint)
            .clipped_to(Box.from_shape(image.shape, xy0))
        )
        x, y = footprint.get_coordinates()
        return cls(
            footprint.flatten(image, xy0),
            None,
            x - center[0],
            y - center[1],
            footprint,
        )

    @classmethod
    def from_masked_image(
        cls,
        masked_image,
        center,
        region,
        grow_footprint=0,
        bad_pixel_mask=0,
        use_pixel_weights=True,
    ):
        """Inputs from a masked image, weighted by inverse sigma.

        Parameters
        ----------
        masked_image : multishapelet.image.MaskedImage
            Image, mask and variance planes.
        center : tuple of float
            Source position.
        region : Footprint or Box
            Pixels to use.
        grow_footprint : int, default: 0
            Dilate the region by this many pixels first.
        bad_pixel_mask : int, default: 0
            Pixels with any of these mask bits set are excluded, as are
            pixels without a positive variance.
        use_pixel_weights : bool, default: True
            Weight each pixel by its own variance; otherwise all pixels
            get the weight of the mean variance.

        """
        xy0 = masked_image.xy0
        # pixels without a positive variance cannot be weighted
        unusable = ~(masked_image.variance > 0)
        footprint = (
            _as_footprint(region)
            .grown(grow_footprint)
            .clipped_to(masked_image.bbox)
            .intersected_with_mask(masked_image.mask, bad_pixel_mask, xy0)
            .intersected_with_mask(unusable, True, xy0)
        )
        data = footprint.flatten(masked_image.image, xy0)
        variance = footprint.flatten(masked_image.variance, xy0)
        if data.size and not use_pixel_weights:
            variance = np.full(variance.shape, variance.mean())
        weights = 1.0 / np.sqrt(variance)
        x, y = footprint.get_coordinates()
        logger.debug(
            "Fit region of %d pixels around (%g, %g)", data.size, *center
        )
        return cls(data * weights, weights, x - center[0], y - center[1], footprint)

    @property
    def size(self):
        return self.data.size
