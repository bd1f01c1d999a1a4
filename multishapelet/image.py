"""Images, masks and PSF models consumed by the fit algorithms.

"""

import numpy as np

from multishapelet.ellipses import Ellipse, EllipseCore
from multishapelet.errors import ConfigurationError
from multishapelet.footprint import Box

# bit assigned to each named mask plane
MASK_PLANES = {
    "BAD": 0,
    "SAT": 1,
    "INTRP": 2,
    "CR": 3,
    "EDGE": 4,
    "DETECTED": 5,
    "SUSPECT": 7,
    "NO_DATA": 8,
}


def get_plane_bitmask(names):
    """Return the bitmask with the bits of the named mask planes set.

    Raises
    ------
    ConfigurationError
        If a plane name is unknown.

    """
    bitmask = 0
    for name in names:
        try:
            bitmask |= 1 << MASK_PLANES[name]
        except KeyError:
            raise ConfigurationError(f"unknown mask plane {name!r}") from None
    return bitmask


class MaskedImage:
    """Image with mask and variance planes.

    Parameters
    ----------
    image : np.ndarray
        Pixel values, indexed ``[y, x]``.
    mask : np.ndarray, optional
        Integer mask bits; defaults to all zero.
    variance : np.ndarray, optional
        Per-pixel variance; defaults to one.
    xy0 : tuple of int
        Position of pixel ``[0, 0]``.

    """

    def __init__(self, image, mask=None, variance=None, xy0=(0, 0)):
        self.image = np.asarray(image, dtype=float)
        shape = self.image.shape
        self.mask = (
            np.zeros(shape, dtype=np.int32) if mask is None else np.asarray(mask)
        )
        self.variance = (
            np.ones(shape) if variance is None else np.asarray(variance, dtype=float)
        )
        if self.mask.shape != shape or self.variance.shape != shape:
            raise ValueError("image, mask and variance planes differ in shape")
        self.xy0 = (int(xy0[0]), int(xy0[1]))

    @property
    def bbox(self):
        return Box.from_shape(self.image.shape, self.xy0)

    def compute_moments(self, footprint, center):
        """Unweighted second moments of the image over a footprint.

        Negative pixels are ignored.  Used as the observed shape when
        none is supplied with a detection.

        """
        footprint = footprint.clipped_to(self.bbox)
        values = np.clip(footprint.flatten(self.image, self.xy0), 0, None)
        x, y = footprint.get_coordinates()
        dx = x - center[0]
        dy = y - center[1]
        total = values.sum()
        if not total > 0:
            raise ValueError("no positive flux in footprint")
        return EllipseCore.from_quadrupole(
            (values * dx * dx).sum() / total,
            (values * dy * dy).sum() / total,
            (values * dx * dy).sum() / total,
        )


class ImagePsf:
    """PSF given by a fixed kernel image with odd dimensions, centered on
    its middle pixel."""

    def __init__(self, kernel):
        kernel = np.asarray(kernel, dtype=float)
        if kernel.ndim != 2 or not all(n % 2 == 1 for n in kernel.shape):
            raise ValueError(f"kernel must be 2D with odd sides, got {kernel.shape}")
        self._kernel = kernel / kernel.sum()

    def compute_image(self, position=None):
        """Return a normalized copy of the kernel at ``position``."""
        return self._kernel.copy()


class GaussianPsf(ImagePsf):
    """Elliptical Gaussian PSF sampled on a square kernel.

    Parameters
    ----------
    core : multishapelet.ellipses.EllipseCore
        1-sigma ellipse of the Gaussian.
    size : int
        Side of the kernel in pixels; must be odd.

    """

    def __init__(self, core, size=21):
        half = size // 2
        y, x = np.mgrid[-half : half + 1, -half : half + 1].astype(float)
        transform = Ellipse(core).get_grid_transform()
        xt = transform[0, 0] * x + transform[0, 1] * y
        yt = transform[1, 0] * x + transform[1, 1] * y
        super().__init__(np.exp(-0.5 * (xt**2 + yt**2)))
        self.core = core


class Exposure:
    """A masked image together with an optional PSF model."""

    def __init__(self, masked_image, psf=None):
        self.masked_image = masked_image
        self.psf = psf

    def has_psf(self):
        return self.psf is not None
