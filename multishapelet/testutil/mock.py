"""
Synthetic images and sources for use in testing.
"""
import numpy as np

from multishapelet.algorithm import Detection
from multishapelet.ellipses import Ellipse
from multishapelet.fitprofile import FitProfileModel
from multishapelet.footprint import Box, Footprint
from multishapelet.image import Exposure, ImagePsf, MaskedImage


def gaussian_image(shape, core, center, flux=1.0):
    """Sample an elliptical Gaussian at the pixel centers.

    Args:
        shape : tuple
            ``(ny, nx)`` of the image.
        core : multishapelet.ellipses.EllipseCore
            1-sigma ellipse of the Gaussian.
        center : tuple
            ``(x, y)`` position of the Gaussian.
        flux : float, default : 1.0
            Integral of the Gaussian over the plane.
    """
    y, x = np.indices(shape, dtype=float)
    transform = Ellipse(core, center).get_grid_transform()
    xt = transform[0, 0] * x + transform[0, 1] * y + transform[0, 2]
    yt = transform[1, 0] * x + transform[1, 1] * y + transform[1, 2]
    norm = 2.0 * np.pi * core.radius**2
    return flux / norm * np.exp(-0.5 * (xt**2 + yt**2))


def profile_image(shape, profile, core, center, flux=1.0, psf_model=None):
    """Sample a registry profile, optionally convolved with a PSF model."""
    model = FitProfileModel(profile, flux, np.nan, core)
    if psf_model is None:
        function = model.as_multi_shapelet(center)
    else:
        function = model.convolved(psf_model, center)
    y, x = np.indices(shape, dtype=float)
    return function.evaluate(x, y)


def make_exposure(image, psf=None, variance=1.0, mask=None):
    """Wrap an array in an exposure with constant variance.

    ``psf`` may be a kernel array, a PSF object or None.
    """
    image = np.asarray(image, dtype=float)
    if psf is not None and not hasattr(psf, "compute_image"):
        psf = ImagePsf(psf)
    masked_image = MaskedImage(image, mask, np.full(image.shape, float(variance)))
    return Exposure(masked_image, psf)


def whole_image_detection(image, center, shape=None):
    """Detection whose footprint covers the whole image."""
    footprint = Footprint.from_box(Box.from_shape(np.shape(image)))
    return Detection(center, footprint, shape)
