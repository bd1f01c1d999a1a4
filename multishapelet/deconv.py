"""Moment-level convolution and deconvolution of Gaussian mixtures."""

from numba import njit, float64, int64, types


@njit(
    types.Tuple((float64, float64, float64, int64))(
        float64, float64, float64, float64, float64, float64, float64, float64
    )
)
def deconv(fxx, fyy, fxy, cxx, cyy, cxy, profile_factor, psf_factor):
    """Deconvolve the second moments of a PSF mixture from the observed
    moments of a source.

    The moments of a mixture convolved with a PSF mixture are
    ``profile_factor * Q + psf_factor * C``, where ``Q`` and ``C`` are
    the moments of the reference ellipses of the profile and the PSF
    and each factor is the flux-weighted mean squared radius of its
    mixture.  This function solves for ``Q``.

    Parameters
    ----------
    fxx, fyy, fxy : float
        Observed (convolved) moments.
    cxx, cyy, cxy : float
        Moments of the PSF ellipse.
    profile_factor : float
        Moment factor of the profile mixture.
    psf_factor : float
        Moment factor of the PSF mixture.

    Returns
    -------
    rxx : float
        Deconvolved xx moment.
    ryy : float
        Deconvolved yy moment.
    rxy : float
        Deconvolved xy moment.
    ierr : int
        1 if the deconvolved moments are not positive definite, else 0.

    """
    rxx = (fxx - psf_factor * cxx) / profile_factor
    ryy = (fyy - psf_factor * cyy) / profile_factor
    rxy = (fxy - psf_factor * cxy) / profile_factor
    ierr = 0
    if not (rxx > 0.0 and ryy > 0.0 and rxx * ryy - rxy * rxy > 0.0):
        ierr = 1
    return rxx, ryy, rxy, ierr


@njit(
    types.UniTuple(float64, 3)(
        float64, float64, float64, float64, float64, float64, float64, float64
    )
)
def conv(rxx, ryy, rxy, cxx, cyy, cxy, profile_factor, psf_factor):
    """Inverse of :func:`deconv`: moments of the convolved mixture."""
    return (
        profile_factor * rxx + psf_factor * cxx,
        profile_factor * ryy + psf_factor * cyy,
        profile_factor * rxy + psf_factor * cxy,
    )
