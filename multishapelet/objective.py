"""Least-squares objective for PSF-convolved multi-Gaussian profiles.

"""

from abc import ABC, abstractmethod

import numpy as np

from multishapelet.deconv import deconv
from multishapelet.ellipses import Ellipse, EllipseCore
from multishapelet.errors import DeconvolutionError
from multishapelet.gaussian import ELLIPSE_SIZE, GaussianModelBuilder
from multishapelet.multigauss import (
    MultiGaussianComponent,
    MultiGaussianList,
    gaussian_norm,
)

# largest |eta| accepted, an axis ratio of about 1e13
MAX_SHEAR = 30.0

# delta-function PSF, used when no PSF is given
_POINT_PSF = MultiGaussianList([MultiGaussianComponent(1.0, 0.0)])


class Objective(ABC):
    """Residual function minimized by
    :class:`multishapelet.optimizer.HybridOptimizer`."""

    @property
    @abstractmethod
    def data_size(self) -> int:
        """Number of residuals."""

    @property
    @abstractmethod
    def parameter_size(self) -> int:
        """Number of nonlinear parameters."""

    @abstractmethod
    def compute_function(self, parameters: np.ndarray) -> np.ndarray:
        """Return the residual vector at ``parameters``."""

    @abstractmethod
    def compute_derivative(self, parameters: np.ndarray) -> np.ndarray:
        """Return the ``(data_size, parameter_size)`` Jacobian of the
        residuals at ``parameters``."""


class _Element:
    """One (profile component, PSF component) pair."""

    def __init__(self, component, psf_component, inputs, epsilon_factor):
        self.flux = component.flux * psf_component.flux
        self.radius2 = component.radius**2
        self.psf_radius2 = psf_component.radius**2
        self.builder = GaussianModelBuilder(inputs.x, inputs.y, epsilon_factor)


class MultiGaussianObjective(Objective):
    """Residuals of a multi-Gaussian profile convolved with a
    multi-Gaussian PSF.

    The nonlinear parameters are those of the profile's
    :class:`~multishapelet.ellipses.EllipseCore`, ``(e1, e2, radius)``;
    the profile is centered on the origin of the input coordinates.
    The total flux is solved for by linear least squares at every
    evaluation and made available as :attr:`amplitude`.

    Parameters
    ----------
    inputs : multishapelet.inputs.ModelInputHandler
        Pixel data, weights and coordinates.
    components : multishapelet.multigauss.MultiGaussianList
        Profile mixture.
    psf_components : multishapelet.multigauss.MultiGaussianList, optional
        PSF mixture; without it the profile is not convolved.
    psf_ellipse : multishapelet.ellipses.EllipseCore, optional
        Reference ellipse of the PSF mixture.
    epsilon_factor : float, default: 1.0
        Sparsity threshold factor passed to the model builders.

    """

    def __init__(
        self,
        inputs,
        components,
        psf_components=None,
        psf_ellipse=None,
        epsilon_factor=1.0,
    ):
        if psf_components is None:
            psf_components = _POINT_PSF
            psf_ellipse = EllipseCore(0.0, 0.0, 0.0)
        elif psf_ellipse is None:
            raise ValueError("psf_ellipse is required with psf_components")
        self._inputs = inputs
        self._psf_quadrupole = psf_ellipse.get_quadrupole_matrix()
        self._elements = [
            _Element(c, p, inputs, epsilon_factor)
            for c in components.normalize()
            for p in psf_components.normalize()
        ]
        self._model = np.empty(inputs.size)
        self._jacobian = np.empty((inputs.size, 3))
        self._amplitude = np.nan

    @property
    def data_size(self):
        return self._inputs.size

    @property
    def parameter_size(self):
        return 3

    @property
    def amplitude(self):
        """Flux solved for at the last evaluation."""
        return self._amplitude

    def get_amplitude(self):
        return self._amplitude

    def _compute_model(self, parameters, derivative):
        if not (parameters[2] > 0 and np.hypot(parameters[0], parameters[1]) < MAX_SHEAR):
            # outside the domain of valid ellipses
            self._model[...] = np.nan
            self._jacobian[...] = np.nan
            self._amplitude = np.nan
            return
        core = EllipseCore.from_parameters(parameters)
        quadrupole = core.get_quadrupole_matrix()
        if derivative:
            dquadrupole = core.get_quadrupole_jacobian()
            chain = np.zeros((ELLIPSE_SIZE, 3))
            dmodel = np.empty((self._inputs.size, 3))
            self._jacobian[...] = 0.0
        self._model[...] = 0.0
        for element in self._elements:
            q = element.radius2 * quadrupole + element.psf_radius2 * self._psf_quadrupole
            convolved = EllipseCore.from_quadrupole(q[0, 0], q[1, 1], q[0, 1])
            ellipse = Ellipse(convolved)
            weight = element.flux / gaussian_norm(convolved.radius)
            model = element.builder.compute_model(ellipse)
            self._model += weight * model
            if not derivative:
                continue
            chain[:3] = np.linalg.solve(
                convolved.get_quadrupole_jacobian(), element.radius2 * dquadrupole
            )
            element.builder.compute_derivative(dmodel, ellipse, chain, reuse_model=True)
            # the normalization depends on the convolved radius as well
            dweight = -2.0 * weight / convolved.radius * chain[2]
            self._jacobian += weight * dmodel + np.outer(model, dweight)
        if self._inputs.weights is not None:
            self._model *= self._inputs.weights
            if derivative:
                self._jacobian *= self._inputs.weights[:, np.newaxis]
        norm = self._model @ self._model
        if norm > 0 and np.isfinite(norm):
            self._amplitude = (self._model @ self._inputs.data) / norm
        else:
            self._amplitude = np.nan

    def compute_model(self, parameters):
        """Unit-flux weighted model at ``parameters`` (a copy)."""
        self._compute_model(parameters, derivative=False)
        return self._model.copy()

    def compute_function(self, parameters):
        self._compute_model(parameters, derivative=False)
        return self._inputs.data - self._amplitude * self._model

    def compute_derivative(self, parameters):
        self._compute_model(parameters, derivative=True)
        return -self._amplitude * self._jacobian

    @staticmethod
    def deconvolve(shape, psf_ellipse, components, psf_components):
        """Estimate the profile ellipse from an observed shape.

        Parameters
        ----------
        shape : multishapelet.ellipses.EllipseCore
            Moments ellipse of the observed, PSF-convolved source.
        psf_ellipse : multishapelet.ellipses.EllipseCore
            Reference ellipse of the PSF mixture.
        components, psf_components : MultiGaussianList
            Profile and PSF mixtures.

        Returns
        -------
        multishapelet.ellipses.EllipseCore
            Reference ellipse of the profile whose convolution with the
            PSF has the observed moments.

        Raises
        ------
        DeconvolutionError
            If the PSF moments are too large for the observed shape.

        """
        rxx, ryy, rxy, ierr = deconv(
            *shape.get_quadrupole(),
            *psf_ellipse.get_quadrupole(),
            components.get_moment_factor(),
            psf_components.get_moment_factor(),
        )
        if ierr:
            raise DeconvolutionError(
                f"cannot deconvolve PSF {psf_ellipse} from shape {shape}"
            )
        return EllipseCore.from_quadrupole(rxx, ryy, rxy)
