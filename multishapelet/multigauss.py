"""Radial profiles approximated by sums of concentric Gaussians.

Each named profile in the registry is a list of components giving the
relative flux and the size of one Gaussian.  A component's radius is in
units of the half-light ellipse of the profile, i.e. a profile fit with
ellipse ``E`` places component ``k`` on ``E.scale(radius_k)``.

The Sersic approximations are the mixtures of Hogg & Lang (2013, PASP
125, 719), tabulated as amplitudes and variances in units of the
half-light radius squared.

"""

from dataclasses import dataclass
from math import log, pi, sqrt
from types import MappingProxyType

import numpy as np

from multishapelet.ellipses import Ellipse
from multishapelet.errors import ConfigurationError
from multishapelet.shapelets import MultiShapeletFunction, ShapeletFunction


@dataclass(frozen=True)
class MultiGaussianComponent:
    """One Gaussian of a mixture.

    Parameters
    ----------
    flux : float
        Flux of the component relative to the other components.
    radius : float
        Factor applied to the profile ellipse; 0 denotes a point.

    """

    flux: float
    radius: float

    def __post_init__(self):
        if self.radius < 0:
            raise ValueError(f"negative component radius {self.radius}")


class MultiGaussianList(tuple):
    """Ordered, immutable sequence of :class:`MultiGaussianComponent`."""

    def __new__(cls, components=()):
        components = tuple(components)
        for c in components:
            if not isinstance(c, MultiGaussianComponent):
                raise TypeError(f"{c!r} is not a MultiGaussianComponent")
        return super().__new__(cls, components)

    @classmethod
    def from_moments(cls, fluxes, variances, normalize=True):
        """Build a mixture from amplitudes and variances.

        Parameters
        ----------
        fluxes : array_like
            Component amplitudes.
        variances : array_like
            Component variances in units of the reference radius squared.
        normalize : bool, default: True
            Rescale the fluxes to sum to one.

        """
        fluxes = np.asarray(fluxes, dtype=float)
        variances = np.asarray(variances, dtype=float)
        if fluxes.shape != variances.shape:
            raise ValueError("fluxes and variances differ in length")
        result = cls(
            MultiGaussianComponent(float(f), sqrt(v))
            for f, v in zip(fluxes, variances)
        )
        return result.normalize() if normalize else result

    @property
    def total_flux(self):
        return sum(c.flux for c in self)

    def normalize(self):
        """Copy whose fluxes sum to one."""
        total = self.total_flux
        if total == 0:
            raise ZeroDivisionError("mixture has zero total flux")
        return MultiGaussianList(
            MultiGaussianComponent(c.flux / total, c.radius) for c in self
        )

    def get_moment_factor(self):
        """Ratio of the mixture's second moments to those of its
        reference ellipse, ``sum(f r^2) / sum(f)``."""
        return sum(c.flux * c.radius**2 for c in self) / self.total_flux

    def make_shapelets(self, core, center=(0.0, 0.0), flux=1.0):
        """Represent the mixture as zeroth-order shapelet functions.

        Parameters
        ----------
        core : multishapelet.ellipses.EllipseCore
            Reference ellipse of the profile.
        center : tuple of float
            Position of the profile.
        flux : float, default: 1.0
            Total flux of the returned function.

        Returns
        -------
        multishapelet.shapelets.MultiShapeletFunction

        """
        total = self.total_flux
        elements = [
            ShapeletFunction.from_gaussian(
                Ellipse(core.scale(c.radius), center), flux * c.flux / total
            )
            for c in self
        ]
        return MultiShapeletFunction(elements)


# Amplitudes and variances in units of the half-light radius squared
_SERSIC_TABLE = {
    "exp": (
        [5.99798, 4.33895, 1.17948, 0.223347, 0.0308197, 0.00235229],
        [1.50163, 0.460978, 0.139974, 0.039152, 0.00885129, 0.00120215],
    ),
    "ser2": (
        [5.41041, 5.36575, 3.14515, 1.31485, 0.406678, 0.0902769, 0.0114168],
        [3.37063, 0.732207, 0.188988, 0.0485424, 0.0114482, 0.00228187,
         0.000330023],
    ),
    "ser3": (
        [5.85922, 5.89892, 3.92624, 1.96084, 0.764378, 0.224729, 0.0369456],
        [5.19717, 0.85919, 0.180844, 0.0401082, 0.00869111, 0.00173002,
         0.00029187],
    ),
    "dev": (
        [5.60921, 5.72377, 4.46477, 2.83675, 1.51974, 0.686093, 0.240192,
         0.0426452],
        [8.40275, 1.33355, 0.287321, 0.0685146, 0.0169499, 0.00418865,
         0.00100242, 0.000223784],
    ),
}

# half-light radius of a unit Gaussian
_GAUSSIAN_HALF_LIGHT = sqrt(2.0 * log(2.0))


def _build_registry():
    table = {
        "gaussian": MultiGaussianList(
            [MultiGaussianComponent(1.0, 1.0 / _GAUSSIAN_HALF_LIGHT)]
        ),
    }
    for name, (fluxes, variances) in _SERSIC_TABLE.items():
        table[name] = MultiGaussianList.from_moments(fluxes, variances)
    return MappingProxyType(table)


class MultiGaussianRegistry:
    """Read-only lookup of named profile mixtures.

    The table is built once when the module is imported and never
    modified afterwards, so it can be read from any number of threads.

    """

    _profiles = _build_registry()

    @classmethod
    def lookup(cls, name):
        """Return the mixture registered under ``name``.

        Raises
        ------
        ConfigurationError
            If no profile of that name exists.

        """
        try:
            return cls._profiles[name]
        except KeyError:
            raise ConfigurationError(
                f"unknown profile {name!r}; expected one of {sorted(cls._profiles)}"
            ) from None

    @classmethod
    def names(cls):
        return sorted(cls._profiles)


def gaussian_norm(radius):
    """Integral of ``exp(-0.5 |T(p)|^2)`` for an ellipse of the given
    determinant radius."""
    return 2.0 * pi * radius**2
