from math import log

import numpy as np
import pytest

from multishapelet.ellipses import EllipseCore
from multishapelet.errors import ConfigurationError
from multishapelet.multigauss import (
    MultiGaussianComponent,
    MultiGaussianList,
    MultiGaussianRegistry,
)

_profiles = ["gaussian", "exp", "ser2", "ser3", "dev"]


def test_registry_names():
    assert MultiGaussianRegistry.names() == sorted(_profiles)


def test_unknown_profile():
    with pytest.raises(ConfigurationError, match="nosuch"):
        MultiGaussianRegistry.lookup("nosuch")


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        MultiGaussianRegistry._profiles["nosuch"] = MultiGaussianList()


@pytest.mark.parametrize("name", _profiles)
def test_profiles_normalized(name):
    components = MultiGaussianRegistry.lookup(name)
    assert len(components) > 0
    assert components.total_flux == pytest.approx(1.0)
    assert all(c.radius > 0 for c in components)


@pytest.mark.parametrize("name", _profiles)
def test_half_light_radius(name):
    # fraction of the flux of a circular profile inside its reference
    # circle
    components = MultiGaussianRegistry.lookup(name)
    enclosed = sum(c.flux * (1.0 - np.exp(-0.5 / c.radius**2)) for c in components)
    assert enclosed == pytest.approx(0.5, abs=0.05)


def test_gaussian_half_light_exact():
    components = MultiGaussianRegistry.lookup("gaussian")
    assert components.get_moment_factor() == pytest.approx(1.0 / (2.0 * log(2.0)))
    enclosed = 1.0 - np.exp(-0.5 / components[0].radius ** 2)
    assert enclosed == pytest.approx(0.5)


def test_from_moments():
    components = MultiGaussianList.from_moments([2.0, 6.0], [4.0, 1.0])
    assert components == (
        MultiGaussianComponent(0.25, 2.0),
        MultiGaussianComponent(0.75, 1.0),
    )
    raw = MultiGaussianList.from_moments([2.0, 6.0], [4.0, 1.0], normalize=False)
    assert raw.total_flux == 8.0
    assert raw.get_moment_factor() == pytest.approx((2.0 * 4.0 + 6.0) / 8.0)
    with pytest.raises(ValueError):
        MultiGaussianList.from_moments([1.0], [1.0, 2.0])


def test_invalid_components():
    with pytest.raises(ValueError):
        MultiGaussianComponent(1.0, -1.0)
    with pytest.raises(TypeError):
        MultiGaussianList([(1.0, 1.0)])
    with pytest.raises(ZeroDivisionError):
        MultiGaussianList([MultiGaussianComponent(0.0, 1.0)]).normalize()


@pytest.mark.parametrize("name", ["gaussian", "exp", "dev"])
def test_shapelets_flux(name):
    components = MultiGaussianRegistry.lookup(name)
    core = EllipseCore.from_axes(3.0, 2.0, 0.4)
    function = components.make_shapelets(core, (1.0, 2.0), flux=50.0)
    assert len(function) == len(components)
    assert function.integrate() == pytest.approx(50.0)


def test_convolved_shapelets():
    components = MultiGaussianRegistry.lookup("exp")
    psf = MultiGaussianList(
        [MultiGaussianComponent(1.0, 1.0), MultiGaussianComponent(0.2, 2.0)]
    )
    core = EllipseCore.from_axes(3.0, 2.0, 0.4)
    psf_core = EllipseCore(0.1, 0.0, 1.5)
    function = components.make_shapelets(core, flux=10.0).convolve(
        psf.make_shapelets(psf_core)
    )
    assert len(function) == len(components) * len(psf)
    assert function.integrate() == pytest.approx(10.0)
    # the moments of a convolution add
    expected = components.get_moment_factor() * np.array(
        core.get_quadrupole()
    ) + psf.get_moment_factor() * np.array(psf_core.get_quadrupole())
    moments = sum(
        e.integrate() * np.array(e.ellipse.core.get_quadrupole()) for e in function
    ) / function.integrate()
    np.testing.assert_allclose(moments, expected)
