from collections import defaultdict
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from dataclasses import is_dataclass
from pathlib import Path
import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from types import UnionType
from typing import get_args
from typing import get_origin
from typing import get_type_hints
from typing import Container
from typing import Type
from typing import TypeVar
from warnings import warn

T = TypeVar("T")


def _is_dataclass(_type: Type[T], /) -> bool:
    """Remove ``TypeGuard`` from is_dataclass.

    see: https://github.com/python/mypy/issues/14941

    """
    return is_dataclass(_type)


# map of types that maybe converted to match the expected type
_compat_types: defaultdict[type, set[type]] = defaultdict(set, {int: {float}})


def assert_t(key: str, value, *types: type):
    """Assert value is of one of the types

    ``key`` is the TOML configuration key the value is associated to.
    It is used to generate a meaningful error message.

    """
    assert len(types) > 0, "need at least one type to assert"
    msg = f"{key}: type({value!r}) "
    if len(types) > 1:
        msg += f"∉ {{{', '.join(map(str, types))}}}"
    else:
        msg += f"!= {types[0]}"

    try:
        assert isinstance(value, types), msg
    except AssertionError:
        # NOTE: check if types are compatible
        if not _compat_types[type(value)].intersection(types):
            raise


def validate_nested(key: str, value, origin_t, args):
    """Validate nested types allowed in TOML

    Lists are validated element by element, with the index appended to
    the key; dictionaries are validated value by value.

    """
    # NOTE: only support TOML types
    if issubclass(origin_t, list):
        assert_t(key, value, list)
        # NOTE: unspecified type => Any; can't check
        if not args:
            return
        for i, v in enumerate(value):
            validate_types(f"{key}[{i}]", v, args[0])
    elif issubclass(origin_t, dict):
        assert_t(key, value, dict)
        for k, v in value.items():
            validate_types(f"{key}[{k!r}]", v, args[1])
    else:
        warn(f"{key}: unsupported type {origin_t[args]}, cannot validate")


def validate_types(key: str, value, type_: type):
    """Validate types, dispatch on generic or POD types"""
    match get_origin(type_):
        case type() as origin_t if issubclass(origin_t, Container):
            validate_nested(key, value, origin_t, get_args(type_))
        case type() as origin_t if issubclass(origin_t, UnionType):
            assert_t(key, value, *get_args(type_))
        case type():
            warn(f"{key}: unsupported type {type_}, cannot validate")
        case None:
            # NOTE: plain old data types, and nested sections
            assert_t(key, value, type_)


@dataclass(frozen=True)
class _Validate:
    def __post_init__(self):
        hints = get_type_hints(self)
        for f in fields(self):
            value = getattr(self, f.name)
            field_t = hints[f.name]
            if _is_dataclass(field_t) and isinstance(value, dict):
                # NOTE: have to do it like this since inherited
                # dataclasses are frozen
                super().__setattr__(f.name, field_t(**value))
        for f in fields(self):
            validate_types(f.name, getattr(self, f.name), hints[f.name])

    def _check(self, condition: bool, key: str, requirement: str):
        if not condition:
            raise ValueError(
                f"{key}: {getattr(self, key)!r} does not satisfy {requirement}"
            )


_bad_mask_planes = ["EDGE", "SAT", "BAD", "NO_DATA"]


@dataclass(frozen=True)
class OptimizerConf(_Validate):
    """Control parameters of the Levenberg-Marquardt optimizer."""

    tau: float = 1e-3
    """Initial damping, relative to the largest diagonal element of
    J^T J."""

    g_tol: float = 1e-6
    """Stop successfully when the infinity norm of the gradient J^T f
    falls below this value."""

    min_step: float = 1e-8
    """Stop successfully when the norm of the step falls below
    min_step * (|x| + min_step)."""

    max_iter: int = 200
    """Maximum number of accepted steps before giving up."""

    max_rejections: int = 10
    """Maximum number of consecutive rejected trial steps."""

    use_cholesky: bool = True
    """Solve the damped normal equations by Cholesky decomposition;
    otherwise solve the augmented least-squares problem with an SVD,
    which is slower but tolerates near-singular Jacobians.

    """

    def __post_init__(self):
        super().__post_init__()
        self._check(self.tau > 0, "tau", "> 0")
        self._check(self.g_tol >= 0, "g_tol", ">= 0")
        self._check(self.min_step >= 0, "min_step", ">= 0")
        self._check(self.max_iter > 0, "max_iter", "> 0")
        self._check(self.max_rejections >= 0, "max_rejections", ">= 0")


@dataclass(frozen=True)
class FitPsfConf(_Validate):
    """Double-shapelet model of the PSF."""

    name: str = "multishapelet_psf"
    """Prefix of the output columns."""

    inner_order: int = 2
    """Shapelet order of the inner component."""

    outer_order: int = 1
    """Shapelet order of the outer component."""

    radius_ratio: float = 2.0
    """Radius of the outer component relative to the inner one."""

    peak_ratio: float = 0.1
    """Initial peak amplitude of the outer component relative to the
    inner one."""

    initial_radius: float = 1.5
    """Radius (pixels) of the circle the inner ellipse fit starts from."""

    optimizer: OptimizerConf = field(
        default_factory=lambda: OptimizerConf(tau=1e-6)
    )
    """Settings of the nonlinear fit of the ellipse."""

    def __post_init__(self):
        super().__post_init__()
        self._check(self.inner_order >= 0, "inner_order", ">= 0")
        self._check(self.outer_order >= 0, "outer_order", ">= 0")
        self._check(self.radius_ratio > 0, "radius_ratio", "> 0")
        self._check(self.peak_ratio >= 0, "peak_ratio", ">= 0")
        self._check(self.initial_radius > 0, "initial_radius", "> 0")


@dataclass(frozen=True)
class FitProfileConf(_Validate):
    """Multi-Gaussian galaxy profile fit."""

    name: str = "multishapelet_exp"
    """Prefix of the output columns."""

    profile: str = "exp"
    """Name of the profile in the multi-Gaussian registry."""

    psf_name: str = "multishapelet_psf"
    """Name of the PSF fit this fit depends on."""

    deconvolve_shape: bool = True
    """Start the fit from the observed shape with the PSF deconvolved;
    otherwise start from the observed shape itself."""

    use_pixel_weights: bool = False
    """Weight each pixel by its own variance rather than by the mean
    variance of the fit region."""

    grow_footprint: int = 5
    """Number of pixels to grow the detection footprint by."""

    bad_mask_planes: list[str] = field(
        default_factory=lambda: list(_bad_mask_planes)
    )
    """Mask planes that exclude a pixel from the fit."""

    epsilon_factor: float = 1.0
    """Derivative terms smaller than epsilon_factor * eps times the
    largest term are skipped. Use 0 to evaluate every term."""

    optimizer: OptimizerConf = field(
        default_factory=lambda: OptimizerConf(tau=1e-6)
    )
    """Settings of the nonlinear fit."""

    def __post_init__(self):
        super().__post_init__()
        self._check(self.grow_footprint >= 0, "grow_footprint", ">= 0")
        self._check(self.epsilon_factor >= 0, "epsilon_factor", ">= 0")


@dataclass(frozen=True)
class FitComboConf(_Validate):
    """Linear combination of the exponential and de Vaucouleur fits."""

    name: str = "multishapelet_combo"
    """Prefix of the output columns."""

    psf_name: str = "multishapelet_psf"
    """Name of the PSF fit this fit depends on."""

    exp_name: str = "multishapelet_exp"
    """Name of the exponential profile fit."""

    dev_name: str = "multishapelet_dev"
    """Name of the de Vaucouleur profile fit."""

    use_pixel_weights: bool = False
    """Weight each pixel by its own variance rather than by the mean
    variance of the fit region."""

    grow_footprint: int = 5
    """Number of pixels to grow the detection footprint by."""

    bad_mask_planes: list[str] = field(
        default_factory=lambda: list(_bad_mask_planes)
    )
    """Mask planes that exclude a pixel from the fit."""

    def __post_init__(self):
        super().__post_init__()
        self._check(self.grow_footprint >= 0, "grow_footprint", ">= 0")


@dataclass(frozen=True)
class Conf(_Validate):
    psf: FitPsfConf = field(default_factory=FitPsfConf)
    exp: FitProfileConf = field(default_factory=FitProfileConf)
    dev: FitProfileConf = field(
        default_factory=lambda: FitProfileConf(
            name="multishapelet_dev", profile="dev"
        )
    )
    combo: FitComboConf = field(default_factory=FitComboConf)


def normalize_none_values(val):
    if isinstance(val, dict):
        return {k: normalize_none_values(v) for k, v in val.items()}
    elif isinstance(val, list):
        return [normalize_none_values(v) for v in val]
    elif isinstance(val, str) and val.strip().lower() == "none":
        return None
    else:
        return val


def read_conf(path: str | Path | None):
    """Read the ``[tool.multishapelet]`` table of a TOML file.

    Sections that are missing from the table keep their defaults.  With
    ``path=None`` the default configuration is returned.

    """
    if path is None:
        return Conf()
    data = normalize_none_values(tomllib.loads(Path(path).read_text()))

    conf = data.get("tool", {}).get("multishapelet", {})
    if not conf:
        match data:
            case {"tool": {"multishapelet": dict(), **_rest1}, **_rest2}:
                raise KeyError(
                    "tool.multishapelet: empty section in config file"
                )
            case {"tool": dict(), **_rest}:
                raise KeyError(
                    "tool.multishapelet: section missing in config file"
                )
            case _:
                raise KeyError(
                    "tool: top-level section missing in config file"
                )
    return Conf(**conf)
