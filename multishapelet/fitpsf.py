"""Two-component shapelet model of the PSF.

The PSF image is first fit with a pair of concentric elliptical
Gaussians of fixed relative size and amplitude, which determines the
ellipse.  Shapelet expansions on that ellipse (inner) and on the
ellipse scaled by ``radius_ratio`` (outer) are then fit linearly.

"""

from dataclasses import dataclass
import logging

import numpy as np

from multishapelet.algorithm import FitAlgorithm, read_ellipse, write_ellipse
from multishapelet.config import FitPsfConf
from multishapelet.ellipses import Ellipse, EllipseCore
from multishapelet.errors import MissingPsfError
from multishapelet.footprint import Box
from multishapelet.hermite import PackedIndex
from multishapelet.inputs import ModelInputHandler
from multishapelet.multigauss import MultiGaussianComponent, MultiGaussianList
from multishapelet.objective import MultiGaussianObjective
from multishapelet.optimizer import HybridOptimizer, OptimizerState
from multishapelet.shapelets import (
    MultiShapeletFunction,
    ShapeletFunction,
    ShapeletModelBuilder,
)
from multishapelet.utility.sourceparams import FitField

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FitPsfModel:
    """Result of a PSF fit.

    Attributes
    ----------
    inner, outer : np.ndarray
        Packed shapelet coefficients of the two components.
    ellipse : EllipseCore or None
        Ellipse of the inner component; ``None`` if never measured.
    radius_ratio : float
        Size of the outer ellipse relative to the inner one.
    failed : bool
        Set if the ellipse fit did not converge.

    """

    inner: np.ndarray
    outer: np.ndarray
    ellipse: EllipseCore | None
    radius_ratio: float = 2.0
    failed: bool = False

    @classmethod
    def point(cls):
        """Model of a delta-function PSF."""
        return cls(np.array([1.0]), np.array([0.0]), EllipseCore(0.0, 0.0, 0.0))

    @classmethod
    def from_record(cls, row, name, radius_ratio):
        return cls(
            np.array(row[FitField.INNER.column(name)], dtype=float),
            np.array(row[FitField.OUTER.column(name)], dtype=float),
            read_ellipse(row, name),
            radius_ratio,
            bool(row[FitField.FLAGS.column(name)]),
        )

    def write(self, row, name):
        row[FitField.INNER.column(name)] = self.inner
        row[FitField.OUTER.column(name)] = self.outer
        write_ellipse(row, name, self.ellipse)
        row[FitField.FLAGS.column(name)] = self.failed

    @property
    def inner_order(self):
        return PackedIndex.from_index(self.inner.size - 1).order

    @property
    def outer_order(self):
        return PackedIndex.from_index(self.outer.size - 1).order

    def get_components(self):
        """Gaussian mixture of the zeroth-order terms, normalized to
        unit flux and relative to :attr:`ellipse`."""
        return MultiGaussianList(
            [
                MultiGaussianComponent(self.inner[0], 1.0),
                MultiGaussianComponent(
                    self.outer[0] * self.radius_ratio**2, self.radius_ratio
                ),
            ]
        ).normalize()

    def as_multi_shapelet(self, center=(0.0, 0.0)):
        return MultiShapeletFunction(
            [
                ShapeletFunction(
                    self.inner_order, self.inner, Ellipse(self.ellipse, center)
                ),
                ShapeletFunction(
                    self.outer_order,
                    self.outer,
                    Ellipse(self.ellipse.scale(self.radius_ratio), center),
                ),
            ]
        )


class FitPsfAlgorithm(FitAlgorithm):
    """Fit the PSF of an exposure at the position of each source."""

    def __init__(self, conf=None, table=None, others=None):
        super().__init__(FitPsfConf() if conf is None else conf, table, others)
        self.components = MultiGaussianList(
            [
                MultiGaussianComponent(1.0, 1.0),
                MultiGaussianComponent(
                    self.conf.peak_ratio * self.conf.radius_ratio**2,
                    self.conf.radius_ratio,
                ),
            ]
        )

    def output_fields(self):
        return [
            (FitField.INNER, (PackedIndex.compute_size(self.conf.inner_order),)),
            (FitField.OUTER, (PackedIndex.compute_size(self.conf.outer_order),)),
            (FitField.XX, ()),
            (FitField.YY, ()),
            (FitField.XY, ()),
            (FitField.FLAGS, ()),
        ]

    def read_model(self, row):
        return FitPsfModel.from_record(row, self.name, self.conf.radius_ratio)

    def fit(self, exposure, detection):
        if not exposure.has_psf():
            raise MissingPsfError(f"{self.name}: exposure has no PSF")
        return self.fit_image(exposure.psf.compute_image(detection.center))

    def fit_image(self, image):
        """Fit a PSF kernel image centered on its middle pixel."""
        image = np.asarray(image, dtype=float)
        center = ((image.shape[1] - 1) / 2.0, (image.shape[0] - 1) / 2.0)
        inputs = ModelInputHandler.from_image(
            image, center, Box.from_shape(image.shape)
        )
        objective = MultiGaussianObjective(inputs, self.components)
        initial = EllipseCore(0.0, 0.0, self.conf.initial_radius)
        optimizer = HybridOptimizer(
            objective, initial.get_parameters(), self.conf.optimizer
        )
        state = optimizer.run()
        failed = not state & OptimizerState.SUCCESS
        if failed:
            logger.warning("%s: ellipse fit failed (%s)", self.name, state.name)
        ellipse = EllipseCore.from_parameters(optimizer.parameters)
        inner, outer = self.fit_shapelet_terms(inputs, ellipse)
        return FitPsfModel(inner, outer, ellipse, self.conf.radius_ratio, failed)

    def fit_shapelet_terms(self, inputs, ellipse):
        """Linear least-squares fit of the inner and outer coefficients
        with the ellipse held fixed."""
        builder = ShapeletModelBuilder(inputs.x, inputs.y)
        matrix = np.hstack(
            [
                builder.compute_matrix(self.conf.inner_order, Ellipse(ellipse)),
                builder.compute_matrix(
                    self.conf.outer_order,
                    Ellipse(ellipse.scale(self.conf.radius_ratio)),
                ),
            ]
        )
        coefficients = np.linalg.lstsq(matrix, inputs.data, rcond=None)[0]
        ninner = PackedIndex.compute_size(self.conf.inner_order)
        return coefficients[:ninner], coefficients[ninner:]
