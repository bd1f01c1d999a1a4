"""Linear combination of exponential and de Vaucouleur profile fits.

"""

from dataclasses import dataclass
import logging

import numpy as np

from multishapelet.algorithm import FitAlgorithm
from multishapelet.config import FitComboConf
from multishapelet.errors import MissingPsfError
from multishapelet.fitprofile import FitProfileAlgorithm
from multishapelet.fitpsf import FitPsfAlgorithm
from multishapelet.image import get_plane_bitmask
from multishapelet.inputs import ModelInputHandler
from multishapelet.utility.sourceparams import FitField

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FitComboModel:
    """Result of a combination fit.

    Attributes
    ----------
    components : np.ndarray
        Fluxes of the exponential and de Vaucouleur profiles.
    flux, flux_err : float
        Total flux and its uncertainty.
    failed : bool
        Set if the fit or one of the fits it depends on failed.

    """

    components: np.ndarray
    flux: float
    flux_err: float
    failed: bool = False

    @classmethod
    def from_record(cls, row, name):
        return cls(
            np.array(row[FitField.COMPONENTS.column(name)], dtype=float),
            float(row[FitField.FLUX.column(name)]),
            float(row[FitField.FLUX_ERR.column(name)]),
            bool(row[FitField.FLAGS.column(name)]),
        )

    def write(self, row, name):
        row[FitField.COMPONENTS.column(name)] = self.components
        row[FitField.FLUX.column(name)] = self.flux
        row[FitField.FLUX_ERR.column(name)] = self.flux_err
        row[FitField.FLAGS.column(name)] = self.failed


class FitComboAlgorithm(FitAlgorithm):
    """Fit the amplitudes of the exponential and de Vaucouleur models,
    with their shapes fixed to the values of the individual fits."""

    def __init__(self, conf=None, table=None, others=None):
        conf = FitComboConf() if conf is None else conf
        self.bad_pixel_mask = get_plane_bitmask(conf.bad_mask_planes)
        super().__init__(conf, table, others)

    def _resolve_dependencies(self, others):
        self.psf_algorithm = self._require(others, self.conf.psf_name, FitPsfAlgorithm)
        self.exp_algorithm = self._require(
            others, self.conf.exp_name, FitProfileAlgorithm
        )
        self.dev_algorithm = self._require(
            others, self.conf.dev_name, FitProfileAlgorithm
        )

    def output_fields(self):
        return [
            (FitField.COMPONENTS, (2,)),
            (FitField.FLUX, ()),
            (FitField.FLUX_ERR, ()),
            (FitField.FLAGS, ()),
        ]

    def read_model(self, row):
        return FitComboModel.from_record(row, self.name)

    def read_dependencies(self, row):
        return {
            "psf_model": self.psf_algorithm.read_model(row),
            "exp_model": self.exp_algorithm.read_model(row),
            "dev_model": self.dev_algorithm.read_model(row),
        }

    def fit(self, exposure, detection, psf_model, exp_model, dev_model):
        if psf_model.ellipse is None:
            raise MissingPsfError(f"{self.name}: PSF model was not measured")
        failed = psf_model.failed or exp_model.failed or dev_model.failed
        if exp_model.ellipse is None or dev_model.ellipse is None:
            logger.warning("%s: profile fits missing, nothing to combine", self.name)
            return FitComboModel(np.full(2, np.nan), np.nan, np.nan, True)
        inputs = ModelInputHandler.from_masked_image(
            exposure.masked_image,
            detection.center,
            detection.footprint,
            grow_footprint=self.conf.grow_footprint,
            bad_pixel_mask=self.bad_pixel_mask,
            use_pixel_weights=self.conf.use_pixel_weights,
        )
        matrix = np.column_stack(
            [
                model.convolved(psf_model, flux=1.0).evaluate(inputs.x, inputs.y)
                for model in (exp_model, dev_model)
            ]
        )
        if inputs.weights is not None:
            matrix *= inputs.weights[:, np.newaxis]
        try:
            covariance = np.linalg.inv(matrix.T @ matrix)
        except np.linalg.LinAlgError:
            logger.warning("%s: exp and dev models are degenerate", self.name)
            return FitComboModel(np.full(2, np.nan), np.nan, np.nan, True)
        components = covariance @ (matrix.T @ inputs.data)
        flux_err = np.sqrt(covariance.sum())
        if not np.all(np.isfinite(components)):
            failed = True
        return FitComboModel(components, components.sum(), flux_err, failed)
