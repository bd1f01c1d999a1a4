"""PSF-convolved multi-Gaussian galaxy profile fit.

"""

from dataclasses import dataclass, replace
import logging

import numpy as np

from multishapelet.algorithm import FitAlgorithm, read_ellipse, write_ellipse
from multishapelet.config import FitProfileConf
from multishapelet.ellipses import EllipseCore
from multishapelet.errors import DeconvolutionError, MissingPsfError
from multishapelet.fitpsf import FitPsfAlgorithm
from multishapelet.image import get_plane_bitmask
from multishapelet.inputs import ModelInputHandler
from multishapelet.multigauss import MultiGaussianRegistry
from multishapelet.objective import MultiGaussianObjective
from multishapelet.optimizer import HybridOptimizer, OptimizerState
from multishapelet.utility.sourceparams import FitField

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FitProfileModel:
    """Result of a profile fit.

    Attributes
    ----------
    profile : str
        Registry name of the profile mixture.
    flux, flux_err : float
        Total flux and its uncertainty.
    ellipse : EllipseCore or None
        Half-light ellipse; ``None`` if never measured.
    failed : bool
        Set if the fit failed; the other fields are best-effort values.

    """

    profile: str
    flux: float
    flux_err: float
    ellipse: EllipseCore | None
    failed: bool = False

    @classmethod
    def from_record(cls, row, name, profile):
        return cls(
            profile,
            float(row[FitField.FLUX.column(name)]),
            float(row[FitField.FLUX_ERR.column(name)]),
            read_ellipse(row, name),
            bool(row[FitField.FLAGS.column(name)]),
        )

    def write(self, row, name):
        row[FitField.FLUX.column(name)] = self.flux
        row[FitField.FLUX_ERR.column(name)] = self.flux_err
        write_ellipse(row, name, self.ellipse)
        row[FitField.FLAGS.column(name)] = self.failed

    def get_components(self):
        return MultiGaussianRegistry.lookup(self.profile)

    def as_multi_shapelet(self, center=(0.0, 0.0), flux=None):
        """Unconvolved model as a sum of Gaussians."""
        return self.get_components().make_shapelets(
            self.ellipse, center, self.flux if flux is None else flux
        )

    def convolved(self, psf_model, center=(0.0, 0.0), flux=None):
        """Model convolved with the full shapelet expansion of a PSF
        model, normalized to unit flux."""
        model = self.as_multi_shapelet(center, flux)
        if psf_model.ellipse.radius == 0:
            return model
        return model.convolve(psf_model.as_multi_shapelet().normalize())


class FitProfileAlgorithm(FitAlgorithm):
    """Fit a named multi-Gaussian profile convolved with the PSF model
    measured by a :class:`~multishapelet.fitpsf.FitPsfAlgorithm`.

    Raises
    ------
    ConfigurationError
        If the profile is not in the registry, a mask plane is unknown,
        or the PSF algorithm is missing.

    """

    def __init__(self, conf=None, table=None, others=None):
        conf = FitProfileConf() if conf is None else conf
        self.components = MultiGaussianRegistry.lookup(conf.profile)
        self.bad_pixel_mask = get_plane_bitmask(conf.bad_mask_planes)
        super().__init__(conf, table, others)

    def _resolve_dependencies(self, others):
        self.psf_algorithm = self._require(others, self.conf.psf_name, FitPsfAlgorithm)

    def output_fields(self):
        return [
            (FitField.FLUX, ()),
            (FitField.FLUX_ERR, ()),
            (FitField.XX, ()),
            (FitField.YY, ()),
            (FitField.XY, ()),
            (FitField.FLAGS, ()),
        ]

    def read_model(self, row):
        return FitProfileModel.from_record(row, self.name, self.conf.profile)

    def read_dependencies(self, row):
        return {"psf_model": self.psf_algorithm.read_model(row)}

    def fit(self, exposure, detection, psf_model):
        """Fit one source.

        Parameters
        ----------
        exposure : multishapelet.image.Exposure
            Image to fit.
        detection : multishapelet.algorithm.Detection
            Source position, footprint and (optionally) observed shape.
        psf_model : multishapelet.fitpsf.FitPsfModel
            PSF at the position of the source.

        Returns
        -------
        FitProfileModel
            Flagged as failed, without an ellipse, if no observed shape
            was given and none can be measured from the image.

        Raises
        ------
        MissingPsfError
            If the PSF model was never measured.

        """
        if psf_model.ellipse is None:
            raise MissingPsfError(f"{self.name}: PSF model was not measured")
        conf = self.conf
        masked_image = exposure.masked_image
        inputs = ModelInputHandler.from_masked_image(
            masked_image,
            detection.center,
            detection.footprint,
            grow_footprint=conf.grow_footprint,
            bad_pixel_mask=self.bad_pixel_mask,
            use_pixel_weights=conf.use_pixel_weights,
        )
        shape = detection.shape
        if shape is None:
            try:
                shape = masked_image.compute_moments(
                    inputs.footprint, detection.center
                )
            except ValueError as err:
                logger.warning("%s: no usable observed shape (%s)", self.name, err)
                return FitProfileModel(conf.profile, np.nan, np.nan, None, True)
        psf_components = psf_model.get_components()

        failed = False
        initial = shape
        if conf.deconvolve_shape:
            try:
                initial = MultiGaussianObjective.deconvolve(
                    shape, psf_model.ellipse, self.components, psf_components
                )
            except DeconvolutionError as err:
                logger.warning("%s: %s, starting from the observed shape", self.name, err)
                failed = True

        objective = MultiGaussianObjective(
            inputs,
            self.components,
            psf_components,
            psf_model.ellipse,
            conf.epsilon_factor,
        )
        optimizer = HybridOptimizer(objective, initial.get_parameters(), conf.optimizer)
        state = optimizer.run()
        if not state & OptimizerState.SUCCESS:
            logger.warning("%s: fit failed (%s)", self.name, state.name)
            failed = True
        model = FitProfileModel(
            conf.profile,
            objective.amplitude,
            np.nan,
            EllipseCore.from_parameters(optimizer.parameters),
            failed,
        )
        return self.fit_shapelet_terms(model, inputs, psf_model)

    def fit_shapelet_terms(self, model, inputs, psf_model):
        """Solve for the flux of the convolved model with its shape held
        fixed, and estimate the flux uncertainty."""
        vector = model.convolved(psf_model, flux=1.0).evaluate(inputs.x, inputs.y)
        if inputs.weights is not None:
            vector *= inputs.weights
        norm = vector @ vector
        if not (norm > 0 and np.isfinite(norm)):
            logger.warning("%s: degenerate model, no flux measured", self.name)
            return replace(model, flux=np.nan, flux_err=np.nan, failed=True)
        return replace(
            model,
            flux=(vector @ inputs.data) / norm,
            flux_err=1.0 / np.sqrt(norm),
        )
