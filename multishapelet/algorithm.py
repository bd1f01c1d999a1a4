"""Common machinery of the fit algorithms.

An algorithm is constructed once per catalog.  It registers its output
columns on an :class:`astropy.table.Table` and is then applied to each
source with :meth:`FitAlgorithm.measure`, which reads the results of
the algorithms it depends on from the same table row and writes its
own results to it.

"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

import numpy as np
from astropy.table import Column

from multishapelet.ellipses import EllipseCore
from multishapelet.errors import ConfigurationError, MissingPsfError
from multishapelet.footprint import Footprint
from multishapelet.utility.sourceparams import FitField

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """A detected source to be measured.

    Parameters
    ----------
    center : tuple of float
        Position of the source in pixels.
    footprint : multishapelet.footprint.Footprint
        Pixels belonging to the source.
    shape : multishapelet.ellipses.EllipseCore, optional
        Observed second moments.  When omitted they are measured from
        the image.

    """

    center: tuple[float, float]
    footprint: Footprint
    shape: EllipseCore | None = None


def write_ellipse(row, name, ellipse):
    """Store an ellipse as its second moments."""
    moments = (np.nan,) * 3 if ellipse is None else ellipse.get_quadrupole()
    for f, value in zip((FitField.XX, FitField.YY, FitField.XY), moments):
        row[f.column(name)] = value


def read_ellipse(row, name):
    """Inverse of :func:`write_ellipse`; ``None`` if never written."""
    moments = [
        float(row[f.column(name)]) for f in (FitField.XX, FitField.YY, FitField.XY)
    ]
    if not np.all(np.isfinite(moments)):
        return None
    return EllipseCore.from_quadrupole(*moments)


class FitAlgorithm(ABC):
    """Base class of the PSF, profile and combination fits.

    Parameters
    ----------
    conf
        Configuration section of the algorithm; its ``name`` prefixes
        the output columns.
    table : astropy.table.Table, optional
        Catalog to register the output columns on.
    others : mapping of str to FitAlgorithm, optional
        Algorithms already constructed for the same catalog, by name.

    Raises
    ------
    ConfigurationError
        If a required dependency is missing from ``others`` or is of
        the wrong kind.

    """

    def __init__(self, conf, table=None, others=None):
        self.conf = conf
        self.name = conf.name
        self._resolve_dependencies({} if others is None else others)
        if table is not None:
            self.register(table)

    def _resolve_dependencies(self, others):
        pass

    def _require(self, others, name, kind):
        try:
            algorithm = others[name]
        except KeyError:
            raise ConfigurationError(
                f"{self.name}: no algorithm named {name!r} to depend on"
            ) from None
        if not isinstance(algorithm, kind):
            raise ConfigurationError(
                f"{self.name}: {name!r} is a {type(algorithm).__name__}, "
                f"not a {kind.__name__}"
            )
        return algorithm

    @abstractmethod
    def output_fields(self):
        """Return ``(FitField, shape)`` pairs of the output columns."""

    def register(self, table):
        """Add the output columns to ``table`` if not present yet."""
        for f, shape in self.output_fields():
            colname = f.column(self.name)
            if colname in table.colnames:
                continue
            if f is FitField.FLAGS:
                data = np.ones(len(table), dtype=bool)
            else:
                data = np.full((len(table),) + shape, np.nan)
            table.add_column(
                Column(data, name=colname, unit=f.unit, description=f.describe())
            )

    def read_dependencies(self, row):
        """Models of the algorithms this one depends on, by keyword."""
        return {}

    @abstractmethod
    def read_model(self, row):
        """Model previously written to ``row`` by this algorithm."""

    @abstractmethod
    def fit(self, exposure, detection, **dependencies):
        """Fit one source and return the resulting model."""

    def measure(self, row, exposure, detection):
        """Fit one source and write the result to a catalog row.

        The failure flag is set before anything else, so a row remains
        flagged if the measurement is aborted by an exception.

        Raises
        ------
        MissingPsfError
            If the exposure has no PSF.

        """
        row[FitField.FLAGS.column(self.name)] = True
        if not exposure.has_psf():
            logger.error("%s: exposure has no PSF", self.name)
            raise MissingPsfError(f"{self.name}: exposure has no PSF")
        model = self.fit(exposure, detection, **self.read_dependencies(row))
        model.write(row, self.name)
        return model
