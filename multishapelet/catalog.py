"""Set up the complete chain of fits for a catalog and run it.

"""

import logging

from multishapelet.config import Conf, read_conf
from multishapelet.fitcombo import FitComboAlgorithm
from multishapelet.fitprofile import FitProfileAlgorithm
from multishapelet.fitpsf import FitPsfAlgorithm
from multishapelet.utility.sourceparams import FitField

logger = logging.getLogger(__name__)


def make_algorithms(conf=None, table=None):
    """Build the PSF, exponential, de Vaucouleur and combination fits.

    Parameters
    ----------
    conf : multishapelet.config.Conf, optional
        Settings of the four fits; defaults apply when omitted.
    table : astropy.table.Table, optional
        Catalog to register the output columns on.

    Returns
    -------
    dict of str to multishapelet.algorithm.FitAlgorithm
        The algorithms by name, in the order they must be applied.

    Raises
    ------
    ConfigurationError
        If a section names a dependency that is not another section's
        fit of the right kind.

    """
    conf = Conf() if conf is None else conf
    algorithms = {}
    for algorithm_t, section in [
        (FitPsfAlgorithm, conf.psf),
        (FitProfileAlgorithm, conf.exp),
        (FitProfileAlgorithm, conf.dev),
        (FitComboAlgorithm, conf.combo),
    ]:
        algorithm = algorithm_t(section, table, algorithms)
        algorithms[algorithm.name] = algorithm
    return algorithms


def load_algorithms(path, table=None):
    """Like :func:`make_algorithms`, with the settings read from the
    ``[tool.multishapelet]`` table of a TOML file."""
    return make_algorithms(read_conf(path), table)


def measure_catalog(algorithms, table, exposure, detections):
    """Apply every algorithm to every source of a catalog.

    Parameters
    ----------
    algorithms : dict of str to multishapelet.algorithm.FitAlgorithm
        As returned by :func:`make_algorithms`, registered on ``table``.
    table : astropy.table.Table
        Catalog with one row per detection; updated in place.
    exposure : multishapelet.image.Exposure
        Image all sources are measured on.
    detections : sequence of multishapelet.algorithm.Detection
        Sources, in row order.

    Returns
    -------
    astropy.table.Table
        ``table``, with the results written to it.

    Raises
    ------
    ValueError
        If the number of detections and rows differ.
    MissingPsfError
        If the exposure has no PSF.

    """
    if len(detections) != len(table):
        raise ValueError(
            f"{len(detections)} detections for a catalog of {len(table)} rows"
        )
    for row, detection in zip(table, detections):
        for algorithm in algorithms.values():
            algorithm.measure(row, exposure, detection)
    failed = {
        name: int(table[FitField.FLAGS.column(name)].sum()) for name in algorithms
    }
    logger.info("Measured %d sources, failures: %s", len(table), failed)
    return table
