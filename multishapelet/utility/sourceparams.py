from enum import Enum


class FitField(str, Enum):
    """Output fields written by the fit algorithms.

    Each algorithm writes its fields to columns named
    ``{algorithm name}_{field}``.

    """

    FLUX = "flux"
    FLUX_ERR = "flux_err"
    XX = "xx"
    YY = "yy"
    XY = "xy"
    INNER = "inner"
    OUTER = "outer"
    COMPONENTS = "components"
    FLAGS = "flags"

    def describe(self) -> str:
        """Return a description of the field."""
        return _field_descriptions[self.value]

    @property
    def unit(self) -> str | None:
        return _field_units.get(self.value)

    def column(self, name: str) -> str:
        """Column name of this field for the algorithm ``name``."""
        return f"{name}_{self.value}"


_field_descriptions = {
    "flux": "Total flux of the fitted model (counts)",
    "flux_err": "1-sigma uncertainty in the total flux (counts)",
    "xx": (
        "xx second moment of the reference ellipse of the model, "
        "i.e. the half-light ellipse for galaxy profiles (pixel^2)"
    ),
    "yy": "yy second moment of the reference ellipse of the model (pixel^2)",
    "xy": "xy second moment of the reference ellipse of the model (pixel^2)",
    "inner": "Shapelet coefficients of the inner PSF component",
    "outer": "Shapelet coefficients of the outer PSF component",
    "components": (
        "Fluxes of the exponential and de Vaucouleur components of the "
        "combined fit (counts)"
    ),
    "flags": "Set if the fit failed or was not attempted",
}

_field_units = {
    "flux": "count",
    "flux_err": "count",
    "xx": "pix2",
    "yy": "pix2",
    "xy": "pix2",
    "components": "count",
}
