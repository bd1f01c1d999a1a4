"""Exceptions raised while setting up or running profile fits."""


class ConfigurationError(LookupError):
    """A fit algorithm or profile was configured with an unknown name,
    or a dependency that is not of the required kind.

    Raised when an algorithm is constructed, never per source.

    """


class DimensionError(ValueError):
    """Array arguments disagree in size."""


class DeconvolutionError(ArithmeticError):
    """The PSF moments exceed the observed moments, so no valid
    unconvolved ellipse exists."""


class MissingPsfError(RuntimeError):
    """The exposure carries no PSF model."""
