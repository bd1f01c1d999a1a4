"""Multi-Gaussian and shapelet fits of galaxy profiles and PSFs."""

__version__ = "0.1"
