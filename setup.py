#!/usr/bin/env python
from setuptools import setup, find_packages

install_requires = """
    numpy
    scipy
    numba
    astropy
    tomli;python_version<"3.11"
    """.split()

extras_require = {
    "test": ["pytest"],
}

package_list = find_packages(where='.', exclude=['test', 'test.*'])

setup(
    name="multishapelet",
    version="0.1",
    packages=package_list,
    description="Multi-Gaussian and shapelet galaxy profile fitting",
    python_requires=">=3.10",
    install_requires=install_requires,
    extras_require=extras_require,
)
