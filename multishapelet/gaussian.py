"""Evaluation of a single elliptical Gaussian over a fixed pixel set.

"""

import numpy as np

from multishapelet.errors import DimensionError

# number of parameters of an affine transform
AFFINE_SIZE = 6
# number of parameters of an ellipse (core plus center)
ELLIPSE_SIZE = 5


class GaussianModelBuilder:
    """Evaluate ``exp(-0.5 |T(p)|^2)``, where ``T`` is the grid transform
    of an ellipse, at a fixed set of pixel positions ``p``.

    The coordinates are set once at construction; only the ellipse
    changes between calls.  Scratch arrays for the transformed
    coordinates and the model are owned by the builder, so an instance
    must not be shared between concurrent fits.

    Parameters
    ----------
    x, y : array_like
        Pixel coordinates, one entry per pixel.
    epsilon_factor : float, default: 1.0
        Entries of the chained Jacobian below
        ``epsilon_factor * eps * ||J||_inf`` are skipped when
        accumulating derivatives.  Use 0 to disable skipping.

    """

    def __init__(self, x, y, epsilon_factor=1.0):
        x = np.asarray(x, dtype=float).ravel()
        y = np.asarray(y, dtype=float).ravel()
        if x.size != y.size:
            raise DimensionError(
                f"coordinate arrays differ in size ({x.size} != {y.size})"
            )
        if epsilon_factor < 0:
            raise ValueError("epsilon_factor must be non-negative")
        self._coords = np.column_stack((x, y))
        self._coords.setflags(write=False)
        self._xyt = np.empty_like(self._coords)
        self._model = np.empty(x.size)
        self.epsilon_factor = epsilon_factor

    @classmethod
    def from_footprint(cls, footprint, epsilon_factor=1.0):
        """Builder for the pixels of a footprint, in span order."""
        x, y = footprint.get_coordinates()
        return cls(x, y, epsilon_factor)

    @classmethod
    def from_box(cls, box, epsilon_factor=1.0):
        """Builder for all pixels in a box, row by row."""
        y, x = np.mgrid[box.min_y : box.max_y + 1, box.min_x : box.max_x + 1]
        return cls(x, y, epsilon_factor)

    @property
    def size(self):
        return self._model.size

    @property
    def x(self):
        return self._coords[:, 0]

    @property
    def y(self):
        return self._coords[:, 1]

    def compute_model(self, ellipse):
        """Evaluate the Gaussian.

        Parameters
        ----------
        ellipse : multishapelet.ellipses.Ellipse
            Ellipse whose grid transform maps the 1-sigma contour to
            the unit circle.

        Returns
        -------
        np.ndarray
            Model values, one per pixel.  The array is a copy owned by
            the caller.

        """
        transform = ellipse.get_grid_transform()
        np.dot(self._coords, transform[:, :2].T, out=self._xyt)
        self._xyt += transform[:, 2]
        np.exp(-0.5 * np.einsum("ij,ij->i", self._xyt, self._xyt), out=self._model)
        return self._model.copy()

    def compute_derivative(
        self, output, ellipse, jacobian=None, add=False, reuse_model=False
    ):
        """Derivative of the model with respect to a set of parameters.

        Parameters
        ----------
        output : np.ndarray
            Array of shape ``(size, k)`` to fill.
        ellipse : multishapelet.ellipses.Ellipse
            Ellipse at which the derivative is evaluated.
        jacobian : np.ndarray, optional
            ``(5, k)`` derivative of the ellipse parameters with respect
            to the ``k`` parameters of interest.  Without it, ``k`` is 6
            and the derivative is taken with respect to the affine grid
            transform parameters ``XX, YX, XY, YY, X, Y``.
        add : bool, default: False
            Accumulate into ``output`` instead of overwriting it.
        reuse_model : bool, default: False
            Assume the last :meth:`compute_model` call used the same
            ellipse and skip its re-evaluation.

        Returns
        -------
        np.ndarray
            ``output``.

        Raises
        ------
        DimensionError
            If ``output`` does not have one row per pixel or its column
            count disagrees with the parameter count.

        """
        if output.ndim != 2 or output.shape[0] != self.size:
            raise DimensionError(
                f"output has shape {output.shape}, expected {self.size} rows"
            )
        ncols = AFFINE_SIZE if jacobian is None else jacobian.shape[1]
        if output.shape[1] != ncols:
            raise DimensionError(
                f"output has {output.shape[1]} columns, expected {ncols}"
            )
        if jacobian is not None and jacobian.shape[0] != ELLIPSE_SIZE:
            raise DimensionError(
                f"jacobian has {jacobian.shape[0]} rows, expected {ELLIPSE_SIZE}"
            )
        if not reuse_model:
            self.compute_model(ellipse)
        if not add:
            output[...] = 0.0
        dfdx = -self._xyt[:, 0] * self._model
        dfdy = -self._xyt[:, 1] * self._model
        x, y = self._coords[:, 0], self._coords[:, 1]
        # d(model)/d(XX, YX, XY, YY, X, Y)
        terms = (dfdx * x, dfdy * x, dfdx * y, dfdy * y, dfdx, dfdy)
        if jacobian is None:
            for n, term in enumerate(terms):
                output[:, n] += term
            return output
        chained = ellipse.get_grid_transform_derivative() @ jacobian
        threshold = (
            self.epsilon_factor
            * np.finfo(float).eps
            * np.linalg.norm(chained, np.inf)
        )
        for n, term in enumerate(terms):
            for k in range(ncols):
                if abs(chained[n, k]) > threshold:
                    output[:, k] += chained[n, k] * term
        return output
