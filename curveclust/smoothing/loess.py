"""Local polynomial regression (loess) for one-dimensional curves.

Each prediction fits a weighted polynomial of degree 0, 1 or 2 around the
query point:

- Tricube kernel w(u) = (1 - |u|^3)^3 for |u| < 1, else 0
- Span in (0, inf): the neighborhood holds q = floor(span * n) observations,
  clamped to [degree + 1, n]
- Bandwidth is halfway between the q-th nearest distance and the next larger
  one, so all q neighbors get positive weight. When the neighborhood already
  covers every observation the farthest distance is scaled by max(span, 1.1)
- The local design is centred at the query and scaled by the bandwidth; the
  fitted value is the intercept of the weighted least-squares solution

Fits are computed on demand and never cached, so repeated queries at the same
x give identical values.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray

from curveclust.errors import InsufficientDataError

SUPPORTED_DEGREES = (0, 1, 2)

# Bandwidth scale when the neighborhood spans every observation
FULL_NEIGHBORHOOD_SCALE = 1.1


def tricube(u: NDArray[np.float64]) -> NDArray[np.float64]:
    """Tricube kernel, zero outside |u| < 1."""
    a = 1.0 - np.clip(np.abs(u), 0.0, 1.0) ** 3
    return a**3


def required_distinct_points(degree: int) -> int:
    """Minimum number of distinct x values a polynomial of ``degree`` needs."""
    return degree + 1


class LoessModel:
    """Queryable loess fit of one group's observations.

    Example:
        >>> model = LoessModel("P1", x=[0, 1, 2, 3], y=[0.0, 1.1, 1.9, 3.0], degree=1)
        >>> model.domain
        (0.0, 3.0)
        >>> value = model.predict(1.5)
    """

    def __init__(
        self,
        key: str,
        x: ArrayLike,
        y: ArrayLike,
        degree: int = 2,
        span: float = 0.75,
    ) -> None:
        """Prepare the model.

        Args:
            key: Group key the observations belong to.
            x: Independent variable values.
            y: Response values.
            degree: Local polynomial degree (0, 1 or 2).
            span: Neighborhood size as a fraction of the observations.

        Raises:
            InsufficientDataError: If there are fewer than degree + 1 distinct x values.
            ValueError: If the inputs or parameters are invalid.
        """
        if degree not in SUPPORTED_DEGREES:
            raise ValueError(f"Unsupported loess degree: {degree}")
        if not span > 0:
            raise ValueError(f"Loess span must be positive, got {span}")

        x_arr = np.asarray(x, dtype=np.float64).reshape(-1)
        y_arr = np.asarray(y, dtype=np.float64).reshape(-1)
        if x_arr.size != y_arr.size:
            raise ValueError(f"Group '{key}': x and y lengths differ")
        if not (np.all(np.isfinite(x_arr)) and np.all(np.isfinite(y_arr))):
            raise ValueError(f"Group '{key}': observations must be finite")

        n_distinct = int(np.unique(x_arr).size)
        required = required_distinct_points(degree)
        if n_distinct < required:
            raise InsufficientDataError(key, n_distinct, required)

        order = np.argsort(x_arr, kind="stable")
        self._x = x_arr[order]
        self._y = y_arr[order]
        self._x.setflags(write=False)
        self._y.setflags(write=False)

        self.key = key
        self.degree = degree
        self.span = float(span)

        n = self._x.size
        q = int(np.floor(min(self.span, 1.0) * n))
        self._q = min(max(q, required), n)

    def __repr__(self) -> str:
        return (
            f"LoessModel(key={self.key!r}, n={self.n_observations}, "
            f"degree={self.degree}, span={self.span}, domain={self.domain})"
        )

    @property
    def domain(self) -> tuple[float, float]:
        """Observed domain [min_x, max_x]; predictions are only valid inside it."""
        return float(self._x[0]), float(self._x[-1])

    @property
    def n_observations(self) -> int:
        return int(self._x.size)

    @property
    def neighborhood_size(self) -> int:
        return self._q

    def contains(self, x: float) -> bool:
        lo, hi = self.domain
        return lo <= x <= hi

    def predict(self, x: float | ArrayLike) -> float | NDArray[np.float64]:
        """Evaluate the fit at one or more query points.

        Args:
            x: Scalar or array of query points.

        Returns:
            A float for scalar input, otherwise an array of the same shape.
        """
        queries = np.asarray(x, dtype=np.float64)
        if queries.ndim == 0:
            return self._fit_at(float(queries))
        flat = np.array([self._fit_at(float(q)) for q in queries.reshape(-1)])
        return flat.reshape(queries.shape)

    __call__ = predict

    def fitted(self) -> NDArray[np.float64]:
        """Smoothed values at the (sorted) observation points."""
        return np.asarray(self.predict(self._x), dtype=np.float64)

    def _bandwidth(self, distances: NDArray[np.float64]) -> float:
        ordered = np.sort(distances)
        farthest = ordered[self._q - 1]
        beyond = ordered[self._q :]
        beyond = beyond[beyond > farthest]
        if beyond.size:
            return 0.5 * (farthest + float(beyond[0]))
        return float(ordered[-1]) * max(self.span, FULL_NEIGHBORHOOD_SCALE)

    def _fit_at(self, x0: float) -> float:
        distances = np.abs(self._x - x0)
        h = self._bandwidth(distances)

        weights = tricube(distances / h)
        mask = weights > 0
        xs = self._x[mask]
        ys = self._y[mask]
        ws = weights[mask]

        # Centred and scaled local design: columns 1, z, z^2
        z = (xs - x0) / h
        design = np.vander(z, self.degree + 1, increasing=True)

        root_w = np.sqrt(ws)
        beta = np.linalg.lstsq(design * root_w[:, None], ys * root_w, rcond=None)[0]
        return float(beta[0])
