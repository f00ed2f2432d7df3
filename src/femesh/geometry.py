"""Module defining MeshGeometry, the vertex coordinate storage of a mesh."""
from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)


class MeshGeometry:
    """Flat storage of vertex coordinates, `dim()` values per vertex.

    Attributes:
        _dim (int): Geometric (embedding) dimension.
        _x (NDArray[Any]): Flat coordinate array of length `size() * dim()`.
    """

    def __init__(self) -> None:
        self._dim = 0
        self._x: NDArray[Any] = np.zeros(0, dtype=float)

    def init(self, dim: int, size: int) -> None:
        """Allocate storage for `size` vertices in `dim` dimensions."""
        if dim < 1:
            _LOGGER.error("MeshGeometry.init: illegal geometric dimension %d", dim)
            raise ValueError(f"Illegal geometric dimension ({dim})")
        self._dim = int(dim)
        self._x = np.zeros(int(size) * self._dim, dtype=float)

    def dim(self) -> int:
        return self._dim

    def size(self) -> int:
        """Return the number of vertices."""
        return 0 if self._dim == 0 else self._x.shape[0] // self._dim

    def set(self, i: int, x: Sequence[float] | NDArray[Any]) -> None:
        """Set the coordinates of vertex `i`."""
        xi = np.asarray(x, dtype=float).reshape(-1)
        if xi.shape[0] != self._dim:
            _LOGGER.error(
                "MeshGeometry.set: vertex %d has %d coordinates, expected %d",
                i,
                xi.shape[0],
                self._dim,
            )
            raise ValueError(
                f"Vertex {i} has {xi.shape[0]} coordinates; expected {self._dim}"
            )
        if i < 0 or i >= self.size():
            raise ValueError(f"Vertex index {i} out of range [0, {self.size()})")
        self._x[i * self._dim : (i + 1) * self._dim] = xi

    def x(self, i: int | None = None) -> NDArray[Any]:
        """Return the flat array, or a view of the coordinates of vertex `i`."""
        if i is None:
            return self._x
        return self._x[i * self._dim : (i + 1) * self._dim]

    def point(self, i: int) -> NDArray[Any]:
        """Return a copy of vertex `i` padded to three components."""
        p = np.zeros(3, dtype=float)
        p[: self._dim] = self.x(i)
        return p

    def coordinates(self) -> NDArray[Any]:
        """Return a `(num_vertices, dim)` view of the coordinates."""
        if self._dim == 0:
            return self._x.reshape(0, 0)
        return self._x.reshape(-1, self._dim)

    def clear(self) -> None:
        self._dim = 0
        self._x = np.zeros(0, dtype=float)

    def __repr__(self) -> str:
        return f"MeshGeometry(dim={self._dim}, size={self.size()})"
