"""Module defining MeshFunction, dense values over the entities of one dimension."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Union

import numpy as np
from numpy.typing import NDArray

from .mesh_entity import MeshEntity

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


class MeshFunction:
    """One value per entity of dimension `dim`.

    Args:
        mesh: The mesh the function is defined on.
        dim: Topological dimension of the entities.
        value: Initial value of every entry.
        dtype: Value type of the underlying numpy array.
    """

    def __init__(self, mesh: "Mesh", dim: int, value: Any = 0, dtype: Any = int) -> None:
        D = mesh.topology().dim()
        if dim < 0 or dim > D:
            _LOGGER.error("MeshFunction: illegal dimension %d (mesh dimension %d)", dim, D)
            raise ValueError(f"Illegal dimension {dim} for a mesh of dimension {D}")
        mesh.init(dim)
        self._mesh = mesh
        self._dim = int(dim)
        self._values: NDArray[Any] = np.full(mesh.num_entities(dim), value, dtype=dtype)

    def mesh(self) -> "Mesh":
        return self._mesh

    def dim(self) -> int:
        return self._dim

    def size(self) -> int:
        return int(self._values.shape[0])

    def array(self) -> NDArray[Any]:
        return self._values

    def _index(self, key: Union[int, MeshEntity]) -> int:
        if isinstance(key, MeshEntity):
            if key.dim() != self._dim:
                _LOGGER.error(
                    "MeshFunction: entity of dimension %d for a function of dimension %d",
                    key.dim(),
                    self._dim,
                )
                raise ValueError("Entity dimension does not match the MeshFunction")
            return key.index()
        return int(key)

    def __getitem__(self, key: Union[int, MeshEntity]) -> Any:
        return self._values[self._index(key)]

    def __setitem__(self, key: Union[int, MeshEntity], value: Any) -> None:
        self._values[self._index(key)] = value

    def set_all(self, value: Any) -> None:
        self._values[:] = value

    def where_equal(self, value: Any) -> NDArray[np.int64]:
        """Return the indices of the entities whose value equals `value`."""
        return np.flatnonzero(self._values == value)

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"<MeshFunction of dimension {self._dim} with {self.size()} values>"
