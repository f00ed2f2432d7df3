"""Lightweight entity views and iterators.

An entity is identified by (mesh, dimension, index) only; views are created
on the fly and own no data.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Iterator, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


class MeshEntity:
    """View of entity `index` of dimension `dim` in `mesh`."""

    def __init__(self, mesh: "Mesh", dim: int, index: int) -> None:
        if index < 0 or index >= mesh.num_entities(dim):
            _LOGGER.error("MeshEntity: index %d out of range for dimension %d", index, dim)
            raise ValueError(
                f"Entity index {index} out of range for dimension {dim} "
                f"({mesh.num_entities(dim)} entities)"
            )
        self._mesh = mesh
        self._dim = int(dim)
        self._index = int(index)

    def mesh(self) -> "Mesh":
        return self._mesh

    def dim(self) -> int:
        return self._dim

    def index(self) -> int:
        return self._index

    def global_index(self) -> int:
        return int(self._mesh.topology().global_indices(self._dim)[self._index])

    def entities(self, dim: int) -> NDArray[np.int64]:
        """Return the indices of incident entities of dimension `dim`."""
        topology = self._mesh.topology()
        if not topology.have(self._dim, dim):
            self._mesh.init(self._dim, dim)
        return topology(self._dim, dim)(self._index)

    def num_entities(self, dim: int) -> int:
        return int(self.entities(dim).shape[0])

    def num_global_entities(self, dim: int) -> int:
        """Return the number of incident entities across all partitions."""
        self.entities(dim)
        return self._mesh.topology()(self._dim, dim).num_global_connections(self._index)

    def midpoint(self) -> NDArray[Any]:
        geometry = self._mesh.geometry()
        return np.mean([geometry.point(int(v)) for v in self.entities(0)], axis=0)

    def incident(self, entity: "MeshEntity") -> bool:
        return entity.index() in set(self.entities(entity.dim()).tolist())

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, MeshEntity)
            and other._mesh is self._mesh
            and other._dim == self._dim
            and other._index == self._index
        )

    def __hash__(self) -> int:
        return hash((id(self._mesh), self._dim, self._index))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._index} of dimension {self._dim}>"


class Vertex(MeshEntity):
    def __init__(self, mesh: "Mesh", index: int) -> None:
        super().__init__(mesh, 0, index)

    def point(self) -> NDArray[Any]:
        return self._mesh.geometry().point(self._index)

    def x(self) -> NDArray[Any]:
        return self._mesh.geometry().x(self._index)


class Facet(MeshEntity):
    def __init__(self, mesh: "Mesh", index: int) -> None:
        super().__init__(mesh, mesh.topology().dim() - 1, index)

    def exterior(self) -> bool:
        """Return whether the facet lies on the global boundary."""
        return self.num_global_entities(self._dim + 1) == 1

    def normal(self) -> NDArray[Any]:
        """Return the outward unit normal with respect to the first incident cell."""
        cell = Cell(self._mesh, int(self.entities(self._dim + 1)[0]))
        local = int(np.flatnonzero(cell.entities(self._dim) == self._index)[0])
        return cell.normal(local)


class Cell(MeshEntity):
    """Cell view; geometric operations are delegated to the mesh CellType."""

    def __init__(self, mesh: "Mesh", index: int) -> None:
        super().__init__(mesh, mesh.topology().dim(), index)

    def volume(self) -> float:
        return self._mesh.type().volume(self)

    def diameter(self) -> float:
        return self._mesh.type().diameter(self)

    def inradius(self) -> float:
        return self._mesh.type().inradius(self)

    def radius_ratio(self) -> float:
        return self._mesh.type().radius_ratio(self)

    def normal(self, facet: int) -> NDArray[Any]:
        return self._mesh.type().normal(self, facet)

    def cell_normal(self) -> NDArray[Any]:
        return self._mesh.type().cell_normal(self)

    def facet_area(self, facet: int) -> float:
        return self._mesh.type().facet_area(self, facet)

    def orientation(self, up: Optional[Sequence[float]] = None) -> int:
        return self._mesh.type().orientation(self, up)

    def contains(self, point: Sequence[float] | NDArray[Any]) -> bool:
        return self._mesh.type().contains(self, point)

    def squared_distance(self, point: Sequence[float] | NDArray[Any]) -> float:
        return self._mesh.type().squared_distance(self, point)

    def closest_point(self, point: Sequence[float] | NDArray[Any]) -> NDArray[Any]:
        return self._mesh.type().closest_point(self, point)

    def distance(self, point: Sequence[float] | NDArray[Any]) -> float:
        return math.sqrt(self.squared_distance(point))

    def order(self, local_to_global: Optional[NDArray[Any]] = None) -> None:
        self._mesh.type().order(self, local_to_global)

    def ordered(self, local_to_global: Optional[NDArray[Any]] = None) -> bool:
        return self._mesh.type().ordered(self, local_to_global)


def entities(mesh: "Mesh", dim: int) -> Iterator[MeshEntity]:
    """Iterate over all entities of dimension `dim`, computing them if needed."""
    mesh.init(dim)
    D = mesh.topology().dim()
    for i in range(mesh.num_entities(dim)):
        if dim == 0:
            yield Vertex(mesh, i)
        elif dim == D:
            yield Cell(mesh, i)
        elif dim == D - 1:
            yield Facet(mesh, i)
        else:
            yield MeshEntity(mesh, dim, i)


def vertices(mesh: "Mesh") -> Iterator[MeshEntity]:
    return entities(mesh, 0)


def edges(mesh: "Mesh") -> Iterator[MeshEntity]:
    return entities(mesh, 1)


def faces(mesh: "Mesh") -> Iterator[MeshEntity]:
    return entities(mesh, 2)


def facets(mesh: "Mesh") -> Iterator[MeshEntity]:
    return entities(mesh, mesh.topology().dim() - 1)


def cells(mesh: "Mesh") -> Iterator[MeshEntity]:
    return entities(mesh, mesh.topology().dim())
