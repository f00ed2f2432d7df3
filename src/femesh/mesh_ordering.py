"""Ordering of the local numbering of every cell of a mesh."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from .mesh_entity import Cell

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


class MeshOrdering:
    """Apply or check the canonical cell ordering using global vertex indices."""

    @staticmethod
    def order(mesh: "Mesh") -> None:
        topology = mesh.topology()
        D = topology.dim()
        l2g = topology.global_indices(0)
        cell_type = mesh.type()
        for c in range(topology.size(D)):
            cell_type.order(Cell(mesh, c), l2g)
        _LOGGER.debug("Ordered %d cells", topology.size(D))

    @staticmethod
    def ordered(mesh: "Mesh") -> bool:
        topology = mesh.topology()
        D = topology.dim()
        l2g = topology.global_indices(0)
        cell_type = mesh.type()
        for c in range(topology.size(D)):
            if not cell_type.ordered(Cell(mesh, c), l2g):
                _LOGGER.debug("Cell %d is not ordered", c)
                return False
        return True

    @staticmethod
    def order_entities(mesh: "Mesh", dim: int) -> None:
        """Order the vertices of freshly computed entities of dimension `dim`.

        Entities created from ordered cells already sit in canonical
        position, only the vertex rows of simplex entities need sorting by
        global index.
        """
        topology = mesh.topology()
        if dim in (0, topology.dim()) or not mesh.type().is_simplex():
            return
        if not topology.have(dim, 0):
            return
        conn = topology(dim, 0)
        rows = conn.array()
        l2g = topology.global_indices(0)
        order = np.argsort(l2g[rows], axis=1, kind="stable")
        conn.set(np.take_along_axis(rows, order, axis=1))
        _LOGGER.debug("Ordered %d entities of dimension %d", rows.shape[0], dim)
