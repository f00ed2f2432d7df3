"""Computation of mesh entities and connectivity from cell-vertex incidence.

Entities of an intermediate dimension are found by generating every cell's
candidate sub-entities, keying them by their sorted vertex tuple and
numbering the distinct keys in order of first encounter (cell by cell, then
local position). All derived tables are built with sorts on integer keys so
repeated computation gives identical tables.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


class TopologyComputation:
    """Builders for entities and connectivity tables (stateless)."""

    @staticmethod
    def _check_dim(mesh: "Mesh", dim: int, op: str) -> int:
        D = mesh.topology().dim()
        if dim < 0 or dim > D:
            _LOGGER.error("%s: illegal dimension %d for a mesh of dimension %d", op, dim, D)
            raise ValueError(
                f"Cannot compute {op} of dimension {dim} for a mesh of dimension {D}"
            )
        return D

    @staticmethod
    def compute_entities(mesh: "Mesh", dim: int) -> int:
        """Compute the entities of dimension `dim`.

        Stores connectivity (D, dim) and (dim, 0) on the mesh topology.

        Returns:
            The number of entities of dimension `dim`.

        Raises:
            ValueError: If `dim` is outside [0, D].
        """
        topology = mesh.topology()
        D = TopologyComputation._check_dim(mesh, dim, "entities")
        if dim == 0 or dim == D:
            return topology.size(dim)
        if topology.have(dim, 0) and topology.have(D, dim):
            return topology.size(dim)

        cell_type = mesh.type()
        nv = cell_type.num_vertices(D)
        local = np.array(cell_type.create_entities(dim, range(nv)), dtype=np.int64)
        num_cells = topology.size(D)
        if num_cells == 0:
            topology.init(dim, 0)
            return 0

        cells = topology(D, 0).array()
        candidates = cells[:, local].reshape(-1, local.shape[1])
        keys = np.sort(candidates, axis=1)
        uniq, first, inverse = np.unique(
            keys, axis=0, return_index=True, return_inverse=True
        )
        inverse = inverse.reshape(-1)

        # Number entities by first encounter instead of key order
        by_first = np.argsort(first, kind="stable")
        rank = np.empty_like(by_first)
        rank[by_first] = np.arange(by_first.shape[0])
        cell_entities = rank[inverse].reshape(num_cells, local.shape[0])

        entity_type = cell_type.entity_cell_type(dim)
        if entity_type is not None and entity_type.is_simplex():
            entity_vertices = uniq[by_first]
        else:
            entity_vertices = candidates[first[by_first]]

        num_entities = int(uniq.shape[0])
        topology.init(dim, num_entities)
        topology(D, dim).set(cell_entities)
        topology(dim, 0).set(entity_vertices)
        _LOGGER.info(
            "Computed %d entities of dimension %d from %d cells", num_entities, dim, num_cells
        )
        return num_entities

    @staticmethod
    def compute_connectivity(mesh: "Mesh", d0: int, d1: int) -> None:
        """Compute connectivity (d0, d1) if not already present.

        (d, d) is the identity, (d0, d1) with d0 < d1 is the transpose of
        (d1, d0), and (d0, d1) with d0 > d1 is found by creating the
        sub-entities of each d0-entity and looking them up by key.
        """
        topology = mesh.topology()
        D = TopologyComputation._check_dim(mesh, d0, "connectivity")
        TopologyComputation._check_dim(mesh, d1, "connectivity")
        if topology.have(d0, d1):
            return
        if topology.size(D) == 0:
            return

        TopologyComputation.compute_entities(mesh, d0)
        TopologyComputation.compute_entities(mesh, d1)
        if topology.have(d0, d1):
            return

        if d0 == d1:
            n = topology.size(d0)
            topology(d0, d0).set(np.arange(n, dtype=np.int64).reshape(n, 1))
        elif d0 < d1:
            TopologyComputation.compute_connectivity(mesh, d1, d0)
            TopologyComputation._transpose(mesh, d0, d1)
        else:
            TopologyComputation._from_sub_entities(mesh, d0, d1)
        _LOGGER.debug("Computed connectivity %d -- %d", d0, d1)

    @staticmethod
    def _transpose(mesh: "Mesh", d0: int, d1: int) -> None:
        """Build (d0, d1) from (d1, d0); rows list incident entities ascending."""
        topology = mesh.topology()
        src = topology(d1, d0)
        n_src = len(src)
        n_dst = topology.size(d0)
        targets = src()
        sources = np.repeat(np.arange(n_src, dtype=np.int64), np.diff(src.offsets()))
        order = np.lexsort((sources, targets))
        counts = np.bincount(targets, minlength=n_dst)
        offsets = np.zeros(n_dst + 1, dtype=np.int64)
        np.cumsum(counts, out=offsets[1:])
        topology(d0, d1).set_offsets(offsets, sources[order])

    @staticmethod
    def _from_sub_entities(mesh: "Mesh", d0: int, d1: int) -> None:
        topology = mesh.topology()
        if d1 == 0:
            # Stored together with the entities themselves
            return
        entity_type = mesh.type().sub_cell_type(d0)
        lookup: Dict[Tuple[int, ...], int] = {
            tuple(sorted(row)): i for i, row in enumerate(topology(d1, 0).rows())
        }
        vertices = topology(d0, 0)
        rows: List[List[int]] = []
        for e in range(topology.size(d0)):
            created = entity_type.create_entities(d1, vertices(e))
            rows.append([lookup[tuple(sorted(t))] for t in created])
        topology(d0, d1).set(np.array(rows, dtype=np.int64))

    @staticmethod
    def entity_keys(
        mesh: "Mesh", dim: int, vertex_numbering: Optional[NDArray[Any]] = None
    ) -> NDArray[np.int64]:
        """Return the canonical key of every entity of dimension `dim`.

        The key of an entity is its vertex tuple in the given vertex
        numbering (global vertex indices by default), sorted ascending. Equal
        keys on different partitions identify the same physical entity.

        Returns:
            Integer array of shape (num_entities, vertices_per_entity).
        """
        topology = mesh.topology()
        mesh.init(dim)
        numbering = (
            topology.global_indices(0)
            if vertex_numbering is None
            else np.asarray(vertex_numbering, dtype=np.int64)
        )
        if dim == 0:
            return numbering.reshape(-1, 1).copy()
        conn = topology(dim, 0)
        if len(conn) == 0:
            return np.zeros((0, mesh.type().num_vertices(dim)), dtype=np.int64)
        return np.sort(numbering[conn.array()], axis=1)
