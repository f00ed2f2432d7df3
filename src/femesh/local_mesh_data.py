"""Module defining LocalMeshData, the per-process slice of mesh input.

A mesh file (or a serial mesh) is split across `num_processes` partitions by
contiguous index ranges: partition `rank` owns `local_range(n, rank, size)`
of the vertices and, independently, of the cells. Domain markers travel as
raw (cell, local entity, label) triples and are attached to entities only
when the mesh is built.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .cell_types import create_cell_type

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


def local_range(n: int, rank: int, num_processes: int) -> Tuple[int, int]:
    """Return the half-open range [start, end) of `n` items owned by `rank`.

    The first `n % num_processes` partitions get one extra item.
    """
    if num_processes < 1 or rank < 0 or rank >= num_processes:
        _LOGGER.error("local_range: illegal rank %d of %d", rank, num_processes)
        raise ValueError(f"Illegal process rank {rank} of {num_processes}")
    size, r = divmod(int(n), int(num_processes))
    if rank < r:
        start = rank * (size + 1)
        return start, start + size + 1
    start = rank * size + r
    return start, start + size


def index_owner(n: int, index: int, num_processes: int) -> int:
    """Return the rank whose `local_range` contains `index`."""
    size, r = divmod(int(n), int(num_processes))
    if index < r * (size + 1):
        return index // (size + 1)
    return r + (index - r * (size + 1)) // size


@dataclass
class LocalMeshData:
    """Per-partition mesh input.

    Attributes:
        tdim: Topological dimension.
        gdim: Geometric dimension.
        cell_type: Name of the cell shape.
        num_global_vertices: Number of vertices of the whole mesh.
        num_global_cells: Number of cells of the whole mesh.
        vertex_indices: Global indices of the local vertex slice.
        vertex_coordinates: Coordinates of the local vertex slice, (n, gdim).
        global_cell_indices: Global indices of the local cell slice.
        cell_vertices: Global vertex indices of each local cell, (m, nv).
        num_vertices_per_cell: Vertices per cell.
        domain_data: Map from entity dimension to (cell index, local entity,
            label) triples.
    """

    tdim: int = 0
    gdim: int = 0
    cell_type: str = ""
    num_global_vertices: int = 0
    num_global_cells: int = 0
    vertex_indices: NDArray[np.int64] = field(
        default_factory=lambda: np.zeros(0, dtype=np.int64)
    )
    vertex_coordinates: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros((0, 0), dtype=float)
    )
    global_cell_indices: NDArray[np.int64] = field(
        default_factory=lambda: np.zeros(0, dtype=np.int64)
    )
    cell_vertices: NDArray[np.int64] = field(
        default_factory=lambda: np.zeros((0, 0), dtype=np.int64)
    )
    num_vertices_per_cell: int = 0
    domain_data: Dict[int, List[Tuple[int, int, int]]] = field(default_factory=dict)

    def clear(self) -> None:
        self.tdim = 0
        self.gdim = 0
        self.cell_type = ""
        self.num_global_vertices = 0
        self.num_global_cells = 0
        self.vertex_indices = np.zeros(0, dtype=np.int64)
        self.vertex_coordinates = np.zeros((0, 0), dtype=float)
        self.global_cell_indices = np.zeros(0, dtype=np.int64)
        self.cell_vertices = np.zeros((0, 0), dtype=np.int64)
        self.num_vertices_per_cell = 0
        self.domain_data = {}

    def check(self) -> None:
        """Validate the record.

        Raises:
            ValueError: If sizes, shapes or indices are inconsistent.
        """
        problems: List[str] = []
        try:
            ct = create_cell_type(self.cell_type)
        except ValueError:
            _LOGGER.exception("LocalMeshData.check: bad cell type")
            raise
        if ct.dim() != self.tdim:
            problems.append(f"cell type {self.cell_type} has dimension {ct.dim()}, not {self.tdim}")
        if self.gdim < self.tdim:
            problems.append(f"geometric dimension {self.gdim} below topological {self.tdim}")
        if self.num_vertices_per_cell != ct.num_vertices():
            problems.append(
                f"{self.num_vertices_per_cell} vertices per cell for a {self.cell_type}"
            )
        if self.vertex_coordinates.shape[0] != self.vertex_indices.shape[0]:
            problems.append("vertex indices and coordinates differ in length")
        if self.vertex_coordinates.shape[0] and self.vertex_coordinates.shape[1] != self.gdim:
            problems.append("vertex coordinates do not match the geometric dimension")
        if self.cell_vertices.shape[0] != self.global_cell_indices.shape[0]:
            problems.append("cell indices and cell vertices differ in length")
        if self.cell_vertices.shape[0] and self.cell_vertices.shape[1] != self.num_vertices_per_cell:
            problems.append("cell vertex rows do not match the vertices per cell")
        if self.cell_vertices.size and (
            self.cell_vertices.min() < 0 or self.cell_vertices.max() >= self.num_global_vertices
        ):
            problems.append("cell refers to a vertex outside the global range")
        for dim, entries in self.domain_data.items():
            if dim < 0 or dim > self.tdim:
                problems.append(f"domain markers of illegal dimension {dim}")
            for cell, local_entity, value in entries:
                if cell < 0 or cell >= self.num_global_cells:
                    problems.append(f"domain marker on unknown cell {cell}")
                    break
                if dim < self.tdim and (local_entity < 0 or local_entity >= ct.num_entities(dim)):
                    problems.append(f"domain marker on unknown local entity {local_entity}")
                    break
        if problems:
            _LOGGER.error("LocalMeshData.check failed: %s", "; ".join(problems))
            raise ValueError("Inconsistent local mesh data: " + "; ".join(problems))

    @classmethod
    def from_mesh(cls, mesh: "Mesh", rank: int = 0, num_processes: int = 1) -> "LocalMeshData":
        """Slice a serial mesh into the data of partition `rank`.

        Domain markers of dimension d < D are expressed through the first
        cell incident to the marked entity.
        """
        topology = mesh.topology()
        D = topology.dim()
        ct = mesh.type()
        nv, nc = mesh.num_vertices(), mesh.num_cells()
        v0, v1 = local_range(nv, rank, num_processes)
        c0, c1 = local_range(nc, rank, num_processes)
        data = cls(
            tdim=D,
            gdim=mesh.geometry().dim(),
            cell_type=ct.cell_type(),
            num_global_vertices=nv,
            num_global_cells=nc,
            vertex_indices=np.arange(v0, v1, dtype=np.int64),
            vertex_coordinates=mesh.coordinates()[v0:v1].copy(),
            global_cell_indices=np.arange(c0, c1, dtype=np.int64),
            cell_vertices=mesh.cells()[c0:c1].copy(),
            num_vertices_per_cell=ct.num_vertices(),
        )

        domains = mesh.domains()
        for d in range(domains.max_dim() + 1):
            markers = domains.markers(d)
            if not markers:
                continue
            entries: List[Tuple[int, int, int]] = []
            if d == D:
                entries = [(c, 0, v) for c, v in sorted(markers.items())]
            else:
                mesh.init(d, D)
                for e, value in sorted(markers.items()):
                    c = int(topology(d, D)(e)[0])
                    if d == 0:
                        local = int(np.flatnonzero(topology(D, 0)(c) == e)[0])
                    else:
                        local = int(np.flatnonzero(topology(D, d)(c) == e)[0])
                    entries.append((c, local, value))
            # Every partition sees the markers of its own cells
            data.domain_data[d] = [t for t in entries if c0 <= t[0] < c1]
        return data

    def __str__(self) -> str:
        return (
            f"<LocalMeshData {self.cell_type} tdim={self.tdim} gdim={self.gdim} "
            f"vertices={self.vertex_indices.shape[0]}/{self.num_global_vertices} "
            f"cells={self.global_cell_indices.shape[0]}/{self.num_global_cells}>"
        )
