"""Construction of partitioned meshes from per-partition input.

Partitions are simulated in-process: `distribute` receives the
LocalMeshData of every rank and returns one Mesh per rank. Each local mesh
numbers its vertices in ascending global order, keeps the global indices of
its vertices and cells, and carries the domain markers that fall on its
entities. `number_entities` then agrees on global indices for entities of
an intermediate dimension and on global facet-cell incidence counts, which
is what boundary extraction needs to tell partition seams from the true
boundary.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .cell_types import create_cell_type
from .local_mesh_data import LocalMeshData
from .mesh_editor import MeshEditor
from .topology_computation import TopologyComputation

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


def _check_parts(parts: Sequence[LocalMeshData]) -> LocalMeshData:
    if not parts:
        _LOGGER.error("distribute: no partitions given")
        raise ValueError("At least one partition is required")
    first = parts[0]
    for rank, part in enumerate(parts):
        part.check()
        signature = (part.tdim, part.gdim, part.cell_type, part.num_global_vertices, part.num_global_cells)
        expected = (first.tdim, first.gdim, first.cell_type, first.num_global_vertices, first.num_global_cells)
        if signature != expected:
            _LOGGER.error("distribute: partition %d disagrees with partition 0: %s != %s", rank, signature, expected)
            raise ValueError(f"Partition {rank} describes a different mesh than partition 0")
    return first


def _gather_vertices(parts: Sequence[LocalMeshData], num_vertices: int, gdim: int) -> NDArray[np.float64]:
    """Collect vertex coordinates from the partitions that own them."""
    x = np.zeros((num_vertices, gdim), dtype=float)
    seen = np.zeros(num_vertices, dtype=bool)
    for part in parts:
        if part.vertex_indices.shape[0] == 0:
            continue
        x[part.vertex_indices] = part.vertex_coordinates
        seen[part.vertex_indices] = True
    needed = np.zeros(num_vertices, dtype=bool)
    for part in parts:
        needed[part.cell_vertices.reshape(-1)] = True
    missing = np.flatnonzero(needed & ~seen)
    if missing.shape[0]:
        _LOGGER.error("distribute: no partition owns vertices %s", missing[:10])
        raise ValueError(f"{missing.shape[0]} vertices referenced by cells are owned by no partition")
    return x


def _gather_cells(parts: Sequence[LocalMeshData], num_cells: int, nv: int) -> NDArray[np.int64]:
    cells = np.full((num_cells, nv), -1, dtype=np.int64)
    for part in parts:
        if part.global_cell_indices.shape[0]:
            cells[part.global_cell_indices] = part.cell_vertices
    return cells


def _attach_domains(
    mesh: "Mesh",
    domain_data: Dict[int, List[Tuple[int, int, int]]],
    global_cells: NDArray[np.int64],
) -> None:
    """Set the markers of `domain_data` that fall on entities of `mesh`."""
    topology = mesh.topology()
    D = topology.dim()
    cell_type = mesh.type()
    domains = mesh.domains()
    domains.init(D)
    vertex_lookup = {int(g): i for i, g in enumerate(topology.global_indices(0))}
    cell_lookup = {int(g): i for i, g in enumerate(topology.global_indices(D))}

    for dim in sorted(domain_data):
        entries = domain_data[dim]
        if not entries:
            continue
        if dim == D:
            for cell, _, value in entries:
                if cell in cell_lookup:
                    domains.set_marker(D, cell_lookup[cell], value)
        elif dim == 0:
            for cell, local_entity, value in entries:
                vertex = int(global_cells[cell][local_entity])
                if vertex in vertex_lookup:
                    domains.set_marker(0, vertex_lookup[vertex], value)
        else:
            keys = TopologyComputation.entity_keys(mesh, dim)
            lookup = {tuple(k): i for i, k in enumerate(keys.tolist())}
            for cell, local_entity, value in entries:
                entity = cell_type.create_entities(dim, global_cells[cell].tolist())[local_entity]
                key = tuple(sorted(int(v) for v in entity))
                if key in lookup:
                    domains.set_marker(dim, lookup[key], value)


def distribute(parts: Sequence[LocalMeshData]) -> List["Mesh"]:
    """Build the local mesh of every partition.

    Args:
        parts: LocalMeshData of ranks 0..n-1, all describing the same mesh.

    Returns:
        One Mesh per partition, in rank order.

    Raises:
        ValueError: If the partitions are inconsistent or a vertex used by a
            cell is owned by no partition.
    """
    from .mesh import Mesh

    first = _check_parts(parts)
    cell_type = create_cell_type(first.cell_type)
    x = _gather_vertices(parts, first.num_global_vertices, first.gdim)
    global_cells = _gather_cells(parts, first.num_global_cells, cell_type.num_vertices())

    domain_data: Dict[int, List[Tuple[int, int, int]]] = {}
    for part in parts:
        for dim, entries in part.domain_data.items():
            domain_data.setdefault(dim, []).extend(entries)

    meshes: List[Mesh] = []
    for rank, part in enumerate(parts):
        # Owned vertices stay even when no local cell uses them
        local_to_global = np.union1d(
            part.vertex_indices, part.cell_vertices.reshape(-1)
        ).astype(np.int64)
        local_cells = np.searchsorted(local_to_global, part.cell_vertices)

        mesh = Mesh()
        editor = MeshEditor()
        editor.open(mesh, cell_type, first.tdim, first.gdim)
        editor.init_vertices(local_to_global.shape[0], first.num_global_vertices)
        for i, g in enumerate(local_to_global):
            editor.add_vertex(i, x[g], int(g))
        editor.init_cells(part.global_cell_indices.shape[0], first.num_global_cells)
        for c, (g, row) in enumerate(zip(part.global_cell_indices, local_cells)):
            editor.add_cell(c, row, int(g))
        editor.close()

        _attach_domains(mesh, domain_data, global_cells)
        _LOGGER.debug("Partition %d: %d vertices, %d cells", rank, mesh.num_vertices(), mesh.num_cells())
        meshes.append(mesh)

    _LOGGER.info(
        "Distributed mesh of %d vertices and %d cells over %d partitions",
        first.num_global_vertices,
        first.num_global_cells,
        len(parts),
    )
    return meshes


def number_entities(meshes: Sequence["Mesh"], dim: int) -> int:
    """Assign global indices to the entities of dimension `dim`.

    Entities are identified across partitions by their sorted global vertex
    tuple; global indices of intermediate dimensions follow the
    lexicographic order of these keys. For facets the number of incident
    cells over all partitions is stored as well.

    Returns:
        The global number of entities of dimension `dim`.
    """
    if not meshes:
        return 0
    D = meshes[0].topology().dim()
    if dim < 0 or dim > D:
        _LOGGER.error("number_entities: illegal dimension %d for a mesh of dimension %d", dim, D)
        raise ValueError(f"Illegal entity dimension {dim} for a mesh of dimension {D}")

    local_indices: List[NDArray[np.int64]] = []
    if dim == 0 or dim == D:
        num_global = max(m.topology().size_global(dim) for m in meshes)
        for mesh in meshes:
            local_indices.append(mesh.topology().global_indices(dim))
    else:
        keys = [TopologyComputation.entity_keys(mesh, dim) for mesh in meshes]
        all_keys = np.concatenate(keys, axis=0)
        _, inverse = np.unique(all_keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        num_global = int(inverse.max()) + 1 if inverse.shape[0] else 0
        start = 0
        for mesh, k in zip(meshes, keys):
            idx = inverse[start : start + k.shape[0]].astype(np.int64)
            start += k.shape[0]
            topology = mesh.topology()
            topology.init(dim, k.shape[0], num_global)
            topology.set_global_indices(dim, idx)
            local_indices.append(idx)

    if dim == D - 1:
        counts = np.zeros(num_global, dtype=np.int64)
        for mesh, idx in zip(meshes, local_indices):
            mesh.init(D - 1, D)
            np.add.at(counts, idx, np.diff(mesh.topology()(D - 1, D).offsets()))
        for mesh, idx in zip(meshes, local_indices):
            mesh.topology().set_num_global_connections(D - 1, D, counts[idx])

    _LOGGER.info("Numbered %d global entities of dimension %d", num_global, dim)
    return num_global
