"""Greedy cell coloring and renumbering of cells by color.

Two cells are neighbours when they share an entity of the chosen dimension
(vertex, edge or facet). The adjacency graph is built as the product of the
sparse cell-entity incidence matrix with its transpose.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Union

import numpy as np
import scipy.sparse as sp

from .mesh_function import MeshFunction

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)

_COLORING_TYPES = {"vertex": 0, "edge": 1}


def coloring_dim(mesh: "Mesh", coloring_type: Union[str, int]) -> int:
    """Translate "vertex", "edge" or "facet" (or a dimension) into a dimension."""
    D = mesh.topology().dim()
    if isinstance(coloring_type, str):
        if coloring_type == "facet":
            dim = D - 1
        elif coloring_type in _COLORING_TYPES:
            dim = _COLORING_TYPES[coloring_type]
        else:
            _LOGGER.error("coloring_dim: unknown coloring type %r", coloring_type)
            raise ValueError(f"Unknown coloring type {coloring_type!r}")
    else:
        dim = int(coloring_type)
    if dim < 0 or dim >= D:
        _LOGGER.error("coloring_dim: illegal coloring dimension %d", dim)
        raise ValueError(f"Cannot color cells through entities of dimension {dim}")
    return dim


def cell_adjacency(mesh: "Mesh", dim: int) -> sp.csr_matrix:
    """Return the cell adjacency matrix for cells sharing a `dim`-entity."""
    D = mesh.topology().dim()
    mesh.init(D, dim)
    conn = mesh.topology()(D, dim)
    rows = np.repeat(np.arange(len(conn)), np.diff(conn.offsets()))
    incidence = sp.coo_matrix(
        (np.ones(rows.shape[0]), (rows, conn())),
        shape=(len(conn), mesh.num_entities(dim)),
    ).tocsr()
    adjacency = (incidence @ incidence.T).tocsr()
    adjacency.setdiag(0)
    adjacency.eliminate_zeros()
    return adjacency


def compute_cell_colors(mesh: "Mesh", coloring_type: Union[str, int] = "vertex") -> MeshFunction:
    """Color the cells greedily so that neighbouring cells differ in color.

    Cells are visited in index order and take the smallest color not used
    by an already colored neighbour.

    Returns:
        A cell MeshFunction holding the color of each cell.
    """
    dim = coloring_dim(mesh, coloring_type)
    adjacency = cell_adjacency(mesh, dim)
    num_cells = mesh.num_cells()
    colors = np.full(num_cells, -1, dtype=np.int64)
    indptr, indices = adjacency.indptr, adjacency.indices
    for c in range(num_cells):
        used = {int(colors[n]) for n in indices[indptr[c] : indptr[c + 1]] if colors[n] >= 0}
        color = 0
        while color in used:
            color += 1
        colors[c] = color

    f = MeshFunction(mesh, mesh.topology().dim(), 0)
    f.array()[:] = colors
    _LOGGER.info(
        "Colored %d cells with %d colors (%s adjacency)",
        num_cells,
        int(colors.max()) + 1 if num_cells else 0,
        coloring_type,
    )
    return f


def _copy_markers(mesh: "Mesh", new_mesh: "Mesh", old_to_new: np.ndarray) -> None:
    """Carry domain markers over to a mesh with permuted cells."""
    from .topology_computation import TopologyComputation

    domains = mesh.domains()
    D = mesh.topology().dim()
    for d in range(domains.max_dim() + 1):
        markers = domains.markers(d)
        if not markers:
            continue
        if d == 0:
            renumber = {v: v for v in markers}
        elif d == D:
            renumber = {c: int(old_to_new[c]) for c in markers}
        else:
            # Intermediate entities are renumbered by the new cell order
            old_keys = TopologyComputation.entity_keys(mesh, d, np.arange(mesh.num_vertices()))
            new_keys = TopologyComputation.entity_keys(new_mesh, d, np.arange(new_mesh.num_vertices()))
            lookup = {tuple(k): i for i, k in enumerate(new_keys.tolist())}
            renumber = {e: lookup[tuple(old_keys[e].tolist())] for e in markers}
        for entity, value in markers.items():
            new_mesh.domains().set_marker(d, renumber[entity], value)


def renumber_by_color(mesh: "Mesh", coloring_type: Union[str, int] = "vertex") -> "Mesh":
    """Return a copy of `mesh` with cells grouped by color.

    Cells keep their relative order within a color; vertices are unchanged.
    """
    from .mesh import Mesh
    from .mesh_editor import MeshEditor

    colors = compute_cell_colors(mesh, coloring_type).array()
    new_to_old = np.argsort(colors, kind="stable")
    old_to_new = np.empty_like(new_to_old)
    old_to_new[new_to_old] = np.arange(new_to_old.shape[0])

    topology = mesh.topology()
    D = topology.dim()
    cells = topology(D, 0)
    cell_globals = topology.global_indices(D)
    vertex_globals = topology.global_indices(0)

    new_mesh = Mesh()
    editor = MeshEditor()
    editor.open(new_mesh, mesh.type(), D, mesh.geometry().dim())
    editor.init_vertices(mesh.num_vertices(), topology.size_global(0))
    for v in range(mesh.num_vertices()):
        editor.add_vertex(v, mesh.geometry().x(v), int(vertex_globals[v]))
    editor.init_cells(mesh.num_cells(), topology.size_global(D))
    for new, old in enumerate(new_to_old):
        editor.add_cell(new, cells(int(old)), int(cell_globals[old]))
    editor.close(order=mesh.ordered())

    _copy_markers(mesh, new_mesh, old_to_new)
    return new_mesh
