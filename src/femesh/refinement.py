"""Uniform refinement of simplex meshes."""
from __future__ import annotations

import logging

from .mesh import Mesh
from .mesh_editor import MeshEditor
from .mesh_entity import Cell

_LOGGER = logging.getLogger(__name__)

# Children per cell
_NUM_CHILDREN = {"interval": 2, "triangle": 4, "tetrahedron": 8}


def refine(mesh: Mesh) -> Mesh:
    """Return a uniformly refined copy of `mesh`.

    Every edge is split at its midpoint; the midpoint of edge `e` becomes
    vertex `num_vertices + e`. Cell markers are inherited by the children.

    Raises:
        ValueError: If the mesh is not made of simplices.
    """
    cell_type = mesh.type()
    if cell_type.cell_type() not in _NUM_CHILDREN:
        _LOGGER.error("refine: cannot refine a %s mesh", cell_type.cell_type())
        raise ValueError(f"Refinement is not implemented for {cell_type.description(True)}")

    D = mesh.topology().dim()
    mesh.init(1)
    if D > 1:
        mesh.init(D, 1)
    num_vertices = mesh.num_vertices()
    num_edges = mesh.num_edges() if D > 1 else mesh.num_cells()
    num_children = _NUM_CHILDREN[cell_type.cell_type()]

    refined = Mesh()
    editor = MeshEditor()
    editor.open(refined, cell_type, D, mesh.geometry().dim())
    editor.init_vertices(num_vertices + num_edges)
    x = mesh.coordinates()
    for v in range(num_vertices):
        editor.add_vertex(v, x[v])
    edge_vertices = mesh.topology()(1, 0).array()
    for e in range(num_edges):
        editor.add_vertex(num_vertices + e, x[edge_vertices[e]].mean(axis=0))

    editor.init_cells(num_children * mesh.num_cells())
    current_cell = 0
    for c in range(mesh.num_cells()):
        current_cell = cell_type.refine_cell(Cell(mesh, c), editor, current_cell)
    editor.close(order=True)

    markers = mesh.domains().markers(D) if mesh.domains().max_dim() >= D else {}
    for c, value in markers.items():
        for k in range(num_children):
            refined.domains().set_marker(D, num_children * c + k, value)

    _LOGGER.info(
        "Refined mesh: %d -> %d cells, %d -> %d vertices",
        mesh.num_cells(),
        refined.num_cells(),
        num_vertices,
        refined.num_vertices(),
    )
    return refined
