"""Extraction of boundary meshes.

The boundary of a mesh of dimension D is the mesh of dimension D-1 formed by
facets incident to a single cell. Boundary cells are oriented so that their
normal points out of the parent mesh, and index maps lead back from boundary
vertices and cells to parent vertices and facets.
"""
from __future__ import annotations

import logging
from typing import Dict, List

import numpy as np
from numpy.typing import NDArray

from .mesh import Mesh
from .mesh_editor import MeshEditor
from .mesh_function import MeshFunction

_LOGGER = logging.getLogger(__name__)

BOUNDARY_TYPES = ("exterior", "interior", "local")


class BoundaryComputation:
    """Builds boundary meshes (stateless)."""

    @staticmethod
    def compute_boundary(mesh: Mesh, kind: str, boundary: "BoundaryMesh") -> None:
        """Fill `boundary` with the facets of `mesh` selected by `kind`.

        Args:
            mesh: Parent mesh.
            kind: "exterior" keeps facets with one incident cell globally,
                "interior" facets with one cell locally but more globally
                (partition seams), "local" both.
            boundary: Mesh receiving the boundary.

        Raises:
            ValueError: For an unknown `kind` or a mesh whose facets are vertices.
        """
        if kind not in BOUNDARY_TYPES:
            _LOGGER.error("compute_boundary: unknown boundary type %r", kind)
            raise ValueError(f"Unknown boundary type ({kind})")
        exterior = kind in ("exterior", "local")
        interior = kind in ("interior", "local")

        topology = mesh.topology()
        D = topology.dim()
        facet_type = mesh.type().facet_type()
        if facet_type is None:
            _LOGGER.error("compute_boundary: facets of a %s mesh are vertices", mesh.type().cell_type())
            raise ValueError("Boundary meshes of vertex cells are not supported")

        mesh.init(D - 1, D)
        facet_cells = topology(D - 1, D)
        facet_vertices = topology(D - 1, 0)
        num_vertices = mesh.num_vertices()

        # Select facets and number boundary vertices on first encounter
        boundary_vertices = np.full(num_vertices, -1, dtype=np.int64)
        num_boundary_vertices = 0
        selected: List[int] = []
        for f in range(mesh.num_facets()):
            if facet_cells.size(f) != 1:
                continue
            global_exterior = facet_cells.num_global_connections(f) == 1
            if (global_exterior and exterior) or (not global_exterior and interior):
                selected.append(f)
                for v in facet_vertices(f):
                    if boundary_vertices[v] < 0:
                        boundary_vertices[v] = num_boundary_vertices
                        num_boundary_vertices += 1

        vertex_map = np.empty(num_boundary_vertices, dtype=np.int64)
        on_boundary = np.flatnonzero(boundary_vertices >= 0)
        vertex_map[boundary_vertices[on_boundary]] = on_boundary

        editor = MeshEditor()
        editor.open(boundary, facet_type, D - 1, mesh.geometry().dim())
        editor.init_vertices(num_boundary_vertices)
        vertex_globals = topology.global_indices(0)
        for i, v in enumerate(vertex_map):
            editor.add_vertex(i, mesh.geometry().x(int(v)), int(vertex_globals[v]))

        editor.init_cells(len(selected))
        for c, f in enumerate(selected):
            cell = boundary_vertices[facet_vertices(f)]
            BoundaryComputation.reorder(cell, mesh, f)
            editor.add_cell(c, cell)

        # Ordering would undo the outward orientation
        editor.close(order=False)

        boundary._entity_maps = {
            0: vertex_map,
            D - 1: np.asarray(selected, dtype=np.int64),
        }
        _LOGGER.info(
            "Computed %s boundary: %d vertices, %d cells",
            kind,
            num_boundary_vertices,
            len(selected),
        )

    @staticmethod
    def reorder(vertices: NDArray[np.int64], mesh: Mesh, facet: int) -> None:
        """Reorder boundary cell `vertices` in place to face out of the parent cell."""
        topology = mesh.topology()
        D = topology.dim()
        geometry = mesh.geometry()
        fv = topology(D - 1, 0)(facet)
        cell = int(topology(D - 1, D)(facet)[0])
        on_facet = set(fv.tolist())
        opposite = next(int(v) for v in topology(D, 0)(cell) if int(v) not in on_facet)
        p = geometry.point(opposite)
        if D == 1:
            return
        p0 = geometry.point(int(fv[0]))
        p1 = geometry.point(int(fv[1]))
        if D == 2:
            v = p1 - p0
            n = np.array([v[1], -v[0], 0.0])
        else:
            n = np.cross(p1 - p0, geometry.point(int(fv[2])) - p0)
        if n @ (p0 - p) < 0.0:
            if vertices.shape[0] == 4:
                # Swap the diagonal of a tensor-ordered quadrilateral
                vertices[[1, 2]] = vertices[[2, 1]]
            else:
                vertices[[0, 1]] = vertices[[1, 0]]


class BoundaryMesh(Mesh):
    """Boundary of a mesh as a mesh of one dimension lower.

    Args:
        mesh: Parent mesh.
        kind: "exterior" (default), "interior" or "local".
    """

    def __init__(self, mesh: Mesh, kind: str = "exterior") -> None:
        super().__init__()
        self._entity_maps: Dict[int, NDArray[np.int64]] = {}
        BoundaryComputation.compute_boundary(mesh, kind, self)

    def entity_map(self, dim: int) -> MeshFunction:
        """Map boundary entities of dimension `dim` to parent entities.

        Dimension 0 maps boundary vertices to parent vertices; the boundary
        cell dimension maps boundary cells to parent facets.
        """
        if dim not in self._entity_maps:
            _LOGGER.error("BoundaryMesh.entity_map: no map for dimension %d", dim)
            raise ValueError(f"No entity map of dimension {dim}")
        f = MeshFunction(self, dim, 0)
        f.array()[:] = self._entity_maps[dim]
        return f
