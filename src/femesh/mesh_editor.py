"""Module defining MeshEditor, the incremental builder of a mesh.

Usage follows a fixed sequence: open the editor on a mesh, set the number of
vertices and cells, add vertices and cells in index order, then close.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .cell_types import CellType, create_cell_type
from .config import config

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)


class MeshEditor:
    """Builds the geometry and cell-vertex topology of a mesh."""

    def __init__(self) -> None:
        self._mesh: Optional["Mesh"] = None
        self._reset()

    def _reset(self) -> None:
        self._tdim = 0
        self._gdim = 0
        self._num_vertices: Optional[int] = None
        self._num_cells: Optional[int] = None
        self._next_vertex = 0
        self._next_cell = 0
        self._cells: NDArray[np.int64] = np.zeros((0, 0), dtype=np.int64)
        self._vertex_globals: Optional[NDArray[np.int64]] = None
        self._cell_globals: Optional[NDArray[np.int64]] = None

    def open(
        self,
        mesh: "Mesh",
        cell_type: str | int | CellType,
        tdim: Optional[int] = None,
        gdim: Optional[int] = None,
    ) -> None:
        """Open `mesh` for editing; any previous content is cleared.

        Args:
            mesh: Mesh to build.
            cell_type: Cell shape name, simplex dimension or CellType.
            tdim: Topological dimension (must match the cell shape).
            gdim: Geometric dimension (defaults to the topological dimension).

        Raises:
            ValueError: If the dimensions are inconsistent.
        """
        ct = create_cell_type(cell_type)
        tdim = ct.dim() if tdim is None else int(tdim)
        gdim = tdim if gdim is None else int(gdim)
        if tdim != ct.dim():
            _LOGGER.error(
                "MeshEditor.open: topological dimension %d does not match %s",
                tdim,
                ct.cell_type(),
            )
            raise ValueError(
                f"Topological dimension {tdim} does not match cell type {ct.cell_type()}"
            )
        if gdim < tdim or gdim > 3:
            _LOGGER.error("MeshEditor.open: illegal geometric dimension %d", gdim)
            raise ValueError(f"Illegal geometric dimension {gdim} for a {tdim}D mesh")

        mesh.clear()
        mesh._cell_type = ct
        mesh.topology().init(tdim)
        mesh.geometry().init(gdim, 0)
        mesh.domains().init(tdim)

        self._reset()
        self._mesh = mesh
        self._tdim = tdim
        self._gdim = gdim
        _LOGGER.debug("Opened mesh editor: %s, tdim=%d, gdim=%d", ct.cell_type(), tdim, gdim)

    def _check_open(self, op: str) -> "Mesh":
        if self._mesh is None:
            _LOGGER.error("MeshEditor.%s: editor is not open", op)
            raise RuntimeError(f"MeshEditor.{op}: mesh editor has not been opened")
        return self._mesh

    def init_vertices(self, num_vertices: int, num_global: Optional[int] = None) -> None:
        """Set the number of local (and optionally global) vertices."""
        mesh = self._check_open("init_vertices")
        mesh.topology().init(0, num_vertices, num_global)
        mesh.geometry().init(self._gdim, num_vertices)
        self._num_vertices = int(num_vertices)
        self._next_vertex = 0
        self._vertex_globals = None

    def init_cells(self, num_cells: int, num_global: Optional[int] = None) -> None:
        """Set the number of local (and optionally global) cells."""
        mesh = self._check_open("init_cells")
        mesh.topology().init(self._tdim, num_cells, num_global)
        nv = mesh.type().num_vertices()
        self._cells = np.full((int(num_cells), nv), -1, dtype=np.int64)
        self._num_cells = int(num_cells)
        self._next_cell = 0
        self._cell_globals = None

    def add_vertex(
        self,
        index: int,
        x: Sequence[float] | NDArray[Any],
        global_index: Optional[int] = None,
    ) -> None:
        """Add vertex `index` at point `x`.

        Raises:
            ValueError: If vertices are not initialized, `index` is not the
                next vertex or `x` has the wrong length.
        """
        mesh = self._check_open("add_vertex")
        if self._num_vertices is None:
            _LOGGER.error("MeshEditor.add_vertex: number of vertices not set")
            raise ValueError("Number of vertices must be set before adding vertices")
        if index != self._next_vertex or index >= self._num_vertices:
            _LOGGER.error(
                "MeshEditor.add_vertex: got vertex %d, expected %d of %d",
                index,
                self._next_vertex,
                self._num_vertices,
            )
            raise ValueError(
                f"Vertex index {index} out of order or out of range "
                f"(expected {self._next_vertex}, {self._num_vertices} vertices)"
            )
        mesh.geometry().set(index, x)
        if global_index is not None:
            if self._vertex_globals is None:
                self._vertex_globals = np.arange(self._num_vertices, dtype=np.int64)
            self._vertex_globals[index] = global_index
        self._next_vertex += 1

    def add_cell(
        self,
        index: int,
        vertices: Sequence[int] | NDArray[Any],
        global_index: Optional[int] = None,
    ) -> None:
        """Add cell `index` with the given local vertex indices.

        Raises:
            ValueError: If cells are not initialized, `index` is not the next
                cell, the vertex count is wrong or a vertex is out of range.
        """
        mesh = self._check_open("add_cell")
        if self._num_cells is None or self._num_vertices is None:
            _LOGGER.error("MeshEditor.add_cell: number of vertices or cells not set")
            raise ValueError("Number of vertices and cells must be set before adding cells")
        if index != self._next_cell or index >= self._num_cells:
            _LOGGER.error(
                "MeshEditor.add_cell: got cell %d, expected %d of %d",
                index,
                self._next_cell,
                self._num_cells,
            )
            raise ValueError(
                f"Cell index {index} out of order or out of range "
                f"(expected {self._next_cell}, {self._num_cells} cells)"
            )
        v = np.asarray(vertices, dtype=np.int64).reshape(-1)
        if v.shape[0] != self._cells.shape[1]:
            _LOGGER.error(
                "MeshEditor.add_cell: cell %d has %d vertices, expected %d",
                index,
                v.shape[0],
                self._cells.shape[1],
            )
            raise ValueError(
                f"A {mesh.type().cell_type()} needs {self._cells.shape[1]} vertices, "
                f"got {v.shape[0]}"
            )
        if np.any(v < 0) or np.any(v >= self._num_vertices):
            _LOGGER.error("MeshEditor.add_cell: cell %d has vertices %s out of range", index, v)
            raise ValueError(f"Cell {index} refers to a vertex out of range")
        self._cells[index] = v
        if global_index is not None:
            if self._cell_globals is None:
                self._cell_globals = np.arange(self._num_cells, dtype=np.int64)
            self._cell_globals[index] = global_index
        self._next_cell += 1

    def close(self, order: Optional[bool] = None) -> None:
        """Finish editing; optionally order the mesh.

        Args:
            order: Whether to order the mesh (defaults to `config.order_on_close`).

        Raises:
            ValueError: If some vertex or cell was never added.
        """
        mesh = self._check_open("close")
        num_vertices = self._num_vertices or 0
        num_cells = self._num_cells or 0
        if self._next_vertex != num_vertices or self._next_cell != num_cells:
            _LOGGER.error(
                "MeshEditor.close: added %d/%d vertices and %d/%d cells",
                self._next_vertex,
                num_vertices,
                self._next_cell,
                num_cells,
            )
            raise ValueError("Not all vertices and cells have been added")

        topology = mesh.topology()
        if self._num_vertices is None:
            topology.init(0, 0)
        if self._num_cells is None:
            topology.init(self._tdim, 0)
        topology(self._tdim, 0).set(self._cells)
        if self._vertex_globals is not None:
            topology.set_global_indices(0, self._vertex_globals)
        if self._cell_globals is not None:
            topology.set_global_indices(self._tdim, self._cell_globals)

        self._mesh = None
        self._reset()
        if config.order_on_close if order is None else order:
            mesh.order()
        _LOGGER.info(
            "Mesh editor closed: %d vertices, %d %s",
            mesh.num_vertices(),
            mesh.num_cells(),
            mesh.type().description(mesh.num_cells() != 1),
        )
