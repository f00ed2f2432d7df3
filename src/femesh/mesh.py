"""Module defining the Mesh class.

A Mesh composes:
  - MeshGeometry: vertex coordinates.
  - MeshTopology: entity counts and connectivity, computed on demand.
  - CellType: the single cell shape of the mesh.
  - MeshDomains: sparse subdomain/boundary labels.

It offers derived metrics (hmin/hmax, radius ratios), ordering and coloring,
point queries (containment, closest point, distance) and file I/O through
meshio or the XML mesh format.
"""
from __future__ import annotations

import hashlib
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import meshio
import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

from .cell_types import CellType, create_cell_type
from .geometry import MeshGeometry
from .local_mesh_data import LocalMeshData
from .mesh_coloring import compute_cell_colors, renumber_by_color
from .mesh_domains import MeshDomains
from .mesh_editor import MeshEditor
from .mesh_entity import Cell
from .mesh_function import MeshFunction
from .mesh_ordering import MeshOrdering
from .topology import MeshTopology
from .topology_computation import TopologyComputation

_LOGGER = logging.getLogger(__name__)


def _infer_cell_type(num_vertices_per_cell: int, gdim: int) -> CellType:
    """Guess the cell shape from the number of vertices per cell."""
    if num_vertices_per_cell == 4:
        return create_cell_type("tetrahedron" if gdim == 3 else "quadrilateral")
    names = {2: "interval", 3: "triangle", 8: "hexahedron"}
    if num_vertices_per_cell not in names:
        _LOGGER.error("Mesh: cannot infer a cell type with %d vertices", num_vertices_per_cell)
        raise ValueError(f"Cannot infer a cell type with {num_vertices_per_cell} vertices per cell")
    return create_cell_type(names[num_vertices_per_cell])


class Mesh:
    """Unstructured mesh of a single cell shape.

    Args:
        filename (Optional[str]): File to read (`.xml` or any meshio format).
        verts (Optional[NDArray[Any]]): Vertex coordinates (n_vertices×gdim).
        connectivity (Optional[NDArray[Any]]): Cell vertices (n_cells×nv).
        cell_type (Optional[str]): Cell shape of `connectivity`; inferred
            from the number of vertices per cell when omitted.

    Raises:
        ValueError: If only one of `verts` and `connectivity` is given.
    """

    def __init__(
        self,
        filename: Optional[str] = None,
        verts: Optional[NDArray[Any]] = None,
        connectivity: Optional[NDArray[Any]] = None,
        cell_type: Optional[Union[str, CellType]] = None,
    ) -> None:
        self._geometry = MeshGeometry()
        self._topology = MeshTopology()
        self._domains = MeshDomains()
        self._cell_type: Optional[CellType] = None
        self._data: Dict[str, Any] = {}
        self._ordered = False
        self._cell_orientations: List[int] = []
        self._search: Optional[Tuple[NDArray[Any], NDArray[Any], cKDTree]] = None

        if filename is not None:
            self._read(filename)
        elif verts is not None or connectivity is not None:
            if verts is None or connectivity is None:
                _LOGGER.error("Mesh: both verts and connectivity are required")
                raise ValueError("Both verts and connectivity must be provided")
            self._build(verts, connectivity, cell_type)

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #
    def _build(
        self,
        verts: NDArray[Any],
        connectivity: NDArray[Any],
        cell_type: Optional[Union[str, CellType]] = None,
    ) -> None:
        verts = np.asarray(verts, dtype=float)
        if verts.ndim == 1:
            verts = verts.reshape(-1, 1)
        connectivity = np.asarray(connectivity, dtype=np.int64)
        ct = (
            create_cell_type(cell_type)
            if cell_type is not None
            else _infer_cell_type(connectivity.shape[1], verts.shape[1])
        )
        editor = MeshEditor()
        editor.open(self, ct, ct.dim(), verts.shape[1])
        editor.init_vertices(verts.shape[0])
        for i, x in enumerate(verts):
            editor.add_vertex(i, x)
        editor.init_cells(connectivity.shape[0])
        for c, row in enumerate(connectivity):
            editor.add_cell(c, row)
        editor.close()

    def _read(self, filename: str) -> None:
        if str(filename).endswith(".xml"):
            from utils.xml_local_mesh_reader import XMLLocalMeshReader

            data = XMLLocalMeshReader(filename).read()
            self._assign(Mesh.from_local_mesh_data(data))
            return

        try:
            m = meshio.read(filename)
        except Exception:
            _LOGGER.exception("Mesh: failed to read '%s'", filename)
            raise

        # Pick the supported cell block of highest dimension
        best: Optional[Tuple[int, CellType]] = None
        for i, block in enumerate(m.cells):
            try:
                ct = create_cell_type(block.type)
            except ValueError:
                _LOGGER.debug("Mesh: skipping cell block of type %s", block.type)
                continue
            if best is None or ct.dim() > best[1].dim():
                best = (i, ct)
        if best is None:
            _LOGGER.error("Mesh: no supported cells in '%s'", filename)
            raise ValueError(f"No supported cell block in {filename}")
        block_index, ct = best

        cells = np.asarray(m.cells[block_index].data, dtype=np.int64)
        perm = ct.vtk_permutation()
        if perm is not None:
            cells = cells[:, np.argsort(perm)]
        points = np.asarray(m.points, dtype=float)
        gdim = points.shape[1]
        while gdim > ct.dim() and not np.any(points[:, gdim - 1]):
            gdim -= 1
        self._build(points[:, :gdim], cells, ct)

        labels = m.cell_data.get("domains")
        if labels is not None:
            D = ct.dim()
            for c, value in enumerate(np.asarray(labels[block_index]).reshape(-1)):
                if value >= 0:
                    self._domains.set_marker(D, c, int(value))
        _LOGGER.info(
            "Mesh read from '%s': %d vertices, %d %s",
            filename,
            self.num_vertices(),
            self.num_cells(),
            ct.description(True),
        )

    def _assign(self, other: "Mesh") -> None:
        self.__dict__.update(other.__dict__)

    @classmethod
    def from_local_mesh_data(cls, data: LocalMeshData) -> "Mesh":
        """Build a serial mesh from a complete LocalMeshData record.

        Raises:
            ValueError: If the record holds only part of the mesh; use
                `mesh_partitioning.distribute` for partitioned input.
        """
        from .mesh_partitioning import distribute

        if (
            data.vertex_indices.shape[0] != data.num_global_vertices
            or data.global_cell_indices.shape[0] != data.num_global_cells
        ):
            _LOGGER.error("Mesh.from_local_mesh_data: record holds a partial mesh")
            raise ValueError("LocalMeshData holds only part of the mesh")
        return distribute([data])[0]

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #
    def geometry(self) -> MeshGeometry:
        return self._geometry

    def topology(self) -> MeshTopology:
        return self._topology

    def domains(self) -> MeshDomains:
        return self._domains

    def data(self) -> Dict[str, Any]:
        return self._data

    def type(self) -> CellType:
        """Return the cell shape.

        Raises:
            RuntimeError: If the mesh has not been built.
        """
        if self._cell_type is None:
            _LOGGER.error("Mesh.type: mesh has no cells yet")
            raise RuntimeError("Mesh has not been built; cell type is unknown")
        return self._cell_type

    def coordinates(self) -> NDArray[Any]:
        return self._geometry.coordinates()

    def cells(self) -> NDArray[np.int64]:
        """Return the cell-vertex table as a (num_cells, nv) array view."""
        return self._topology(self._topology.dim(), 0).array()

    def num_vertices(self) -> int:
        return self._topology.size(0)

    def num_edges(self) -> int:
        return self._topology.size(1)

    def num_faces(self) -> int:
        return self._topology.size(2)

    def num_facets(self) -> int:
        return self._topology.size(self._topology.dim() - 1)

    def num_cells(self) -> int:
        return self._topology.size(self._topology.dim())

    def num_entities(self, dim: int) -> int:
        return self._topology.size(dim)

    def size(self, dim: int) -> int:
        return self._topology.size(dim)

    def size_global(self, dim: int) -> int:
        return self._topology.size_global(dim)

    # ------------------------------------------------------------------ #
    # Topology
    # ------------------------------------------------------------------ #
    def init(self, d0: Optional[int] = None, d1: Optional[int] = None) -> Optional[int]:
        """Compute entities and connectivity on demand.

        `init()` computes everything, `init(d)` the entities of dimension
        `d` (returning their number) and `init(d0, d1)` connectivity
        (d0, d1). New tables of an ordered mesh are ordered as well.
        """
        if self._cell_type is None:
            return 0
        topology = self._topology
        D = topology.dim()
        if d0 is None:
            for d in range(D + 1):
                self.init(d)
            for a in range(D + 1):
                for b in range(D + 1):
                    self.init(a, b)
            return None
        if d1 is None:
            existing = d0 in (0, D) or (topology.have(d0, 0) and topology.have(D, d0))
            n = TopologyComputation.compute_entities(self, d0)
            if not existing and self._ordered:
                MeshOrdering.order_entities(self, d0)
            return n
        if topology.size(D) > 0:
            # Connectivity is built from ordered entity rows
            self.init(d0)
            self.init(d1)
        TopologyComputation.compute_connectivity(self, d0, d1)
        return None

    def clear(self) -> None:
        self._geometry.clear()
        self._topology.clear()
        self._domains = MeshDomains()
        self._cell_type = None
        self._data = {}
        self._ordered = False
        self._cell_orientations = []
        self._search = None

    def clean(self) -> None:
        """Drop derived connectivity, keeping cells, vertices and labels."""
        self._topology.clean()

    def order(self) -> None:
        """Order the local numbering of all cells (a no-op if already ordered)."""
        if self._ordered:
            _LOGGER.debug("Mesh has already been ordered, no need to reorder entities")
            return
        MeshOrdering.order(self)
        self._ordered = True

    def ordered(self) -> bool:
        if not self._ordered and self._cell_type is not None:
            self._ordered = MeshOrdering.ordered(self)
        return self._ordered

    def color(self, coloring_type: Union[str, int] = "vertex") -> MeshFunction:
        """Color the cells so that cells sharing a vertex/edge/facet differ."""
        colors = compute_cell_colors(self, coloring_type)
        self._data[f"colors {coloring_type}"] = colors
        return colors

    def renumber_by_color(self, coloring_type: Union[str, int] = "vertex") -> "Mesh":
        return renumber_by_color(self, coloring_type)

    # ------------------------------------------------------------------ #
    # Transformations
    # ------------------------------------------------------------------ #
    def rotate(self, angle: float, axis: int = 2, point: Optional[Sequence[float]] = None) -> None:
        """Rotate the mesh by `angle` degrees about `axis` through `point`.

        The default center is the vertex average.

        Raises:
            ValueError: For an illegal axis or a 1D mesh.
        """
        gdim = self._geometry.dim()
        x = self.coordinates()
        center = x.mean(axis=0) if point is None else np.asarray(point, dtype=float)[:gdim]
        theta = math.radians(angle)
        c, s = math.cos(theta), math.sin(theta)
        if gdim == 2 and axis == 2:
            R = np.array([[c, -s], [s, c]])
        elif gdim == 3 and axis == 0:
            R = np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])
        elif gdim == 3 and axis == 1:
            R = np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
        elif gdim == 3 and axis == 2:
            R = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
        else:
            _LOGGER.error("Mesh.rotate: cannot rotate about axis %d in %dD", axis, gdim)
            raise ValueError(f"Cannot rotate a mesh in {gdim}D about axis {axis}")
        x[:] = (x - center) @ R.T + center
        self._search = None

    def translate(self, offset: Sequence[float]) -> None:
        gdim = self._geometry.dim()
        offset = np.asarray(offset, dtype=float).reshape(-1)
        if offset.shape[0] != gdim:
            _LOGGER.error("Mesh.translate: offset of length %d in %dD", offset.shape[0], gdim)
            raise ValueError(f"Offset must have {gdim} components")
        self.coordinates()[:] += offset
        self._search = None

    # ------------------------------------------------------------------ #
    # Point queries
    # ------------------------------------------------------------------ #
    def _as_point(self, point: Sequence[float] | NDArray[Any]) -> NDArray[Any]:
        p = np.zeros(self._geometry.dim(), dtype=float)
        q = np.asarray(point, dtype=float).reshape(-1)
        n = min(q.shape[0], p.shape[0])
        p[:n] = q[:n]
        return p

    def _cell_search_data(self) -> Tuple[NDArray[Any], NDArray[Any], cKDTree]:
        if self._search is None:
            pts = self.coordinates()[self.cells()]
            self._search = (pts.min(axis=1), pts.max(axis=1), cKDTree(pts.mean(axis=1)))
        return self._search

    def intersected_cells(self, point: Sequence[float] | NDArray[Any]) -> List[int]:
        """Return the indices of all cells containing `point`."""
        if self.num_cells() == 0:
            return []
        p = self._as_point(point)
        lo, hi, _ = self._cell_search_data()
        tol = 1e-12 * (1.0 + float(np.abs(hi - lo).max()))
        inside = np.all((lo - tol <= p) & (p <= hi + tol), axis=1)
        ct = self.type()
        return [int(c) for c in np.flatnonzero(inside) if ct.contains(Cell(self, int(c)), p)]

    def intersected_cell(self, point: Sequence[float] | NDArray[Any]) -> int:
        """Return the first cell containing `point`, or -1."""
        found = self.intersected_cells(point)
        return found[0] if found else -1

    def _closest(self, point: Sequence[float] | NDArray[Any]) -> Tuple[int, float]:
        if self.num_cells() == 0:
            _LOGGER.error("Mesh: closest cell query on an empty mesh")
            raise ValueError("Cannot search an empty mesh")
        p = self._as_point(point)
        lo, hi, tree = self._cell_search_data()
        ct = self.type()
        _, first = tree.query(p)
        best_c = int(first)
        best = ct.squared_distance(Cell(self, best_c), p)
        gap = np.maximum(lo - p, 0.0) + np.maximum(p - hi, 0.0)
        bbox_d2 = (gap * gap).sum(axis=1)
        for c in np.flatnonzero(bbox_d2 <= best):
            c = int(c)
            d2 = ct.squared_distance(Cell(self, c), p)
            if d2 < best or (d2 == best and c < best_c):
                best, best_c = d2, c
        return best_c, best

    def closest_cell(self, point: Sequence[float] | NDArray[Any]) -> int:
        return self._closest(point)[0]

    def closest_point_and_cell(self, point: Sequence[float] | NDArray[Any]) -> Tuple[NDArray[Any], int]:
        c, _ = self._closest(point)
        q = self.type().closest_point(Cell(self, c), self._as_point(point))
        return q[: self._geometry.dim()], c

    def closest_point(self, point: Sequence[float] | NDArray[Any]) -> NDArray[Any]:
        return self.closest_point_and_cell(point)[0]

    def distance(self, point: Sequence[float] | NDArray[Any]) -> float:
        return math.sqrt(self._closest(point)[1])

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #
    def _cell_values(self, op: str) -> NDArray[Any]:
        ct = self.type()
        fn = getattr(ct, op)
        return np.array([fn(Cell(self, c)) for c in range(self.num_cells())], dtype=float)

    def hmin(self) -> float:
        """Return the smallest cell diameter."""
        return float(self._cell_values("diameter").min())

    def hmax(self) -> float:
        """Return the largest cell diameter."""
        return float(self._cell_values("diameter").max())

    def rmin(self) -> float:
        """Return the smallest cell inradius."""
        return float(self._cell_values("inradius").min())

    def rmax(self) -> float:
        """Return the largest cell inradius."""
        return float(self._cell_values("inradius").max())

    def radius_ratio_min(self) -> float:
        return float(self._cell_values("radius_ratio").min())

    def radius_ratio_max(self) -> float:
        return float(self._cell_values("radius_ratio").max())

    # ------------------------------------------------------------------ #
    # Orientation
    # ------------------------------------------------------------------ #
    def cell_orientations(self) -> List[int]:
        return self._cell_orientations

    def init_cell_orientations(self, global_normal: Sequence[float]) -> None:
        """Mark cells whose normal points away from `global_normal` with 1."""
        ct = self.type()
        self._cell_orientations = [
            ct.orientation(Cell(self, c), global_normal) for c in range(self.num_cells())
        ]
        _LOGGER.debug(
            "Cell orientations: %d of %d flipped",
            sum(self._cell_orientations),
            self.num_cells(),
        )

    # ------------------------------------------------------------------ #
    # Misc
    # ------------------------------------------------------------------ #
    def hash(self) -> int:
        """Return a hash of topology and geometry."""
        h = hashlib.sha1()
        h.update(self._topology.hash().to_bytes(8, "little"))
        h.update(np.ascontiguousarray(self._geometry.x()).tobytes())
        return int.from_bytes(h.digest()[:8], "little")

    def str(self, verbose: bool = False) -> str:
        if self._cell_type is None:
            return "<Mesh (empty)>"
        s = (
            f"<Mesh of topological dimension {self._topology.dim()} "
            f"({self._cell_type.description(True)}) with {self.num_vertices()} vertices "
            f"and {self.num_cells()} cells, {'ordered' if self._ordered else 'unordered'}>"
        )
        if verbose:
            s += "\n" + repr(self._geometry) + "\n" + self._topology.str(True)
        return s

    def __repr__(self) -> str:
        return self.str(False)

    def write(
        self,
        filename: str,
        point_data: Optional[Dict[str, NDArray[Any]]] = None,
        cell_data: Optional[Dict[str, NDArray[Any]]] = None,
    ) -> None:
        """Write the mesh (and optional point/cell data) to `filename`.

        `.xml` files use the XML mesh format (cells, vertices and domain
        labels); any other suffix goes through meshio. Cell labels are
        written as the cell data array "domains" unless given explicitly.

        Raises:
            ValueError: If provided data have incompatible lengths.
            Exception: If the underlying mesh writer fails.
        """
        if str(filename).endswith(".xml"):
            from utils.xml_mesh_writer import XMLMeshWriter

            if point_data or cell_data:
                _LOGGER.warning("write: point/cell data are not stored in XML mesh files")
            XMLMeshWriter.write_mesh(self, filename)
            return

        try:
            ct = self.type()
            pts = np.zeros((self.num_vertices(), 3), dtype=float)
            pts[:, : self._geometry.dim()] = self.coordinates()
            con = np.asarray(self.cells(), dtype=int)
            perm = ct.vtk_permutation()
            if perm is not None:
                con = con[:, list(perm)]
            m = meshio.Mesh(points=pts, cells=[(ct.meshio_name(), con)])

            if point_data:
                for name, arr in point_data.items():
                    arr_np = np.asarray(arr)
                    if arr_np.shape[0] != pts.shape[0]:
                        msg = (
                            f"point_data['{name}'] length {arr_np.shape[0]} "
                            f"!= n_vertices {pts.shape[0]}"
                        )
                        _LOGGER.error("write: %s", msg)
                        raise ValueError(msg)
                    m.point_data[name] = arr_np

            normalized: Dict[str, List[NDArray[Any]]] = {}
            D = self._topology.dim()
            if self._domains.num_marked(D) and not (cell_data and "domains" in cell_data):
                normalized["domains"] = [self._domains.mesh_function(self, D).array()]
            if cell_data:
                n_cells = con.shape[0]
                for name, arr in cell_data.items():
                    arr_np = np.asarray(arr)
                    if arr_np.shape[0] != n_cells:
                        msg = (
                            f"cell_data['{name}'] length {arr_np.shape[0]} "
                            f"!= n_cells {n_cells}"
                        )
                        _LOGGER.error("write: %s", msg)
                        raise ValueError(msg)
                    normalized[name] = [arr_np]
            if normalized:
                m.cell_data = normalized

            m.write(filename)
            _LOGGER.info(
                "Mesh written to '%s' (vertices=%d, cells=%d, point_data=%d, cell_data=%d)",
                filename,
                pts.shape[0],
                con.shape[0],
                0 if not point_data else len(point_data),
                len(normalized),
            )

        except Exception:
            _LOGGER.exception("write failed for '%s'.", filename)
            raise

