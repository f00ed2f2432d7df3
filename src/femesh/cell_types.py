"""Module defining the CellType family.

A mesh selects exactly one shape for all of its cells. Each shape knows its
entity counts, how to create sub-entities from a vertex list, its geometric
formulas (volume, diameter, normals, containment and distance), the canonical
local ordering of its vertices and sub-entities, and how to refine itself.

Shapes:
  - IntervalCell
  - TriangleCell
  - TetrahedronCell
  - QuadrilateralCell
  - HexahedronCell

Vector valued results (normals, points) are returned as length-3 arrays.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .config import config

if TYPE_CHECKING:
    from .mesh_editor import MeshEditor
    from .mesh_entity import Cell, MeshEntity

_LOGGER = logging.getLogger(__name__)

Pattern = Tuple[Tuple[int, ...], ...]


def _pad3(x: NDArray[Any]) -> NDArray[Any]:
    p = np.zeros(3, dtype=float)
    p[: x.shape[0]] = x
    return p


def _points(entity: "MeshEntity") -> NDArray[Any]:
    """Return the vertex coordinates of `entity`, shape (nv, gdim)."""
    return entity.mesh().geometry().coordinates()[entity.entities(0)]


def _points3(entity: "MeshEntity") -> NDArray[Any]:
    """Return the vertex coordinates of `entity` padded to 3D, shape (nv, 3)."""
    x = _points(entity)
    p = np.zeros((x.shape[0], 3), dtype=float)
    p[:, : x.shape[1]] = x
    return p


def _normalize(v: NDArray[Any]) -> NDArray[Any]:
    n = float(np.linalg.norm(v))
    if n == 0.0:
        _LOGGER.error("Cannot normalize a zero vector")
        raise ValueError("Cannot compute a unit vector for a degenerate entity")
    return v / n


def simplex_volume(x: NDArray[Any]) -> float:
    """Return the d-volume of the simplex with vertex rows `x` in any dimension."""
    e = x[1:] - x[0]
    d = e.shape[0]
    gram = e @ e.T
    return math.sqrt(max(float(np.linalg.det(gram)), 0.0)) / math.factorial(d)


def closest_point_triangle(
    point: NDArray[Any], a: NDArray[Any], b: NDArray[Any], c: NDArray[Any]
) -> NDArray[Any]:
    """Return the point of triangle (a, b, c) closest to `point`.

    Follows Ericson, "Real-Time Collision Detection", 5.1.5: locate the
    Voronoi region (three vertices, three edges, interior) containing the
    projection of `point` and project onto that feature.
    """
    ab = b - a
    ac = c - a
    ap = point - a
    d1 = ab @ ap
    d2 = ac @ ap
    if d1 <= 0.0 and d2 <= 0.0:
        return a

    bp = point - b
    d3 = ab @ bp
    d4 = ac @ bp
    if d3 >= 0.0 and d4 <= d3:
        return b

    vc = d1 * d4 - d3 * d2
    if vc <= 0.0 and d1 >= 0.0 and d3 <= 0.0:
        return a + (d1 / (d1 - d3)) * ab

    cp = point - c
    d5 = ab @ cp
    d6 = ac @ cp
    if d6 >= 0.0 and d5 <= d6:
        return c

    vb = d5 * d2 - d1 * d6
    if vb <= 0.0 and d2 >= 0.0 and d6 <= 0.0:
        return a + (d2 / (d2 - d6)) * ac

    va = d3 * d6 - d5 * d4
    if va <= 0.0 and (d4 - d3) >= 0.0 and (d5 - d6) >= 0.0:
        w = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        return b + w * (c - b)

    denom = 1.0 / (va + vb + vc)
    return a + ab * (vb * denom) + ac * (vc * denom)


def squared_distance_triangle(
    point: NDArray[Any], a: NDArray[Any], b: NDArray[Any], c: NDArray[Any]
) -> float:
    """Return the squared distance from `point` to triangle (a, b, c)."""
    point, a, b, c = (_pad3(np.asarray(v, dtype=float)) for v in (point, a, b, c))
    q = closest_point_triangle(point, a, b, c)
    return float((point - q) @ (point - q))


def closest_point_segment(
    point: NDArray[Any], a: NDArray[Any], b: NDArray[Any]
) -> NDArray[Any]:
    """Return the point of segment (a, b) closest to `point`."""
    ab = b - a
    L = ab @ ab
    t = 0.0 if L == 0.0 else min(max(((point - a) @ ab) / L, 0.0), 1.0)
    return a + t * ab


def squared_distance_segment(
    point: NDArray[Any], a: NDArray[Any], b: NDArray[Any]
) -> float:
    """Return the squared distance from `point` to segment (a, b)."""
    point, a, b = (_pad3(np.asarray(v, dtype=float)) for v in (point, a, b))
    q = closest_point_segment(point, a, b)
    return float((point - q) @ (point - q))


def _triangle_contains(p: NDArray[Any], p0: NDArray[Any], p1: NDArray[Any], p2: NDArray[Any]) -> bool:
    # AP as a combination of AB and AC, solved through the normal equations
    v1 = p1 - p0
    v2 = p2 - p0
    v = p - p0
    a11 = v1 @ v1
    a12 = v1 @ v2
    a22 = v2 @ v2
    b1 = v @ v1
    b2 = v @ v2
    det = a11 * a22 - a12 * a12
    if det == 0.0:
        return False
    x1 = (a22 * b1 - a12 * b2) / det
    x2 = (-a12 * b1 + a11 * b2) / det
    eps = config.eps
    return bool(x1 > -eps and x2 > -eps and x1 + x2 < 1.0 + eps)


def _tetrahedron_contains(p: NDArray[Any], x: NDArray[Any]) -> bool:
    m = (x[1:] - x[0]).T
    if np.linalg.det(m) == 0.0:
        return False
    lam = np.linalg.solve(m, p - x[0])
    eps = config.eps
    return bool(lam.min() > -eps and lam.sum() < 1.0 + eps)


def _closest_on_faces(p: NDArray[Any], x: NDArray[Any], faces: Sequence[Tuple[int, int, int]]) -> NDArray[Any]:
    candidates = [closest_point_triangle(p, x[i], x[j], x[k]) for i, j, k in faces]
    d = [float((p - q) @ (p - q)) for q in candidates]
    return candidates[int(np.argmin(d))]


def _tetrahedron_closest_point(p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
    if _tetrahedron_contains(p, x):
        return p
    return _closest_on_faces(p, x, ((1, 2, 3), (0, 2, 3), (0, 1, 3), (0, 1, 2)))


class CellType:
    """Shared interface of all cell shapes.

    Subclasses fill in the fixed tables (`_num_entities`, `_num_vertices`,
    `_entity_names`, `_patterns`) and the shape specific geometry.
    """

    _name: str = ""
    _plural: str = ""
    _dim: int = 0
    _simplex: bool = True
    _num_entities: Tuple[int, ...] = ()
    _num_vertices: Tuple[int, ...] = ()
    _entity_names: Tuple[str, ...] = ()
    _patterns: Dict[int, Pattern] = {}
    _gdims: Tuple[int, ...] = ()
    _meshio_name: str = ""
    _vtk_permutation: Optional[Tuple[int, ...]] = None

    # ------------------------------------------------------------------ #
    # Fixed tables
    # ------------------------------------------------------------------ #
    def cell_type(self) -> str:
        return self._name

    def dim(self) -> int:
        return self._dim

    def is_simplex(self) -> bool:
        return self._simplex

    def description(self, plural: bool = False) -> str:
        return self._plural if plural else self._name

    def meshio_name(self) -> str:
        """Return the meshio cell block name of this shape."""
        return self._meshio_name

    def vtk_permutation(self) -> Optional[Tuple[int, ...]]:
        """Return the permutation from local vertex order to VTK order, if any."""
        return self._vtk_permutation

    def _check_dim(self, dim: int, op: str) -> None:
        if dim < 0 or dim > self._dim:
            _LOGGER.error(
                "%s.%s: illegal topological dimension %d", type(self).__name__, op, dim
            )
            raise ValueError(
                f"Illegal topological dimension {dim} for {self._name} ({op})"
            )

    def num_entities(self, dim: int) -> int:
        """Return the number of entities of dimension `dim` of one cell."""
        self._check_dim(dim, "num_entities")
        return self._num_entities[dim]

    def num_vertices(self, dim: Optional[int] = None) -> int:
        """Return the number of vertices of an entity of dimension `dim`."""
        if dim is None:
            dim = self._dim
        self._check_dim(dim, "num_vertices")
        return self._num_vertices[dim]

    def entity_type(self, dim: int) -> str:
        """Return the shape name of entities of dimension `dim`."""
        self._check_dim(dim, "entity_type")
        return self._entity_names[dim]

    def entity_cell_type(self, dim: int) -> Optional["CellType"]:
        """Return the CellType of entities of dimension `dim` (None for vertices)."""
        self._check_dim(dim, "entity_cell_type")
        if dim == 0:
            return None
        if dim == self._dim:
            return self
        return create_cell_type(self._entity_names[dim])

    def facet_type(self) -> Optional["CellType"]:
        """Return the CellType of the facets, or None when facets are vertices."""
        return self.entity_cell_type(self._dim - 1)

    def sub_cell_type(self, dim: int) -> "CellType":
        """Return the CellType of entities of dimension `dim`.

        Raises:
            ValueError: If `dim` is 0, vertices have no cell type.
        """
        sub = self.entity_cell_type(dim)
        if sub is None:
            _LOGGER.error("%s.sub_cell_type: vertices have no cell type", type(self).__name__)
            raise ValueError(f"Entities of dimension {dim} of a {self._name} have no cell type")
        return sub

    def create_entities(self, dim: int, vertices: Sequence[int] | NDArray[Any]) -> List[Tuple[int, ...]]:
        """Create the sub-entities of dimension `dim` of a cell.

        Args:
            dim: Dimension of the sub-entities, strictly between 0 and dim().
            vertices: The cell's vertex indices.

        Returns:
            One vertex-index tuple per sub-entity, in the canonical pattern.

        Raises:
            ValueError: If `dim` is not a creatable sub-entity dimension or the
                vertex count is wrong.
        """
        patterns = self._patterns.get(dim)
        if patterns is None or dim <= 0 or dim >= self._dim:
            _LOGGER.error(
                "%s.create_entities: cannot create entities of dimension %d",
                type(self).__name__,
                dim,
            )
            raise ValueError(
                f"Don't know how to create entities of topological dimension {dim} "
                f"for a {self._name}"
            )
        v = [int(i) for i in vertices]
        if len(v) != self._num_vertices[self._dim]:
            _LOGGER.error(
                "%s.create_entities: got %d vertices, expected %d",
                type(self).__name__,
                len(v),
                self._num_vertices[self._dim],
            )
            raise ValueError(f"A {self._name} has {self._num_vertices[self._dim]} vertices")
        return [tuple(v[k] for k in p) for p in patterns]

    # ------------------------------------------------------------------ #
    # Geometry
    # ------------------------------------------------------------------ #
    def _check_entity(self, entity: "MeshEntity", op: str) -> int:
        """Check that `entity` is a cell of this shape; return the geometric dim."""
        if entity.dim() != self._dim:
            _LOGGER.error(
                "%s.%s: entity of dimension %d is not a %s",
                type(self).__name__,
                op,
                entity.dim(),
                self._name,
            )
            raise ValueError(
                f"Illegal mesh entity for {op}: expected dimension {self._dim}, "
                f"got {entity.dim()}"
            )
        gdim = entity.mesh().geometry().dim()
        if gdim not in self._gdims:
            _LOGGER.error(
                "%s.%s: unsupported geometric dimension %d", type(self).__name__, op, gdim
            )
            raise ValueError(
                f"{op} of a {self._name} is not defined in dimension {gdim}"
            )
        return gdim

    def volume(self, entity: "MeshEntity") -> float:
        self._check_entity(entity, "volume")
        return self._volume(_points(entity))

    def _volume(self, x: NDArray[Any]) -> float:
        raise NotImplementedError

    def diameter(self, entity: "MeshEntity") -> float:
        self._check_entity(entity, "diameter")
        return self._diameter(_points(entity))

    def _diameter(self, x: NDArray[Any]) -> float:
        d = x[:, None, :] - x[None, :, :]
        return float(np.sqrt((d * d).sum(axis=-1)).max())

    def _facet_vertices(self, cell: "Cell", facet: int) -> NDArray[np.int64]:
        mesh = cell.mesh()
        D = self._dim
        if D == 1:
            return cell.entities(0)[facet : facet + 1]
        f = cell.entities(D - 1)[facet]
        mesh.init(D - 1, 0)
        return mesh.topology()(D - 1, 0)(f)

    def _interior_reference(self, cell: "Cell", facet_vertices: NDArray[Any]) -> NDArray[Any]:
        """Return a point of the cell off the facet (opposite vertex or centroid)."""
        geometry = cell.mesh().geometry()
        if self._simplex:
            on_facet = set(facet_vertices.tolist())
            others = [v for v in cell.entities(0) if int(v) not in on_facet]
            return geometry.point(int(others[0]))
        return _points3(cell).mean(axis=0)

    def normal(self, cell: "Cell", facet: int) -> NDArray[Any]:
        """Return the outward unit normal of local facet `facet`.

        Raises:
            ValueError: If the geometric dimension differs from the cell dimension.
        """
        gdim = cell.mesh().geometry().dim()
        if gdim != self._dim:
            _LOGGER.error(
                "%s.normal: normal is only defined when gdim == %d (got %d)",
                type(self).__name__,
                self._dim,
                gdim,
            )
            raise ValueError(
                f"Normal vector of a {self._name} facet is not defined in dimension {gdim}"
            )
        fv = self._facet_vertices(cell, facet)
        geometry = cell.mesh().geometry()
        q = np.array([geometry.point(int(v)) for v in fv])
        ref = self._interior_reference(cell, fv)
        if self._dim == 1:
            n = q[0] - ref
        elif self._dim == 2:
            t = q[1] - q[0]
            n = np.array([t[1], -t[0], 0.0])
        else:
            n = np.cross(q[1] - q[0], q[2] - q[0])
        if n @ (ref - q[0]) > 0.0:
            n = -n
        return _normalize(n)

    def cell_normal(self, cell: "Cell") -> NDArray[Any]:
        """Return the unit normal of a cell embedded in a higher dimension."""
        _LOGGER.error("%s.cell_normal: not defined", type(self).__name__)
        raise ValueError(f"Cell normal is not defined for a {self._name}")

    def orientation(self, cell: "Cell", up: Optional[Sequence[float]] = None) -> int:
        """Return 1 if the cell normal points away from `up`, else 0."""
        u = _pad3(np.asarray(up if up is not None else (0.0, 0.0, 1.0), dtype=float))
        return 1 if self.cell_normal(cell) @ u < 0.0 else 0

    def facet_area(self, cell: "Cell", facet: int) -> float:
        """Return the (D-1)-volume of local facet `facet`."""
        if self._dim == 1:
            return 1.0
        fv = self._facet_vertices(cell, facet)
        x = cell.mesh().geometry().coordinates()[fv]
        return self.sub_cell_type(self._dim - 1)._volume(x)

    def inradius(self, cell: "Cell") -> float:
        _LOGGER.error("%s.inradius: only defined for simplices", type(self).__name__)
        raise ValueError(f"Inradius is not defined for a {self._name}")

    def radius_ratio(self, cell: "Cell") -> float:
        _LOGGER.error("%s.radius_ratio: only defined for simplices", type(self).__name__)
        raise ValueError(f"Radius ratio is not defined for a {self._name}")

    def squared_distance(self, cell: "Cell", point: Sequence[float] | NDArray[Any]) -> float:
        """Return the squared distance from `point` to the cell."""
        self._check_entity(cell, "squared_distance")
        p = _pad3(np.asarray(point, dtype=float))
        q = self._closest_point(p, _points3(cell))
        return float((p - q) @ (p - q))

    def closest_point(self, cell: "Cell", point: Sequence[float] | NDArray[Any]) -> NDArray[Any]:
        """Return the point of the cell closest to `point`."""
        self._check_entity(cell, "closest_point")
        return self._closest_point(_pad3(np.asarray(point, dtype=float)), _points3(cell))

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        raise NotImplementedError

    def contains(self, cell: "Cell", point: Sequence[float] | NDArray[Any]) -> bool:
        """Return whether `point` lies in the cell (boundary included)."""
        self._check_entity(cell, "contains")
        return self._contains(_pad3(np.asarray(point, dtype=float)), _points3(cell))

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Ordering
    # ------------------------------------------------------------------ #
    @staticmethod
    def _position_lookup(patterns: List[Tuple[int, ...]]) -> Dict[Tuple[int, ...], int]:
        return {tuple(sorted(p)): i for i, p in enumerate(patterns)}

    @staticmethod
    def _sort_positions(row: NDArray[np.int64], patterns: List[Tuple[int, ...]], entity_vertices: Any) -> None:
        lookup = CellType._position_lookup(patterns)
        new = np.empty_like(row)
        for e in row:
            key = tuple(sorted(entity_vertices(int(e)).tolist()))
            if key not in lookup:
                _LOGGER.error("Sub-entity %s does not belong to the cell pattern", key)
                raise ValueError("Inconsistent connectivity while ordering a cell")
            new[lookup[key]] = e
        row[:] = new

    @staticmethod
    def _positions_match(row: NDArray[np.int64], patterns: List[Tuple[int, ...]], entity_vertices: Any) -> bool:
        for e, p in zip(row, patterns):
            if sorted(entity_vertices(int(e)).tolist()) != sorted(p):
                return False
        return True

    def order(self, cell: "Cell", local_to_global: Optional[NDArray[Any]] = None) -> None:
        """Reorder the cell's local numbering to the canonical convention.

        Simplex cells get their vertices and the vertices of every stored
        sub-entity sorted by global index. For every stored (D, d) table the
        position i of the cell's row then holds the entity given by
        `create_entities(d, vertices)[i]`; intermediate (d, k) rows of the
        cell's sub-entities are treated the same way. Rows are edited in place.

        Args:
            cell: The cell to order.
            local_to_global: Global index of each local vertex (identity if None).
        """
        topology = cell.mesh().topology()
        D = self._dim
        c = cell.index()
        if local_to_global is None:
            local_to_global = np.arange(topology.size(0))
        l2g = np.asarray(local_to_global)

        if self._simplex:
            for d in range(1, D):
                if topology.have(D, d) and topology.have(d, 0):
                    conn = topology(d, 0)
                    for e in topology(D, d)(c):
                        row = conn(int(e))
                        row[:] = row[np.argsort(l2g[row], kind="stable")]
            cv = topology(D, 0)(c)
            cv[:] = cv[np.argsort(l2g[cv], kind="stable")]

        vertices = topology(D, 0)(c)
        for d in range(1, D):
            if topology.have(D, d) and topology.have(d, 0):
                self._sort_positions(
                    topology(D, d)(c), self.create_entities(d, vertices), topology(d, 0)
                )
        for d in range(2, D):
            sub = self.sub_cell_type(d)
            for k in range(1, d):
                if not (topology.have(D, d) and topology.have(d, k) and topology.have(k, 0)):
                    continue
                for e in topology(D, d)(c):
                    e = int(e)
                    sub._sort_positions(
                        topology(d, k)(e),
                        sub.create_entities(k, topology(d, 0)(e)),
                        topology(k, 0),
                    )

    def ordered(self, cell: "Cell", local_to_global: Optional[NDArray[Any]] = None) -> bool:
        """Return whether the cell follows the canonical convention of `order`."""
        topology = cell.mesh().topology()
        D = self._dim
        c = cell.index()
        if local_to_global is None:
            local_to_global = np.arange(topology.size(0))
        l2g = np.asarray(local_to_global)

        def ascending(row: NDArray[Any]) -> bool:
            g = l2g[row]
            return bool(np.all(g[:-1] < g[1:]))

        vertices = topology(D, 0)(c)
        if self._simplex:
            if not ascending(vertices):
                return False
            for d in range(1, D):
                if topology.have(D, d) and topology.have(d, 0):
                    conn = topology(d, 0)
                    if not all(ascending(conn(int(e))) for e in topology(D, d)(c)):
                        return False
        for d in range(1, D):
            if topology.have(D, d) and topology.have(d, 0):
                if not self._positions_match(
                    topology(D, d)(c), self.create_entities(d, vertices), topology(d, 0)
                ):
                    return False
        for d in range(2, D):
            sub = self.sub_cell_type(d)
            for k in range(1, d):
                if not (topology.have(D, d) and topology.have(d, k) and topology.have(k, 0)):
                    continue
                for e in topology(D, d)(c):
                    e = int(e)
                    if not sub._positions_match(
                        topology(d, k)(e),
                        sub.create_entities(k, topology(d, 0)(e)),
                        topology(k, 0),
                    ):
                        return False
        return True

    def find_edge(self, i: int, cell: "Cell") -> int:
        """Return the local index of the edge at canonical position `i`.

        For a triangle this is the edge not touching local vertex `i`.

        Raises:
            ValueError: If no edge of the cell matches.
        """
        topology = cell.mesh().topology()
        target = sorted(self.create_entities(1, cell.entities(0))[i])
        edges = cell.entities(1)
        for j, e in enumerate(edges):
            if sorted(topology(1, 0)(int(e)).tolist()) == target:
                return j
        _LOGGER.error("%s.find_edge: edge %d not found in cell %d", type(self).__name__, i, cell.index())
        raise ValueError("Edge really not found")

    def refine_cell(self, cell: "Cell", editor: "MeshEditor", current_cell: int) -> int:
        """Add the children of `cell` to `editor` starting at `current_cell`.

        New vertex `num_vertices + e` is the midpoint of edge `e`.

        Returns:
            The index of the next cell to add.
        """
        _LOGGER.error("%s.refine_cell: refinement is only defined for simplices", type(self).__name__)
        raise ValueError(f"Refinement is not implemented for a {self._name}")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CellType) and other._name == self._name

    def __hash__(self) -> int:
        return hash(self._name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class IntervalCell(CellType):
    _name = "interval"
    _plural = "intervals"
    _dim = 1
    _num_entities = (2, 1)
    _num_vertices = (1, 2)
    _entity_names = ("vertex", "interval")
    _patterns: Dict[int, Pattern] = {}
    _gdims = (1, 2, 3)
    _meshio_name = "line"

    def _volume(self, x: NDArray[Any]) -> float:
        return float(np.linalg.norm(x[1] - x[0]))

    def _diameter(self, x: NDArray[Any]) -> float:
        return self._volume(x)

    def cell_normal(self, cell: "Cell") -> NDArray[Any]:
        gdim = cell.mesh().geometry().dim()
        if gdim != 2:
            _LOGGER.error("IntervalCell.cell_normal: only defined in 2D (got %d)", gdim)
            raise ValueError(f"Cell normal of an interval is not defined in dimension {gdim}")
        x = _points3(cell)
        t = _normalize(x[1] - x[0])
        return np.array([-t[1], t[0], 0.0])

    def inradius(self, cell: "Cell") -> float:
        return 0.5 * self.volume(cell)

    def radius_ratio(self, cell: "Cell") -> float:
        self._check_entity(cell, "radius_ratio")
        return 1.0

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        return closest_point_segment(p, x[0], x[1])

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        ab = x[1] - x[0]
        L = ab @ ab
        if L == 0.0:
            return bool(np.all(p == x[0]))
        eps = config.eps
        t = ((p - x[0]) @ ab) / L
        if not (t > -eps and t < 1.0 + eps):
            return False
        r = p - x[0] - t * ab
        return bool(r @ r <= eps * L)

    def refine_cell(self, cell: "Cell", editor: "MeshEditor", current_cell: int) -> int:
        v0, v1 = (int(v) for v in cell.entities(0))
        e0 = cell.mesh().num_vertices() + cell.index()
        editor.add_cell(current_cell, [v0, e0])
        editor.add_cell(current_cell + 1, [e0, v1])
        return current_cell + 2


class TriangleCell(CellType):
    _name = "triangle"
    _plural = "triangles"
    _dim = 2
    _num_entities = (3, 3, 1)
    _num_vertices = (1, 2, 3)
    _entity_names = ("vertex", "interval", "triangle")
    _patterns: Dict[int, Pattern] = {1: ((1, 2), (0, 2), (0, 1))}
    _gdims = (2, 3)
    _meshio_name = "triangle"

    def _volume(self, x: NDArray[Any]) -> float:
        if x.shape[1] == 2:
            return 0.5 * abs(
                (x[1, 0] - x[0, 0]) * (x[2, 1] - x[0, 1])
                - (x[2, 0] - x[0, 0]) * (x[1, 1] - x[0, 1])
            )
        return 0.5 * float(np.linalg.norm(np.cross(x[1] - x[0], x[2] - x[0])))

    def _diameter(self, x: NDArray[Any]) -> float:
        a = float(np.linalg.norm(x[1] - x[2]))
        b = float(np.linalg.norm(x[0] - x[2]))
        c = float(np.linalg.norm(x[0] - x[1]))
        area = self._volume(x)
        if area == 0.0:
            _LOGGER.warning("TriangleCell.diameter: degenerate triangle, returning inf")
            return math.inf
        # Twice the circumradius
        return 0.5 * a * b * c / area

    def cell_normal(self, cell: "Cell") -> NDArray[Any]:
        self._check_entity(cell, "cell_normal")
        x = _points3(cell)
        return _normalize(np.cross(x[1] - x[0], x[2] - x[0]))

    def inradius(self, cell: "Cell") -> float:
        self._check_entity(cell, "inradius")
        x = _points(cell)
        S = self._volume(x)
        perimeter = sum(self.facet_area(cell, i) for i in range(3))
        return 0.0 if S == 0.0 else 2.0 * S / perimeter

    def radius_ratio(self, cell: "Cell") -> float:
        """Return 2 * inradius / circumradius, 0 for a zero-area triangle."""
        self._check_entity(cell, "radius_ratio")
        S = self._volume(_points(cell))
        if S == 0.0:
            return 0.0
        a, b, c = (self.facet_area(cell, i) for i in range(3))
        return 16.0 * S * S / (a * b * c * (a + b + c))

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        return closest_point_triangle(p, x[0], x[1], x[2])

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        return _triangle_contains(p, x[0], x[1], x[2])

    def refine_cell(self, cell: "Cell", editor: "MeshEditor", current_cell: int) -> int:
        v0, v1, v2 = (int(v) for v in cell.entities(0))
        e = cell.entities(1)
        offset = cell.mesh().num_vertices()
        e0, e1, e2 = (offset + int(e[self.find_edge(i, cell)]) for i in range(3))
        for vertices in ([v0, e2, e1], [v1, e0, e2], [v2, e1, e0], [e0, e1, e2]):
            editor.add_cell(current_cell, vertices)
            current_cell += 1
        return current_cell


class TetrahedronCell(CellType):
    _name = "tetrahedron"
    _plural = "tetrahedra"
    _dim = 3
    _num_entities = (4, 6, 4, 1)
    _num_vertices = (1, 2, 3, 4)
    _entity_names = ("vertex", "interval", "triangle", "tetrahedron")
    _patterns: Dict[int, Pattern] = {
        1: ((2, 3), (1, 3), (1, 2), (0, 3), (0, 2), (0, 1)),
        2: ((1, 2, 3), (0, 2, 3), (0, 1, 3), (0, 1, 2)),
    }
    _gdims = (3,)
    _meshio_name = "tetra"

    def _volume(self, x: NDArray[Any]) -> float:
        return abs(float(np.linalg.det(x[1:] - x[0]))) / 6.0

    def _diameter(self, x: NDArray[Any]) -> float:
        V = self._volume(x)
        if V == 0.0:
            _LOGGER.warning("TetrahedronCell.diameter: degenerate tetrahedron, returning inf")
            return math.inf
        # Products of opposite edge lengths
        la = np.linalg.norm(x[1] - x[2]) * np.linalg.norm(x[0] - x[3])
        lb = np.linalg.norm(x[0] - x[2]) * np.linalg.norm(x[1] - x[3])
        lc = np.linalg.norm(x[0] - x[1]) * np.linalg.norm(x[2] - x[3])
        s = (la + lb + lc) * (la + lb - lc) * (la - lb + lc) * (lb + lc - la)
        return math.sqrt(max(float(s), 0.0)) / (12.0 * V)

    def _face_area_sum(self, x: NDArray[Any]) -> float:
        return sum(simplex_volume(x[list(f)]) for f in self._patterns[2])

    def inradius(self, cell: "Cell") -> float:
        self._check_entity(cell, "inradius")
        x = _points(cell)
        V = self._volume(x)
        return 0.0 if V == 0.0 else 3.0 * V / self._face_area_sum(x)

    def radius_ratio(self, cell: "Cell") -> float:
        """Return 3 * inradius / circumradius, 0 for a zero-volume tetrahedron."""
        self._check_entity(cell, "radius_ratio")
        x = _points(cell)
        if self._volume(x) == 0.0:
            return 0.0
        return 6.0 * self.inradius(cell) / self._diameter(x)

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        return _tetrahedron_closest_point(p, x)

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        return _tetrahedron_contains(p, x)

    def refine_cell(self, cell: "Cell", editor: "MeshEditor", current_cell: int) -> int:
        v = [int(i) for i in cell.entities(0)]
        e = cell.entities(1)
        offset = cell.mesh().num_vertices()
        m = [offset + int(e[self.find_edge(i, cell)]) for i in range(6)]

        # Corner tetrahedra
        children = [
            [v[0], m[3], m[4], m[5]],
            [v[1], m[1], m[2], m[5]],
            [v[2], m[0], m[2], m[4]],
            [v[3], m[0], m[1], m[3]],
        ]

        # Split the inner octahedron along its shortest diagonal
        x = _points(cell)
        mid = [x[list(p)].mean(axis=0) for p in self._patterns[1]]
        pairs = [(0, 5), (1, 4), (2, 3)]
        lengths = [float(np.linalg.norm(mid[a] - mid[b])) for a, b in pairs]
        k = int(np.argmin(lengths))
        a, b = pairs[k]
        (c0, c1), (d0, d1) = (pairs[j] for j in range(3) if j != k)
        ring = [m[c0], m[d0], m[c1], m[d1]]
        for j in range(4):
            children.append([m[a], m[b], ring[j], ring[(j + 1) % 4]])

        for vertices in children:
            editor.add_cell(current_cell, vertices)
            current_cell += 1
        return current_cell


class QuadrilateralCell(CellType):
    """Quadrilateral with tensor-product vertex order (v3 opposite v0)."""

    _name = "quadrilateral"
    _plural = "quadrilaterals"
    _dim = 2
    _simplex = False
    _num_entities = (4, 4, 1)
    _num_vertices = (1, 2, 4)
    _entity_names = ("vertex", "interval", "quadrilateral")
    _patterns: Dict[int, Pattern] = {1: ((0, 1), (2, 3), (0, 2), (1, 3))}
    _gdims = (2, 3)
    _meshio_name = "quad"
    _vtk_permutation = (0, 1, 3, 2)

    def _volume(self, x: NDArray[Any]) -> float:
        x3 = np.zeros((4, 3))
        x3[:, : x.shape[1]] = x
        return 0.5 * float(np.linalg.norm(np.cross(x3[3] - x3[0], x3[2] - x3[1])))

    def cell_normal(self, cell: "Cell") -> NDArray[Any]:
        self._check_entity(cell, "cell_normal")
        x = _points3(cell)
        return _normalize(np.cross(x[1] - x[0], x[2] - x[0]))

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        return _closest_on_faces(p, x, ((0, 1, 3), (0, 3, 2)))

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        return _triangle_contains(p, x[0], x[1], x[3]) or _triangle_contains(
            p, x[0], x[3], x[2]
        )


class HexahedronCell(CellType):
    """Hexahedron with tensor-product vertex order (vertex i + 2j + 4k)."""

    _name = "hexahedron"
    _plural = "hexahedra"
    _dim = 3
    _simplex = False
    _num_entities = (8, 12, 6, 1)
    _num_vertices = (1, 2, 4, 8)
    _entity_names = ("vertex", "interval", "quadrilateral", "hexahedron")
    _patterns: Dict[int, Pattern] = {
        1: (
            (0, 1), (0, 2), (0, 4), (1, 3), (1, 5), (2, 3),
            (2, 6), (3, 7), (4, 5), (4, 6), (5, 7), (6, 7),
        ),
        2: (
            (0, 1, 2, 3), (4, 5, 6, 7), (0, 1, 4, 5),
            (2, 3, 6, 7), (0, 2, 4, 6), (1, 3, 5, 7),
        ),
    }
    _gdims = (3,)
    _meshio_name = "hexahedron"
    _vtk_permutation = (0, 1, 3, 2, 4, 5, 7, 6)

    # Six tetrahedra sharing the main diagonal 0-7
    _tets = ((0, 1, 3, 7), (0, 1, 5, 7), (0, 4, 5, 7), (0, 2, 3, 7), (0, 2, 6, 7), (0, 4, 6, 7))

    def _volume(self, x: NDArray[Any]) -> float:
        return sum(abs(float(np.linalg.det(x[list(t[1:])] - x[t[0]]))) / 6.0 for t in self._tets)

    def _closest_point(self, p: NDArray[Any], x: NDArray[Any]) -> NDArray[Any]:
        if self._contains(p, x):
            return p
        faces = [(f[0], f[1], f[3]) for f in self._patterns[2]]
        faces += [(f[0], f[3], f[2]) for f in self._patterns[2]]
        return _closest_on_faces(p, x, faces)

    def _contains(self, p: NDArray[Any], x: NDArray[Any]) -> bool:
        return any(_tetrahedron_contains(p, x[list(t)]) for t in self._tets)


_CELL_TYPES: Dict[str, type] = {
    "interval": IntervalCell,
    "triangle": TriangleCell,
    "tetrahedron": TetrahedronCell,
    "quadrilateral": QuadrilateralCell,
    "hexahedron": HexahedronCell,
}

_SIMPLEX_BY_DIM = {1: "interval", 2: "triangle", 3: "tetrahedron"}

_MESHIO_TO_NAME = {cls._meshio_name: name for name, cls in _CELL_TYPES.items()}


def create_cell_type(name_or_dim: str | int | CellType) -> CellType:
    """Return the CellType for a shape name, a simplex dimension or a meshio name.

    Raises:
        ValueError: If the shape is unknown.
    """
    if isinstance(name_or_dim, CellType):
        return name_or_dim
    if isinstance(name_or_dim, (int, np.integer)):
        name = _SIMPLEX_BY_DIM.get(int(name_or_dim), "")
    else:
        name = _MESHIO_TO_NAME.get(str(name_or_dim), str(name_or_dim))
    cls = _CELL_TYPES.get(name)
    if cls is None:
        _LOGGER.error("create_cell_type: unknown cell type %r", name_or_dim)
        raise ValueError(f"Unknown cell type: {name_or_dim!r}")
    return cls()
