"""Triangle mesh generation for 2D CSG geometries.

The CSG tree is evaluated with shapely. Its boundary rings become segment
constraints of a constrained Delaunay triangulation computed with
`triangle`. Triangles are classified by flood fill from the unbounded
face: crossing an unconstrained edge keeps the nesting depth, crossing a
constraint adds one, and odd depths lie in the domain. Out-of-domain
regions are passed back as hole seeds to a quality-refining second
triangulation bounded by a minimum angle and a maximum cell size.
"""
from __future__ import annotations

import logging
import math
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ..config import config
from ..mesh import Mesh
from ..mesh_editor import MeshEditor
from .csg import CSGGeometry

_LOGGER = logging.getLogger(__name__)

_PARAMETERS = ("mesh_resolution", "triangle_shape_bound", "cell_size")


def _backend() -> Tuple[Any, Any]:
    try:
        import shapely
        import triangle
    except ImportError as exc:
        _LOGGER.error("CSGMeshGenerator2D: geometry backend is not installed")
        raise RuntimeError(
            "2D mesh generation needs shapely and triangle; "
            "install the 'csg' extra (pip install femesh[csg])"
        ) from exc
    return shapely, triangle


def _polygons(region: Any) -> List[Any]:
    if region.geom_type == "Polygon":
        return [region]
    if hasattr(region, "geoms"):
        return [p for g in region.geoms for p in _polygons(g)]
    return []


def _ring_points(ring: Any) -> NDArray[np.float64]:
    """Return the open vertex loop of a ring without consecutive duplicates."""
    pts = np.asarray(ring.coords, dtype=float)[:, :2]
    if pts.shape[0] > 1 and np.array_equal(pts[0], pts[-1]):
        pts = pts[:-1]
    keep = np.ones(pts.shape[0], dtype=bool)
    keep[1:] = np.any(pts[1:] != pts[:-1], axis=1)
    pts = pts[keep]
    if pts.shape[0] > 1 and np.array_equal(pts[0], pts[-1]):
        pts = pts[:-1]
    return pts


def _planar_graph(region: Any) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    """Collect the vertices and boundary segments of all rings of `region`."""
    index: Dict[Tuple[float, float], int] = {}
    segments: List[Tuple[int, int]] = []
    for polygon in _polygons(region):
        for ring in [polygon.exterior, *polygon.interiors]:
            pts = _ring_points(ring)
            if pts.shape[0] < 3:
                _LOGGER.warning("CSGMeshGenerator2D: skipping a ring with %d points", pts.shape[0])
                continue
            ids = [index.setdefault((float(x), float(y)), len(index)) for x, y in pts]
            for a, b in zip(ids, ids[1:] + ids[:1]):
                if a != b:
                    segments.append((min(a, b), max(a, b)))
    vertices = np.array(list(index), dtype=float).reshape(-1, 2)
    segs = np.array(sorted(set(segments)), dtype=np.int64).reshape(-1, 2)
    return vertices, segs


def mark_domains(triangles: NDArray[np.int64], segments: NDArray[np.int64]) -> NDArray[np.int64]:
    """Return the nesting depth of every triangle.

    The unbounded face has depth 0; crossing a constrained edge increases
    the depth by one. Triangles of odd depth are in the domain.
    """
    constrained = {tuple(s) for s in np.sort(segments, axis=1).tolist()}
    edge_triangles: Dict[Tuple[int, int], List[int]] = {}
    for t, tri in enumerate(triangles.tolist()):
        for i in range(3):
            a, b = tri[(i + 1) % 3], tri[(i + 2) % 3]
            edge_triangles.setdefault((min(a, b), max(a, b)), []).append(t)

    depth = np.full(triangles.shape[0], -1, dtype=np.int64)
    best = np.full(triangles.shape[0], np.iinfo(np.int64).max, dtype=np.int64)
    queue: deque = deque()
    for edge, tris in edge_triangles.items():
        if len(tris) == 1:
            d = 1 if edge in constrained else 0
            if d < best[tris[0]]:
                best[tris[0]] = d
                if d == 0:
                    queue.appendleft(tris[0])
                else:
                    queue.append(tris[0])

    # 0-1 breadth first search over triangle adjacency
    while queue:
        t = queue.popleft()
        if depth[t] >= 0:
            continue
        depth[t] = best[t]
        tri = triangles[t]
        for i in range(3):
            a, b = int(tri[(i + 1) % 3]), int(tri[(i + 2) % 3])
            edge = (min(a, b), max(a, b))
            step = 1 if edge in constrained else 0
            for n in edge_triangles[edge]:
                if n == t or depth[n] >= 0:
                    continue
                if depth[t] + step < best[n]:
                    best[n] = depth[t] + step
                    if step == 0:
                        queue.appendleft(n)
                    else:
                        queue.append(n)
    return depth


def _hole_seeds(
    vertices: NDArray[np.float64],
    triangles: NDArray[np.int64],
    segments: NDArray[np.int64],
    outside: NDArray[np.bool_],
) -> NDArray[np.float64]:
    """Return one interior point per connected out-of-domain region."""
    constrained = {tuple(s) for s in np.sort(segments, axis=1).tolist()}
    edge_triangles: Dict[Tuple[int, int], List[int]] = {}
    for t in np.flatnonzero(outside).tolist():
        tri = triangles[t].tolist()
        for i in range(3):
            a, b = tri[(i + 1) % 3], tri[(i + 2) % 3]
            edge = (min(a, b), max(a, b))
            if edge not in constrained:
                edge_triangles.setdefault(edge, []).append(t)

    seeds: List[NDArray[np.float64]] = []
    seen = np.zeros(triangles.shape[0], dtype=bool)
    for start in np.flatnonzero(outside).tolist():
        if seen[start]:
            continue
        seeds.append(vertices[triangles[start]].mean(axis=0))
        stack = [start]
        seen[start] = True
        while stack:
            t = stack.pop()
            tri = triangles[t].tolist()
            for i in range(3):
                a, b = tri[(i + 1) % 3], tri[(i + 2) % 3]
                for n in edge_triangles.get((min(a, b), max(a, b)), []):
                    if not seen[n]:
                        seen[n] = True
                        stack.append(n)
    return np.array(seeds, dtype=float).reshape(-1, 2)


class CSGMeshGenerator2D:
    """Generate triangle meshes of a 2D CSG geometry.

    Args:
        geometry (CSGGeometry): Region to mesh.
        **parameters: Overrides of `mesh_resolution` (cells across the
            diameter of the minimum enclosing circle; 0 disables it and
            uses `cell_size`), `triangle_shape_bound` (bound on the squared
            sine of the minimum angle) and `cell_size` (maximum edge length).

    Raises:
        ValueError: For a non-2D geometry or an unknown parameter.
    """

    def __init__(self, geometry: CSGGeometry, **parameters: Any) -> None:
        if not isinstance(geometry, CSGGeometry) or geometry.dim() != 2:
            _LOGGER.error("CSGMeshGenerator2D: expected a 2D CSG geometry, got %r", geometry)
            raise ValueError("CSGMeshGenerator2D needs a 2D CSG geometry")
        unknown = set(parameters) - set(_PARAMETERS)
        if unknown:
            _LOGGER.error("CSGMeshGenerator2D: unknown parameters %s", sorted(unknown))
            raise ValueError(f"Unknown mesh generator parameters: {sorted(unknown)}")
        defaults = config.parameters
        self.geometry = geometry
        self.parameters: Dict[str, Any] = {name: getattr(defaults, name) for name in _PARAMETERS}
        self.parameters.update(parameters)

    def _cell_size(self, shapely: Any, region: Any) -> float:
        resolution = int(self.parameters["mesh_resolution"])
        if resolution > 0:
            radius = float(shapely.minimum_bounding_radius(region))
            return 2.0 * radius / resolution
        return float(self.parameters["cell_size"])

    def generate(self, mesh: Optional[Mesh] = None) -> Mesh:
        """Triangulate the geometry into `mesh` (a new Mesh by default).

        Raises:
            RuntimeError: If shapely or triangle is not installed.
            ValueError: If the geometry is empty.
        """
        shapely, triangle = _backend()
        region = self.geometry.to_shapely()
        if region.is_empty or region.area <= 0.0:
            _LOGGER.error("CSGMeshGenerator2D: geometry %s is empty", self.geometry.str(False))
            raise ValueError("Cannot mesh an empty geometry")

        vertices, segments = _planar_graph(region)
        cdt = triangle.triangulate({"vertices": vertices, "segments": segments}, "pQ")
        triangles = np.asarray(cdt["triangles"], dtype=np.int64)
        cdt_vertices = np.asarray(cdt["vertices"], dtype=float)
        cdt_segments = np.asarray(cdt.get("segments", segments), dtype=np.int64)
        depth = mark_domains(triangles, cdt_segments)
        holes = _hole_seeds(cdt_vertices, triangles, cdt_segments, depth % 2 == 0)

        size = self._cell_size(shapely, region)
        bound = min(max(float(self.parameters["triangle_shape_bound"]), 0.0), 1.0)
        min_angle = math.degrees(math.asin(math.sqrt(bound)))
        max_area = math.sqrt(3.0) / 4.0 * size * size
        data: Dict[str, Any] = {"vertices": vertices, "segments": segments}
        if holes.shape[0]:
            data["holes"] = holes
        opts = f"pQq{min_angle:.6g}a{max_area:.6g}"
        _LOGGER.debug("CSGMeshGenerator2D: triangle options %s, %d hole seeds", opts, holes.shape[0])
        result = triangle.triangulate(data, opts)

        x = np.asarray(result["vertices"], dtype=float)
        cells = np.asarray(result["triangles"], dtype=np.int64).reshape(-1, 3)
        a, b, c = x[cells[:, 0]], x[cells[:, 1]], x[cells[:, 2]]
        area = 0.5 * np.abs((b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0]))
        degenerate = area <= 0.0
        if np.any(degenerate):
            _LOGGER.warning("CSGMeshGenerator2D: dropping %d zero-area triangles", int(degenerate.sum()))
            cells = cells[~degenerate]
        used, cells = np.unique(cells, return_inverse=True)
        cells = cells.reshape(-1, 3)
        x = x[used]

        mesh = mesh if mesh is not None else Mesh()
        editor = MeshEditor()
        editor.open(mesh, "triangle", 2, 2)
        editor.init_vertices(x.shape[0])
        for i, p in enumerate(x):
            editor.add_vertex(i, p)
        editor.init_cells(cells.shape[0])
        for i, cell in enumerate(cells):
            editor.add_cell(i, cell)
        editor.close()
        _LOGGER.info(
            "Generated mesh of %s: %d vertices, %d triangles (cell size %g, minimum angle %.3g)",
            self.geometry.str(False),
            mesh.num_vertices(),
            mesh.num_cells(),
            size,
            min_angle,
        )
        return mesh
