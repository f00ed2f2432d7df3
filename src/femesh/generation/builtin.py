"""Structured meshes of intervals, rectangles and boxes.

Vertices are numbered lexicographically with x varying fastest. Simplex
meshes split every square into two (or four, "crossed") triangles and every
cube into six tetrahedra around its main diagonal; quadrilateral and
hexahedral meshes keep the tensor-product vertex order of each cell.
"""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ..mesh import Mesh

_LOGGER = logging.getLogger(__name__)

DIAGONALS = ("right", "left", "right/left", "left/right", "crossed")


def _check_divisions(**divisions: int) -> None:
    for name, n in divisions.items():
        if int(n) < 1:
            _LOGGER.error("builtin mesh: %s=%d, need at least one division", name, n)
            raise ValueError(f"Number of divisions {name} must be at least 1, got {n}")


def _box(p0: Sequence[float], p1: Sequence[float], dim: int) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    a = np.asarray(p0, dtype=float).reshape(-1)
    b = np.asarray(p1, dtype=float).reshape(-1)
    if a.shape[0] != dim or b.shape[0] != dim:
        _LOGGER.error("builtin mesh: corners %s and %s are not %d-dimensional", a, b, dim)
        raise ValueError(f"Corner points must have {dim} coordinates")
    lo, hi = np.minimum(a, b), np.maximum(a, b)
    if np.any(hi - lo <= 0.0):
        _LOGGER.error("builtin mesh: degenerate box [%s, %s]", lo, hi)
        raise ValueError("Box has zero extent in some direction")
    return lo, hi


def _grid(lo: NDArray[np.float64], hi: NDArray[np.float64], n: Sequence[int]) -> NDArray[np.float64]:
    axes = [np.linspace(lo[i], hi[i], n[i] + 1) for i in range(len(n))]
    mesh = np.meshgrid(*axes[::-1], indexing="ij")
    return np.stack([m.reshape(-1) for m in mesh[::-1]], axis=1)


def interval_mesh(n: int, a: float, b: float) -> Mesh:
    """Mesh of [a, b] with `n` equal intervals."""
    _check_divisions(n=n)
    lo, hi = _box([a], [b], 1)
    x = np.linspace(lo[0], hi[0], n + 1).reshape(-1, 1)
    v = np.arange(n, dtype=np.int64)
    return Mesh(verts=x, connectivity=np.stack([v, v + 1], axis=1), cell_type="interval")


def unit_interval_mesh(n: int) -> Mesh:
    return interval_mesh(n, 0.0, 1.0)


def _square_cells(nx: int, ny: int, diagonal: str) -> NDArray[np.int64]:
    ix, iy = np.meshgrid(np.arange(nx), np.arange(ny), indexing="xy")
    ix, iy = ix.reshape(-1), iy.reshape(-1)
    v0 = iy * (nx + 1) + ix
    v1 = v0 + 1
    v2 = v0 + (nx + 1)
    v3 = v1 + (nx + 1)
    if diagonal == "crossed":
        vm = (nx + 1) * (ny + 1) + iy * nx + ix
        cells = [
            np.stack([v0, v1, vm], axis=1),
            np.stack([v0, v2, vm], axis=1),
            np.stack([v1, v3, vm], axis=1),
            np.stack([v2, v3, vm], axis=1),
        ]
        return np.stack(cells, axis=1).reshape(-1, 3)
    right = np.stack([np.stack([v0, v1, v3], axis=1), np.stack([v0, v2, v3], axis=1)], axis=1)
    left = np.stack([np.stack([v0, v1, v2], axis=1), np.stack([v1, v2, v3], axis=1)], axis=1)
    if diagonal == "right":
        use_left = np.zeros_like(iy, dtype=bool)
    elif diagonal == "left":
        use_left = np.ones_like(iy, dtype=bool)
    elif diagonal == "right/left":
        use_left = iy % 2 == 1
    else:
        use_left = iy % 2 == 0
    return np.where(use_left[:, None, None], left, right).reshape(-1, 3)


def rectangle_mesh(
    p0: Sequence[float],
    p1: Sequence[float],
    nx: int,
    ny: int,
    diagonal: str = "right",
) -> Mesh:
    """Triangle mesh of the rectangle spanned by `p0` and `p1`.

    Args:
        diagonal: "right", "left", "right/left", "left/right" (alternating
            by row) or "crossed" (four triangles around a center vertex).

    Raises:
        ValueError: For an unknown diagonal, a degenerate rectangle or fewer
            than one division.
    """
    if diagonal not in DIAGONALS:
        _LOGGER.error("rectangle_mesh: unknown diagonal %r", diagonal)
        raise ValueError(f"Unknown mesh diagonal definition: {diagonal!r}; use one of {DIAGONALS}")
    _check_divisions(nx=nx, ny=ny)
    lo, hi = _box(p0, p1, 2)
    x = _grid(lo, hi, (nx, ny))
    if diagonal == "crossed":
        h = (hi - lo) / np.array([nx, ny], dtype=float)
        centers = _grid(lo + 0.5 * h, hi - 0.5 * h, (max(nx - 1, 0), max(ny - 1, 0)))
        x = np.vstack([x, centers.reshape(-1, 2)])
    return Mesh(verts=x, connectivity=_square_cells(nx, ny, diagonal), cell_type="triangle")


def unit_square_mesh(nx: int, ny: int, diagonal: str = "right") -> Mesh:
    return rectangle_mesh((0.0, 0.0), (1.0, 1.0), nx, ny, diagonal)


def unit_quad_mesh(nx: int, ny: int) -> Mesh:
    """Quadrilateral mesh of the unit square."""
    _check_divisions(nx=nx, ny=ny)
    x = _grid(np.zeros(2), np.ones(2), (nx, ny))
    ix, iy = np.meshgrid(np.arange(nx), np.arange(ny), indexing="xy")
    v0 = (iy * (nx + 1) + ix).reshape(-1)
    cells = np.stack([v0, v0 + 1, v0 + nx + 1, v0 + nx + 2], axis=1)
    return Mesh(verts=x, connectivity=cells, cell_type="quadrilateral")


def _cube_corners(nx: int, ny: int, nz: int) -> Tuple[NDArray[np.int64], ...]:
    ix, iy, iz = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij")
    # Cells ordered with x fastest
    ix, iy, iz = (a.transpose(2, 1, 0).reshape(-1) for a in (ix, iy, iz))
    sx, sxy = nx + 1, (nx + 1) * (ny + 1)
    v0 = iz * sxy + iy * sx + ix
    v1 = v0 + 1
    v2 = v0 + sx
    v3 = v1 + sx
    return v0, v1, v2, v3, v0 + sxy, v1 + sxy, v2 + sxy, v3 + sxy


def box_mesh(p0: Sequence[float], p1: Sequence[float], nx: int, ny: int, nz: int) -> Mesh:
    """Tetrahedral mesh of the box spanned by `p0` and `p1`, six tetrahedra per cube."""
    _check_divisions(nx=nx, ny=ny, nz=nz)
    lo, hi = _box(p0, p1, 3)
    x = _grid(lo, hi, (nx, ny, nz))
    v0, v1, v2, v3, v4, v5, v6, v7 = _cube_corners(nx, ny, nz)
    tets = [
        (v0, v1, v3, v7),
        (v0, v1, v7, v5),
        (v0, v5, v7, v4),
        (v0, v3, v2, v7),
        (v0, v6, v4, v7),
        (v0, v2, v6, v7),
    ]
    cells = np.stack([np.stack(t, axis=1) for t in tets], axis=1).reshape(-1, 4)
    return Mesh(verts=x, connectivity=cells, cell_type="tetrahedron")


def unit_cube_mesh(nx: int, ny: int, nz: int) -> Mesh:
    return box_mesh((0.0, 0.0, 0.0), (1.0, 1.0, 1.0), nx, ny, nz)


def unit_hex_mesh(nx: int, ny: int, nz: int) -> Mesh:
    """Hexahedral mesh of the unit cube."""
    _check_divisions(nx=nx, ny=ny, nz=nz)
    x = _grid(np.zeros(3), np.ones(3), (nx, ny, nz))
    cells = np.stack(_cube_corners(nx, ny, nz), axis=1)
    return Mesh(verts=x, connectivity=cells, cell_type="hexahedron")
