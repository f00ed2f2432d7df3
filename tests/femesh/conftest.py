from __future__ import annotations

import numpy as np
import pytest

from femesh import Mesh
from femesh.generation import unit_cube_mesh, unit_square_mesh


@pytest.fixture
def reference_triangle():
    """
    Mesh with a single right triangle in the plane:
        v2 (0,1)
          |  \\
          |    \\
        v0 (0,0) -- v1 (1,0)
    """
    verts = np.array(
        [
            [0.0, 0.0],  # v0
            [1.0, 0.0],  # v1
            [0.0, 1.0],  # v2
        ]
    )
    connectivity = np.array([[0, 1, 2]])
    return Mesh(verts=verts, connectivity=connectivity)


@pytest.fixture
def two_triangle_square():
    """
    Unit square split into two triangles along the diagonal (0-2):
      v3 (0,1) ---- v2 (1,1)
        |  \\           |
        |    \\         |
        |      \\       |
      v0 (0,0) ---- v1 (1,0)
    Triangles: [0,1,2] and [0,2,3]
    Boundary edges: (0,1),(1,2),(2,3),(0,3)
    Interior edge: (0,2)
    """
    verts = np.array(
        [
            [0.0, 0.0],  # v0
            [1.0, 0.0],  # v1
            [1.0, 1.0],  # v2
            [0.0, 1.0],  # v3
        ],
        dtype=float,
    )
    conn = np.array([[0, 1, 2], [0, 2, 3]], dtype=int)
    return Mesh(verts=verts, connectivity=conn)


@pytest.fixture
def surface_triangle():
    """Single triangle embedded in 3D, lying in the plane z = 0."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
        ]
    )
    return Mesh(verts=verts, connectivity=np.array([[0, 1, 2]]))


@pytest.fixture
def reference_tetrahedron():
    """Tetrahedron with vertices at the origin and the three unit points."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    return Mesh(verts=verts, connectivity=np.array([[0, 1, 2, 3]]))


@pytest.fixture
def square_2x2():
    """Unit square, 2x2 squares each split along the "right" diagonal (8 triangles)."""
    return unit_square_mesh(2, 2)


@pytest.fixture
def cube_1x1x1():
    """Unit cube split into six tetrahedra."""
    return unit_cube_mesh(1, 1, 1)
