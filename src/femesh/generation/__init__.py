"""Mesh generation.

Submodules:
  - builtin: Structured interval, rectangle and box meshes.
  - csg: 2D constructive solid geometry primitives and operators.
  - csg_mesh_generator: Triangle meshes of CSG geometries (needs the
    optional shapely and triangle backend).
"""

from .builtin import (
    box_mesh,
    interval_mesh,
    rectangle_mesh,
    unit_cube_mesh,
    unit_hex_mesh,
    unit_interval_mesh,
    unit_quad_mesh,
    unit_square_mesh,
)
from .csg import (
    Circle,
    CSGDifference,
    CSGGeometry,
    CSGIntersection,
    CSGUnion,
    Ellipse,
    Polygon,
    Rectangle,
)
from .csg_mesh_generator import CSGMeshGenerator2D

__all__ = [
    "box_mesh",
    "interval_mesh",
    "rectangle_mesh",
    "unit_cube_mesh",
    "unit_hex_mesh",
    "unit_interval_mesh",
    "unit_quad_mesh",
    "unit_square_mesh",
    "Circle",
    "CSGDifference",
    "CSGGeometry",
    "CSGIntersection",
    "CSGUnion",
    "Ellipse",
    "Polygon",
    "Rectangle",
    "CSGMeshGenerator2D",
]
