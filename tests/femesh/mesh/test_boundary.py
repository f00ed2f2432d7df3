from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from femesh import BoundaryMesh, Cell, Facet
from femesh.generation import unit_hex_mesh, unit_interval_mesh


def _outward_2d(boundary, parent_centroid):
    x = boundary.coordinates()
    for a, b in boundary.cells():
        t = x[b] - x[a]
        n = np.array([t[1], -t[0]])
        mid = 0.5 * (x[a] + x[b])
        yield float(n @ (mid - parent_centroid))


def test_single_triangle_boundary(reference_triangle):
    b = BoundaryMesh(reference_triangle)
    assert b.num_vertices() == 3
    assert b.num_cells() == 3
    assert b.type().cell_type() == "interval"
    assert b.geometry().dim() == 2
    centroid = reference_triangle.coordinates().mean(axis=0)
    assert all(s > 0.0 for s in _outward_2d(b, centroid))


def test_square_boundary_and_entity_maps(square_2x2):
    b = BoundaryMesh(square_2x2, "exterior")
    assert b.num_cells() == 8
    assert b.num_vertices() == 8
    vertex_map = b.entity_map(0).array()
    assert_allclose(b.coordinates(), square_2x2.coordinates()[vertex_map])
    # The center vertex is the only interior vertex
    assert sorted(vertex_map.tolist()) == [0, 1, 2, 3, 5, 6, 7, 8]

    facet_map = b.entity_map(1).array()
    parent_facets = square_2x2.topology()(1, 0)
    for c, f in enumerate(facet_map):
        assert Facet(square_2x2, int(f)).exterior()
        assert sorted(vertex_map[b.cells()[c]].tolist()) == sorted(parent_facets(int(f)).tolist())
    with pytest.raises(ValueError):
        b.entity_map(2)


def test_square_boundary_is_oriented_outward(square_2x2):
    b = BoundaryMesh(square_2x2)
    assert all(s > 0.0 for s in _outward_2d(b, np.array([0.5, 0.5])))
    assert sum(Cell(b, c).volume() for c in range(b.num_cells())) == pytest.approx(4.0)


def test_cube_boundary_normals_point_outward(cube_1x1x1):
    b = BoundaryMesh(cube_1x1x1)
    assert b.num_cells() == 12
    assert b.num_vertices() == 8
    assert b.type().cell_type() == "triangle"
    center = np.full(3, 0.5)
    area = 0.0
    for c in range(b.num_cells()):
        cell = Cell(b, c)
        assert cell.cell_normal() @ (cell.midpoint() - center) > 0.0
        area += cell.volume()
    assert area == pytest.approx(6.0)


def test_hexahedron_boundary():
    b = BoundaryMesh(unit_hex_mesh(1, 1, 1))
    assert b.num_cells() == 6
    assert b.type().cell_type() == "quadrilateral"
    for c in range(6):
        assert Cell(b, c).volume() == pytest.approx(1.0)


def test_boundary_without_seams_has_no_interior_part(square_2x2):
    assert BoundaryMesh(square_2x2, "interior").num_cells() == 0
    assert BoundaryMesh(square_2x2, "local").num_cells() == 8


def test_boundary_errors(square_2x2):
    with pytest.raises(ValueError):
        BoundaryMesh(square_2x2, "outer")
    with pytest.raises(ValueError):
        BoundaryMesh(unit_interval_mesh(4))


def test_boundary_keeps_global_vertex_numbers(square_2x2):
    b = BoundaryMesh(square_2x2)
    assert_array_equal(b.topology().global_indices(0), b.entity_map(0).array())
