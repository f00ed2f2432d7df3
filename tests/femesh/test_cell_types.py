from __future__ import annotations

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from femesh import Cell, Mesh, create_cell_type
from femesh.cell_types import (
    HexahedronCell,
    IntervalCell,
    QuadrilateralCell,
    TetrahedronCell,
    TriangleCell,
    closest_point_triangle,
    simplex_volume,
    squared_distance_segment,
)


@pytest.mark.parametrize(
    "name, counts",
    [
        ("interval", (2, 1)),
        ("triangle", (3, 3, 1)),
        ("tetrahedron", (4, 6, 4, 1)),
        ("quadrilateral", (4, 4, 1)),
        ("hexahedron", (8, 12, 6, 1)),
    ],
)
def test_entity_counts(name, counts):
    ct = create_cell_type(name)
    assert ct.cell_type() == name
    assert ct.dim() == len(counts) - 1
    assert tuple(ct.num_entities(d) for d in range(ct.dim() + 1)) == counts


def test_create_cell_type_aliases():
    assert isinstance(create_cell_type(1), IntervalCell)
    assert isinstance(create_cell_type(2), TriangleCell)
    assert isinstance(create_cell_type(3), TetrahedronCell)
    assert isinstance(create_cell_type("tetra"), TetrahedronCell)
    assert isinstance(create_cell_type("quad"), QuadrilateralCell)
    assert isinstance(create_cell_type("line"), IntervalCell)
    ct = HexahedronCell()
    assert create_cell_type(ct) is ct
    assert create_cell_type("triangle") == TriangleCell()


@pytest.mark.parametrize("bad", ["prism", 4, 0])
def test_create_cell_type_unknown(bad):
    with pytest.raises(ValueError):
        create_cell_type(bad)


def test_triangle_edges_follow_the_pattern():
    ct = create_cell_type("triangle")
    assert ct.create_entities(1, [10, 11, 12]) == [(11, 12), (10, 12), (10, 11)]


def test_tetrahedron_patterns():
    ct = create_cell_type("tetrahedron")
    faces = ct.create_entities(2, [0, 1, 2, 3])
    assert faces == [(1, 2, 3), (0, 2, 3), (0, 1, 3), (0, 1, 2)]
    edges = ct.create_entities(1, [0, 1, 2, 3])
    assert len(edges) == 6
    assert len({tuple(sorted(e)) for e in edges}) == 6


def test_create_entities_errors():
    ct = create_cell_type("triangle")
    with pytest.raises(ValueError):
        ct.create_entities(0, [0, 1, 2])
    with pytest.raises(ValueError):
        ct.create_entities(2, [0, 1, 2])
    with pytest.raises(ValueError):
        ct.create_entities(1, [0, 1])


def test_entity_types_and_facets():
    tet = create_cell_type("tetrahedron")
    assert tet.entity_type(2) == "triangle"
    assert tet.facet_type() == TriangleCell()
    assert tet.entity_cell_type(0) is None
    assert create_cell_type("hexahedron").facet_type() == QuadrilateralCell()
    assert create_cell_type("interval").facet_type() is None
    assert tet.sub_cell_type(1).cell_type() == "interval"
    with pytest.raises(ValueError):
        tet.sub_cell_type(0)
    with pytest.raises(ValueError):
        tet.num_entities(4)


def test_vtk_permutation():
    assert create_cell_type("triangle").vtk_permutation() is None
    assert create_cell_type("quadrilateral").vtk_permutation() == (0, 1, 3, 2)


def test_reference_triangle_volume_and_diameter(reference_triangle):
    cell = Cell(reference_triangle, 0)
    assert cell.volume() == pytest.approx(0.5)
    assert cell.diameter() == pytest.approx(math.sqrt(2.0))


def test_reference_triangle_containment_and_distance(reference_triangle):
    cell = Cell(reference_triangle, 0)
    assert cell.contains([0.25, 0.25])
    assert cell.contains([0.5, 0.0])
    assert not cell.contains([1.0, 1.0])
    assert cell.squared_distance([2.0, 0.0]) == pytest.approx(1.0)
    assert cell.distance([0.0, -3.0]) == pytest.approx(3.0)
    assert_allclose(cell.closest_point([2.0, 0.0]), [1.0, 0.0, 0.0])
    assert_allclose(cell.closest_point([1.0, 1.0]), [0.5, 0.5, 0.0])
    assert cell.squared_distance([0.1, 0.1]) == pytest.approx(0.0, abs=1e-24)


def test_triangle_quality(reference_triangle):
    cell = Cell(reference_triangle, 0)
    assert cell.inradius() == pytest.approx((2.0 - math.sqrt(2.0)) / 2.0)
    assert cell.radius_ratio() == pytest.approx(2.0 * math.sqrt(2.0) - 2.0)
    assert cell.facet_area(0) == pytest.approx(math.sqrt(2.0))
    assert cell.facet_area(1) == pytest.approx(1.0)


def test_equilateral_triangle_radius_ratio():
    verts = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, math.sqrt(3.0) / 2.0]])
    mesh = Mesh(verts=verts, connectivity=np.array([[0, 1, 2]]))
    assert Cell(mesh, 0).radius_ratio() == pytest.approx(1.0)


def test_degenerate_triangle_diameter_is_infinite():
    verts = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
    mesh = Mesh(verts=verts, connectivity=np.array([[0, 1, 2]]))
    cell = Cell(mesh, 0)
    assert cell.volume() == 0.0
    assert math.isinf(cell.diameter())
    assert cell.radius_ratio() == 0.0
    assert cell.inradius() == 0.0
    assert not cell.contains([0.5, 0.0])


def test_triangle_facet_normals(two_triangle_square):
    cell = Cell(two_triangle_square, 0)  # (0,0), (1,0), (1,1)
    assert_allclose(cell.normal(0), [1.0, 0.0, 0.0])
    assert_allclose(cell.normal(2), [0.0, -1.0, 0.0])
    s = 1.0 / math.sqrt(2.0)
    assert_allclose(cell.normal(1), [-s, s, 0.0])


def test_triangle_cell_normal_and_orientation(surface_triangle):
    cell = Cell(surface_triangle, 0)
    assert_allclose(cell.cell_normal(), [0.0, 0.0, 1.0])
    assert cell.orientation([0.0, 0.0, 1.0]) == 0
    assert cell.orientation([0.0, 0.0, -1.0]) == 1
    with pytest.raises(ValueError):
        cell.normal(0)


def test_surface_triangle_projection(surface_triangle):
    cell = Cell(surface_triangle, 0)
    assert cell.contains([0.2, 0.2, 0.0])
    assert cell.squared_distance([0.2, 0.2, 2.0]) == pytest.approx(4.0)
    assert_allclose(cell.closest_point([0.2, 0.2, 2.0]), [0.2, 0.2, 0.0])


def test_tetrahedron_geometry(reference_tetrahedron):
    cell = Cell(reference_tetrahedron, 0)
    assert cell.volume() == pytest.approx(1.0 / 6.0)
    # Twice the circumradius of the corner tetrahedron
    assert cell.diameter() == pytest.approx(math.sqrt(3.0))
    assert cell.contains([0.1, 0.1, 0.1])
    assert not cell.contains([1.0, 1.0, 1.0])
    assert cell.squared_distance([0.1, 0.1, -1.0]) == pytest.approx(1.0)
    assert_allclose(cell.closest_point([0.1, 0.1, 0.1]), [0.1, 0.1, 0.1])
    assert_allclose(cell.normal(3), [0.0, 0.0, -1.0])
    assert cell.facet_area(3) == pytest.approx(0.5)


def test_regular_tetrahedron_radius_ratio():
    verts = np.array(
        [[1.0, 1.0, 1.0], [1.0, -1.0, -1.0], [-1.0, 1.0, -1.0], [-1.0, -1.0, 1.0]]
    )
    mesh = Mesh(verts=verts, connectivity=np.array([[0, 1, 2, 3]]))
    assert Cell(mesh, 0).radius_ratio() == pytest.approx(1.0)


def test_interval_geometry():
    mesh = Mesh(
        verts=np.array([[0.0, 0.0], [3.0, 4.0]]),
        connectivity=np.array([[0, 1]]),
        cell_type="interval",
    )
    cell = Cell(mesh, 0)
    assert cell.volume() == pytest.approx(5.0)
    assert cell.diameter() == pytest.approx(5.0)
    assert cell.inradius() == pytest.approx(2.5)
    assert cell.radius_ratio() == 1.0
    assert_allclose(cell.cell_normal(), [-0.8, 0.6, 0.0])
    assert cell.contains([1.5, 2.0])
    assert not cell.contains([1.5, 2.5])
    assert cell.squared_distance([6.0, 8.0]) == pytest.approx(25.0)


def test_interval_normal_in_1d():
    mesh = Mesh(verts=np.array([[0.0], [2.0]]), connectivity=np.array([[0, 1]]), cell_type="interval")
    cell = Cell(mesh, 0)
    assert_allclose(cell.normal(0), [-1.0, 0.0, 0.0])
    assert_allclose(cell.normal(1), [1.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        cell.cell_normal()


def test_quadrilateral_geometry():
    verts = np.array([[0.0, 0.0], [2.0, 0.0], [0.0, 1.0], [2.0, 1.0]])
    mesh = Mesh(verts=verts, connectivity=np.array([[0, 1, 2, 3]]), cell_type="quadrilateral")
    cell = Cell(mesh, 0)
    assert cell.volume() == pytest.approx(2.0)
    assert cell.diameter() == pytest.approx(math.sqrt(5.0))
    assert cell.contains([1.5, 0.5])
    assert not cell.contains([2.5, 0.5])
    assert cell.squared_distance([3.0, 0.5]) == pytest.approx(1.0)
    assert_allclose(cell.normal(0), [0.0, -1.0, 0.0])
    assert_allclose(cell.normal(3), [1.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        cell.inradius()
    with pytest.raises(ValueError):
        cell.radius_ratio()


def test_hexahedron_geometry():
    corners = np.array([[i & 1, (i >> 1) & 1, (i >> 2) & 1] for i in range(8)], dtype=float)
    mesh = Mesh(verts=corners, connectivity=np.arange(8).reshape(1, 8), cell_type="hexahedron")
    cell = Cell(mesh, 0)
    assert cell.volume() == pytest.approx(1.0)
    assert cell.diameter() == pytest.approx(math.sqrt(3.0))
    assert cell.contains([0.5, 0.5, 0.5])
    assert not cell.contains([1.5, 0.5, 0.5])
    assert cell.squared_distance([0.5, 0.5, 3.0]) == pytest.approx(4.0)
    assert_allclose(cell.normal(0), [0.0, 0.0, -1.0])
    assert_allclose(cell.normal(5), [1.0, 0.0, 0.0])
    assert cell.facet_area(2) == pytest.approx(1.0)


def test_geometry_rejects_cells_of_another_shape():
    mesh = Mesh(
        verts=np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]),
        connectivity=np.array([[0, 1, 2, 3]]),
        cell_type="quadrilateral",
    )
    tet = create_cell_type("tetrahedron")
    with pytest.raises(ValueError):
        tet.volume(Cell(mesh, 0))


def test_geometry_helpers():
    a, b, c = np.zeros(3), np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0])
    assert_allclose(closest_point_triangle(np.array([-1.0, -1.0, 0.0]), a, b, c), a)
    assert_allclose(closest_point_triangle(np.array([1.0, 1.0, 0.0]), a, b, c), [0.5, 0.5, 0.0])
    assert squared_distance_segment([0.5, 2.0], [0.0, 0.0], [1.0, 0.0]) == pytest.approx(4.0)
    assert simplex_volume(np.array([a, b, c])) == pytest.approx(0.5)
    assert simplex_volume(np.array([[0.0, 0.0], [2.0, 0.0]])) == pytest.approx(2.0)
