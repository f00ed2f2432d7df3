from __future__ import annotations

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from femesh import Mesh, cells
from femesh.generation import unit_quad_mesh, unit_square_mesh


def test_mesh_requires_both_arrays():
    with pytest.raises(ValueError):
        Mesh(verts=np.zeros((3, 2)))
    with pytest.raises(ValueError):
        Mesh(connectivity=np.array([[0, 1, 2]]))


def test_empty_mesh():
    m = Mesh()
    assert m.num_cells() == 0
    assert m.init(1) == 0
    assert m.str() == "<Mesh (empty)>"
    with pytest.raises(RuntimeError):
        m.type()


def test_cell_type_is_inferred():
    square = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    assert Mesh(verts=square, connectivity=np.array([[0, 1, 2, 3]])).type().cell_type() == "quadrilateral"
    tet = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    assert Mesh(verts=tet, connectivity=np.array([[0, 1, 2, 3]])).type().cell_type() == "tetrahedron"
    with pytest.raises(ValueError):
        Mesh(verts=np.zeros((5, 2)), connectivity=np.array([[0, 1, 2, 3, 4]]))


def test_counts_and_accessors(square_2x2):
    m = square_2x2
    assert m.num_vertices() == 9
    assert m.num_cells() == 8
    assert m.init(1) == 16
    assert m.num_edges() == 16
    assert m.num_facets() == 16
    assert m.size_global(2) == 8
    assert m.cells().shape == (8, 3)
    assert m.coordinates().shape == (9, 2)
    assert "8 cells" in m.str()
    assert "dim = 1: 16" in m.str(verbose=True)


def test_cell_metrics(square_2x2):
    h = math.sqrt(2.0) / 2.0
    assert square_2x2.hmin() == pytest.approx(h)
    assert square_2x2.hmax() == pytest.approx(h)
    assert square_2x2.rmin() == pytest.approx((2.0 - math.sqrt(2.0)) / 4.0)
    assert square_2x2.rmax() == pytest.approx(square_2x2.rmin())
    assert square_2x2.radius_ratio_min() == pytest.approx(2.0 * math.sqrt(2.0) - 2.0)
    assert square_2x2.radius_ratio_max() == pytest.approx(2.0 * math.sqrt(2.0) - 2.0)


def test_point_containment(square_2x2):
    assert square_2x2.intersected_cells([0.3, 0.1]) == [0]
    assert square_2x2.intersected_cell([0.3, 0.1]) == 0
    # On the diagonal shared by cells 0 and 1
    assert square_2x2.intersected_cells([0.25, 0.25]) == [0, 1]
    assert square_2x2.intersected_cell([2.0, 2.0]) == -1
    assert square_2x2.intersected_cells([2.0, 2.0]) == []


def test_closest_point_queries(square_2x2):
    assert square_2x2.distance([2.0, 0.5]) == pytest.approx(1.0)
    assert_allclose(square_2x2.closest_point([2.0, 0.5]), [1.0, 0.5])
    assert square_2x2.closest_cell([2.0, 0.25]) == 2
    q, c = square_2x2.closest_point_and_cell([0.3, 0.1])
    assert c == 0
    assert_allclose(q, [0.3, 0.1])
    assert square_2x2.distance([0.3, 0.1]) == pytest.approx(0.0, abs=1e-12)


def test_closest_point_on_empty_mesh():
    with pytest.raises(ValueError):
        Mesh().closest_cell([0.0, 0.0])


def test_translate_and_rotate(reference_triangle):
    m = reference_triangle
    assert m.intersected_cell([0.2, 0.2]) == 0
    m.translate([1.0, 2.0])
    assert_allclose(m.coordinates()[0], [1.0, 2.0])
    assert m.intersected_cell([0.2, 0.2]) == -1
    assert m.intersected_cell([1.2, 2.2]) == 0
    m.rotate(90.0, point=[1.0, 2.0])
    assert_allclose(m.coordinates(), [[1.0, 2.0], [1.0, 3.0], [0.0, 2.0]], atol=1e-12)
    with pytest.raises(ValueError):
        m.translate([1.0, 2.0, 3.0])
    with pytest.raises(ValueError):
        m.rotate(10.0, axis=0)


def test_rotate_in_3d_about_the_center(cube_1x1x1):
    before = cube_1x1x1.coordinates().copy()
    cube_1x1x1.rotate(180.0, axis=0)
    after = cube_1x1x1.coordinates()
    assert_allclose(after[:, 0], before[:, 0])
    assert_allclose(after[:, 1:], 1.0 - before[:, 1:], atol=1e-12)


def test_hash(square_2x2):
    other = unit_square_mesh(2, 2)
    assert square_2x2.hash() == other.hash()
    other.translate([0.0, 1.0])
    assert square_2x2.hash() != other.hash()


def test_cell_orientations(surface_triangle):
    assert surface_triangle.cell_orientations() == []
    surface_triangle.init_cell_orientations([0.0, 0.0, -1.0])
    assert surface_triangle.cell_orientations() == [1]
    surface_triangle.init_cell_orientations([0.0, 0.0, 1.0])
    assert surface_triangle.cell_orientations() == [0]


def test_meshio_roundtrip_with_markers(tmp_path, square_2x2):
    square_2x2.domains().set_marker(2, 5, 3)
    path = str(tmp_path / "square.vtu")
    square_2x2.write(path, point_data={"u": square_2x2.coordinates()[:, 0]})
    m = Mesh(path)
    assert m.type().cell_type() == "triangle"
    assert m.geometry().dim() == 2
    assert_allclose(m.coordinates(), square_2x2.coordinates())
    assert_array_equal(m.cells(), square_2x2.cells())
    assert m.domains().get_marker(2, 5) == 3
    assert m.domains().num_marked(2) == 1


def test_meshio_roundtrip_quadrilaterals(tmp_path):
    q = unit_quad_mesh(2, 1)
    path = str(tmp_path / "quads.vtu")
    q.write(path)
    m = Mesh(path)
    assert m.type().cell_type() == "quadrilateral"
    assert_array_equal(m.cells(), q.cells())
    assert sum(m.type().volume(c) for c in cells(m)) == pytest.approx(1.0)


def test_write_rejects_bad_data_lengths(tmp_path, square_2x2):
    with pytest.raises(ValueError):
        square_2x2.write(str(tmp_path / "a.vtu"), point_data={"u": np.zeros(3)})
    with pytest.raises(ValueError):
        square_2x2.write(str(tmp_path / "b.vtu"), cell_data={"k": np.zeros(3)})
