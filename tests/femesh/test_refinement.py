from __future__ import annotations

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from femesh import Cell, cells, refine
from femesh.generation import unit_interval_mesh, unit_quad_mesh


def _total_volume(mesh):
    return sum(c.volume() for c in cells(mesh))


def test_refine_triangles(square_2x2):
    fine = refine(square_2x2)
    assert fine.num_cells() == 32
    assert fine.num_vertices() == 25
    assert fine.ordered()
    assert _total_volume(fine) == pytest.approx(1.0)
    assert fine.hmax() == pytest.approx(math.sqrt(2.0) / 4.0)
    # Uniform refinement keeps the shape of every cell
    assert fine.radius_ratio_min() == pytest.approx(square_2x2.radius_ratio_min())


def test_new_vertices_are_edge_midpoints(square_2x2):
    fine = refine(square_2x2)
    x = square_2x2.coordinates()
    edges = square_2x2.topology()(1, 0).array()
    assert_allclose(fine.coordinates()[:9], x)
    assert_allclose(fine.coordinates()[9:], 0.5 * (x[edges[:, 0]] + x[edges[:, 1]]))


def test_children_lie_in_their_parent(square_2x2):
    fine = refine(square_2x2)
    for c in range(square_2x2.num_cells()):
        parent = Cell(square_2x2, c)
        for k in range(4):
            child = Cell(fine, 4 * c + k)
            assert parent.contains(child.midpoint())
            assert child.volume() == pytest.approx(parent.volume() / 4.0)


def test_refine_tetrahedra(cube_1x1x1):
    fine = refine(cube_1x1x1)
    assert fine.num_cells() == 48
    assert fine.num_vertices() == 27
    assert _total_volume(fine) == pytest.approx(1.0)
    for c in range(cube_1x1x1.num_cells()):
        parent = Cell(cube_1x1x1, c)
        for k in range(8):
            child = Cell(fine, 8 * c + k)
            assert child.volume() == pytest.approx(parent.volume() / 8.0)
            assert parent.contains(child.midpoint())


def test_refine_intervals():
    fine = refine(unit_interval_mesh(4))
    assert fine.num_cells() == 8
    assert fine.num_vertices() == 9
    assert _total_volume(fine) == pytest.approx(1.0)
    assert sorted(fine.coordinates()[:, 0].tolist()) == pytest.approx(np.linspace(0.0, 1.0, 9).tolist())


def test_refinement_inherits_cell_markers(square_2x2):
    square_2x2.domains().set_marker(2, 3, 5)
    fine = refine(square_2x2)
    assert fine.domains().num_marked(2) == 4
    for k in range(4):
        assert fine.domains().get_marker(2, 12 + k) == 5


def test_refine_twice(square_2x2):
    finer = refine(refine(square_2x2))
    assert finer.num_cells() == 128
    assert finer.num_vertices() == 81
    assert _total_volume(finer) == pytest.approx(1.0)


def test_refine_rejects_non_simplices():
    with pytest.raises(ValueError):
        refine(unit_quad_mesh(1, 1))
