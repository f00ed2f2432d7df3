from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from femesh import Mesh, MeshEditor, use


def _open_triangle_editor(mesh, num_vertices=3, num_cells=1):
    editor = MeshEditor()
    editor.open(mesh, "triangle", 2, 2)
    editor.init_vertices(num_vertices)
    editor.init_cells(num_cells)
    return editor


def test_build_triangle_mesh():
    mesh = Mesh()
    editor = _open_triangle_editor(mesh)
    editor.add_vertex(0, [0.0, 0.0])
    editor.add_vertex(1, [1.0, 0.0])
    editor.add_vertex(2, [0.0, 1.0])
    editor.add_cell(0, [0, 1, 2])
    editor.close()
    assert mesh.num_vertices() == 3
    assert mesh.num_cells() == 1
    assert mesh.geometry().dim() == 2
    assert mesh.type().cell_type() == "triangle"
    assert_allclose(mesh.coordinates()[2], [0.0, 1.0])
    assert mesh.ordered()


def test_build_with_global_indices():
    mesh = Mesh()
    editor = MeshEditor()
    editor.open(mesh, "interval", gdim=2)
    editor.init_vertices(2, 10)
    editor.add_vertex(0, [0.0, 0.0], 7)
    editor.add_vertex(1, [1.0, 1.0], 3)
    editor.init_cells(1, 5)
    editor.add_cell(0, [0, 1], 4)
    editor.close()
    t = mesh.topology()
    assert t.size_global(0) == 10
    assert t.size_global(1) == 5
    assert_array_equal(t.global_indices(0), [7, 3])
    assert_array_equal(t.global_indices(1), [4])
    # Ordering follows global vertex numbers
    assert_array_equal(mesh.cells()[0], [1, 0])


def test_open_accepts_dimension_and_celltype():
    mesh = Mesh()
    editor = MeshEditor()
    editor.open(mesh, 3)
    assert mesh.type().cell_type() == "tetrahedron"
    assert mesh.geometry().dim() == 3


def test_open_rejects_inconsistent_dimensions():
    editor = MeshEditor()
    with pytest.raises(ValueError):
        editor.open(Mesh(), "triangle", 3)
    with pytest.raises(ValueError):
        editor.open(Mesh(), "tetrahedron", 3, 2)
    with pytest.raises(ValueError):
        editor.open(Mesh(), "triangle", 2, 4)


def test_editor_not_open():
    editor = MeshEditor()
    with pytest.raises(RuntimeError):
        editor.init_vertices(3)
    with pytest.raises(RuntimeError):
        editor.add_vertex(0, [0.0, 0.0])
    with pytest.raises(RuntimeError):
        editor.close()


def test_vertices_must_be_added_in_order():
    editor = _open_triangle_editor(Mesh())
    with pytest.raises(ValueError):
        editor.add_vertex(1, [1.0, 0.0])
    editor.add_vertex(0, [0.0, 0.0])
    with pytest.raises(ValueError):
        editor.add_vertex(0, [0.0, 0.0])
    with pytest.raises(ValueError):
        editor.add_vertex(1, [1.0, 0.0, 0.0])


def test_vertices_must_be_initialized_first():
    editor = MeshEditor()
    editor.open(Mesh(), "triangle")
    with pytest.raises(ValueError):
        editor.add_vertex(0, [0.0, 0.0])
    editor.init_vertices(3)
    with pytest.raises(ValueError):
        editor.add_cell(0, [0, 1, 2])


def test_cells_are_validated():
    editor = _open_triangle_editor(Mesh(), num_cells=2)
    for i, x in enumerate([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]):
        editor.add_vertex(i, x)
    with pytest.raises(ValueError):
        editor.add_cell(1, [0, 1, 2])
    with pytest.raises(ValueError):
        editor.add_cell(0, [0, 1])
    with pytest.raises(ValueError):
        editor.add_cell(0, [0, 1, 3])
    with pytest.raises(ValueError):
        editor.add_cell(0, [-1, 1, 2])


def test_close_requires_all_entries():
    editor = _open_triangle_editor(Mesh(), num_cells=1)
    editor.add_vertex(0, [0.0, 0.0])
    with pytest.raises(ValueError):
        editor.close()


def test_close_without_ordering():
    mesh = Mesh()
    editor = _open_triangle_editor(mesh)
    for i, x in enumerate([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]):
        editor.add_vertex(i, x)
    editor.add_cell(0, [2, 0, 1])
    editor.close(order=False)
    assert_array_equal(mesh.cells()[0], [2, 0, 1])
    assert not mesh.ordered()


def test_close_follows_order_on_close_parameter():
    with use(order_on_close=False):
        mesh = Mesh(verts=np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]), connectivity=np.array([[1, 2, 0]]))
    assert_array_equal(mesh.cells()[0], [1, 2, 0])
    mesh.order()
    assert_array_equal(mesh.cells()[0], [0, 1, 2])


def test_reopening_clears_the_mesh(square_2x2):
    square_2x2.domains().set_marker(2, 0, 1)
    editor = MeshEditor()
    editor.open(square_2x2, "interval", 1, 1)
    editor.close()
    assert square_2x2.num_cells() == 0
    assert square_2x2.num_vertices() == 0
    assert square_2x2.domains().is_empty()
