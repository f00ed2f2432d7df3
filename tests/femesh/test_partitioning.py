from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from femesh import BoundaryMesh, LocalMeshData, Mesh, distribute, local_range, number_entities
from femesh.local_mesh_data import index_owner
from femesh.topology_computation import TopologyComputation


def _edge_index(mesh, key):
    keys = TopologyComputation.entity_keys(mesh, 1).tolist()
    return keys.index(sorted(key))


@pytest.fixture
def halves(square_2x2):
    parts = [LocalMeshData.from_mesh(square_2x2, r, 2) for r in range(2)]
    return distribute(parts)


def test_local_range():
    assert [local_range(10, r, 3) for r in range(3)] == [(0, 4), (4, 7), (7, 10)]
    assert [local_range(2, r, 3) for r in range(3)] == [(0, 1), (1, 2), (2, 2)]
    for i in range(10):
        start, end = local_range(10, index_owner(10, i, 3), 3)
        assert start <= i < end
    with pytest.raises(ValueError):
        local_range(10, 3, 3)
    with pytest.raises(ValueError):
        local_range(10, 0, 0)


def test_from_mesh_slices(square_2x2):
    data = LocalMeshData.from_mesh(square_2x2, 0, 2)
    assert data.cell_type == "triangle"
    assert (data.tdim, data.gdim) == (2, 2)
    assert_array_equal(data.vertex_indices, [0, 1, 2, 3, 4])
    assert_array_equal(data.global_cell_indices, [0, 1, 2, 3])
    assert data.cell_vertices.shape == (4, 3)
    assert data.num_global_vertices == 9
    data.check()
    assert "cells=4/8" in str(data)


def test_serial_roundtrip_through_local_data(square_2x2):
    square_2x2.domains().set_marker(2, 6, 1)
    m = Mesh.from_local_mesh_data(LocalMeshData.from_mesh(square_2x2))
    assert_allclose(m.coordinates(), square_2x2.coordinates())
    assert_array_equal(m.cells(), square_2x2.cells())
    assert m.domains().get_marker(2, 6) == 1
    with pytest.raises(ValueError):
        Mesh.from_local_mesh_data(LocalMeshData.from_mesh(square_2x2, 1, 2))


def test_distribute_builds_local_meshes(halves):
    m0, m1 = halves
    assert (m0.num_vertices(), m0.num_cells()) == (6, 4)
    assert (m1.num_vertices(), m1.num_cells()) == (6, 4)
    assert_array_equal(m0.topology().global_indices(0), [0, 1, 2, 3, 4, 5])
    assert_array_equal(m1.topology().global_indices(0), [3, 4, 5, 6, 7, 8])
    assert_array_equal(m1.topology().global_indices(2), [4, 5, 6, 7])
    assert m0.size_global(0) == 9
    assert m1.size_global(2) == 8
    assert m0.ordered() and m1.ordered()
    # Vertex coordinates follow the global vertex
    assert_allclose(m1.coordinates()[0], [0.0, 0.5])


def test_distributed_markers(square_2x2):
    square_2x2.domains().set_marker(2, 5, 2)
    square_2x2.init(1)
    seam = _edge_index(square_2x2, [3, 4])
    square_2x2.domains().set_marker(1, seam, 7)
    square_2x2.domains().set_marker(0, 8, 3)
    parts = [LocalMeshData.from_mesh(square_2x2, r, 2) for r in range(2)]
    m0, m1 = distribute(parts)

    assert m0.domains().num_marked(2) == 0
    assert m1.domains().get_marker(2, 1) == 2
    # The seam edge is present on both partitions
    for m in (m0, m1):
        assert m.domains().get_marker(1, _edge_index(m, [3, 4])) == 7
    assert m1.domains().get_marker(0, 5) == 3
    assert m0.domains().num_marked(0) == 0


def test_number_entities(halves):
    m0, m1 = halves
    assert number_entities(halves, 0) == 9
    assert number_entities(halves, 2) == 8
    assert number_entities(halves, 1) == 16
    assert m0.num_edges() == 9
    assert m1.size_global(1) == 16
    seam0 = m0.topology().global_indices(1)[_edge_index(m0, [3, 4])]
    seam1 = m1.topology().global_indices(1)[_edge_index(m1, [3, 4])]
    assert seam0 == seam1
    with pytest.raises(ValueError):
        number_entities(halves, 3)


def test_global_edge_numbers_follow_sorted_keys(square_2x2):
    assert number_entities([square_2x2], 1) == 16
    keys = TopologyComputation.entity_keys(square_2x2, 1)
    order = np.lexsort(keys.T[::-1])
    assert_array_equal(square_2x2.topology().global_indices(1)[order], np.arange(16))


def test_seam_facets_have_two_global_cells(halves):
    number_entities(halves, 1)
    for m in halves:
        facet_cells = m.topology()(1, 2)
        local_boundary = [f for f in range(m.num_edges()) if facet_cells.size(f) == 1]
        seams = [f for f in local_boundary if facet_cells.num_global_connections(f) == 2]
        assert len(local_boundary) == 6
        assert len(seams) == 2


def test_boundary_of_partitions(halves):
    number_entities(halves, 1)
    for m in halves:
        assert BoundaryMesh(m, "exterior").num_cells() == 4
        assert BoundaryMesh(m, "interior").num_cells() == 2
        assert BoundaryMesh(m, "local").num_cells() == 6
    seam = BoundaryMesh(halves[0], "interior")
    assert_allclose(seam.coordinates()[:, 1], 0.5)


def test_empty_partition(two_triangle_square):
    parts = [LocalMeshData.from_mesh(two_triangle_square, r, 3) for r in range(3)]
    meshes = distribute(parts)
    assert [m.num_cells() for m in meshes] == [1, 1, 0]
    # The last partition keeps the vertex it owns
    assert meshes[2].num_vertices() == 1
    assert_array_equal(meshes[2].topology().global_indices(0), [3])
    assert number_entities(meshes, 1) == 5
    assert meshes[2].num_edges() == 0


def test_distribute_errors(square_2x2):
    with pytest.raises(ValueError):
        distribute([])

    parts = [LocalMeshData.from_mesh(square_2x2, r, 2) for r in range(2)]
    parts[1].num_global_cells = 9
    with pytest.raises(ValueError):
        distribute(parts)

    parts = [LocalMeshData.from_mesh(square_2x2, r, 2) for r in range(2)]
    parts[1].vertex_indices = np.zeros(0, dtype=np.int64)
    parts[1].vertex_coordinates = np.zeros((0, 2))
    with pytest.raises(ValueError):
        distribute(parts)


def test_check_rejects_inconsistent_data(square_2x2):
    data = LocalMeshData.from_mesh(square_2x2)
    data.cell_vertices[0, 0] = 9
    with pytest.raises(ValueError):
        data.check()

    data = LocalMeshData.from_mesh(square_2x2)
    data.cell_type = "tetrahedron"
    with pytest.raises(ValueError):
        data.check()

    data = LocalMeshData.from_mesh(square_2x2)
    data.cell_type = "prism"
    with pytest.raises(ValueError):
        data.check()

    data = LocalMeshData.from_mesh(square_2x2)
    data.domain_data[2] = [(12, 0, 1)]
    with pytest.raises(ValueError):
        data.check()

    data.clear()
    assert data.num_global_cells == 0
    assert data.domain_data == {}
