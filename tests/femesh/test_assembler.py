from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose

from femesh import (
    Assembler,
    Form,
    Integral,
    Mesh,
    MeshEditor,
    MeshFunction,
    Scalar,
    SparseMatrix,
    Vector,
    assemble,
    symmetric_split,
)


def p1_mass(cell):
    v = cell.entities(0)
    return cell.volume() / 12.0 * (np.ones((3, 3)) + np.eye(3)), [v, v]


def p1_load(cell):
    v = cell.entities(0)
    return np.full(3, cell.volume() / 3.0), [v]


def area(cell):
    return cell.volume(), []


def facet_length(cell, local_facet):
    return cell.facet_area(local_facet), []


def test_cell_volume_sums_to_domain_area(square_2x2):
    s = assemble(Form(0, cell_integral=area, mesh=square_2x2))
    assert isinstance(s, Scalar)
    assert s.value() == pytest.approx(1.0)


def test_mass_matrix(square_2x2):
    M = assemble(Form(2, (9, 9), cell_integral=p1_mass), mesh=square_2x2)
    assert isinstance(M, SparseMatrix)
    dense = M.array()
    assert dense.sum() == pytest.approx(1.0)
    assert_allclose(dense, dense.T)
    # The center vertex touches six cells of area 1/8
    assert dense[4, 4] == pytest.approx(6 * (1.0 / 8.0) / 6.0)
    # Vertices 0 and 8 share no cell
    assert dense[0, 8] == 0.0


def test_load_vector(square_2x2):
    b = assemble(Form(1, (9,), cell_integral=p1_load, mesh=square_2x2))
    assert isinstance(b, Vector)
    assert b.array().sum() == pytest.approx(1.0)
    assert b.array()[4] == pytest.approx(6 * (1.0 / 8.0) / 3.0)


def test_perimeter_from_exterior_facets(square_2x2):
    s = assemble(Form(0, exterior_facet_integral=facet_length, mesh=square_2x2))
    assert s.value() == pytest.approx(4.0)


def test_interior_facets_are_visited_once(square_2x2):
    seen = []

    def kernel(cell0, facet0, cell1, facet1):
        seen.append((cell0.index(), facet0, cell1.index(), facet1))
        return 1.0, []

    s = assemble(Form(0, interior_facet_integral=kernel, mesh=square_2x2))
    assert s.value() == pytest.approx(8.0)
    assert len(seen) == 8
    for c0, f0, c1, f1 in seen:
        assert c0 < c1
        e0 = square_2x2.topology()(2, 1)(c0)[f0]
        e1 = square_2x2.topology()(2, 1)(c1)[f1]
        assert e0 == e1


def test_interior_facet_macro_dofs(square_2x2):
    def jump(cell0, facet0, cell1, facet1):
        dofs = np.concatenate([cell0.entities(0), cell1.entities(0)])
        return np.ones((6, 6)), [dofs, dofs]

    A = assemble(Form(2, (9, 9), interior_facet_integral=jump, mesh=square_2x2))
    assert A.array().sum() == pytest.approx(8 * 36.0)


def test_cell_and_facet_integrals_together(square_2x2):
    form = Form(0, cell_integral=area, exterior_facet_integral=facet_length, mesh=square_2x2)
    assert form.has_facet_integrals()
    assert assemble(form).value() == pytest.approx(5.0)


def test_subdomain_from_mesh_markers(square_2x2):
    for c in range(4):
        square_2x2.domains().set_marker(2, c, 1)
    lower = assemble(Form(0, cell_integral=Integral(area, 1), mesh=square_2x2))
    assert lower.value() == pytest.approx(0.5)
    # Unmarked cells are skipped by a labelled integral
    none = assemble(Form(0, cell_integral=Integral(area, 2), mesh=square_2x2))
    assert none.value() == 0.0
    everything = assemble(Form(0, cell_integral=Integral(area), mesh=square_2x2))
    assert everything.value() == pytest.approx(1.0)


def test_subdomain_from_explicit_labels(square_2x2):
    dx = MeshFunction(square_2x2, 2, 0)
    dx.array()[4:] = 3
    form = Form(0, cell_integral=[Integral(area, 0), Integral(area, 3)], dx=dx)
    assert form.mesh() is square_2x2
    assert assemble(form).value() == pytest.approx(1.0)
    upper = Form(0, cell_integral=Integral(area, 3), dx=dx)
    assert assemble(upper).value() == pytest.approx(0.5)


def test_subdomain_matrix_equals_submesh_assembly(square_2x2):
    dx = MeshFunction(square_2x2, 2, 0)
    dx.array()[:4] = 1
    A = assemble(Form(2, (9, 9), cell_integral=Integral(p1_mass, 1), dx=dx))
    sub = Mesh(
        verts=square_2x2.coordinates().copy(),
        connectivity=square_2x2.cells()[:4].copy(),
        cell_type="triangle",
    )
    B = assemble(Form(2, (9, 9), cell_integral=p1_mass, mesh=sub))
    assert_allclose(A.array(), B.array())


def test_exterior_facet_subdomains(square_2x2):
    square_2x2.init(1)
    ds = MeshFunction(square_2x2, 1, 0)
    x = square_2x2.coordinates()
    for f in range(square_2x2.num_edges()):
        v = square_2x2.topology()(1, 0)(f)
        if np.allclose(x[v, 1], 0.0):
            ds[f] = 5
    bottom = assemble(Form(0, exterior_facet_integral=Integral(facet_length, 5), ds=ds))
    assert bottom.value() == pytest.approx(1.0)


def test_symmetric_split(square_2x2):
    def skewed(cell):
        v = cell.entities(0)
        local = cell.volume() * np.array([[2.0, 1.0, 0.0], [0.0, 2.0, 1.0], [1.0, 0.0, 2.0]])
        return local, [v, v]

    form = Form(2, (9, 9), cell_integral=skewed, mesh=square_2x2)
    full = assemble(form).array()
    anti = SparseMatrix(9)
    sym = assemble(form, add_to_global=symmetric_split(anti))
    anti.apply()
    assert_allclose(sym.array(), sym.array().T)
    assert_allclose(anti.array(), -anti.array().T)
    assert_allclose(sym.array() + anti.array(), full)


def test_symmetric_split_rejects_non_square_blocks(square_2x2):
    form = Form(1, (9,), cell_integral=p1_load, mesh=square_2x2)
    with pytest.raises(ValueError):
        assemble(form, add_to_global=symmetric_split(Vector(9)))

    def mixed(cell):
        v = cell.entities(0)
        return np.eye(3), [v, v[::-1]]

    with pytest.raises(ValueError):
        assemble(Form(2, (9, 9), cell_integral=mixed, mesh=square_2x2), add_to_global=symmetric_split(SparseMatrix(9)))


def test_add_values_and_finalize(square_2x2):
    form = Form(2, (9, 9), cell_integral=p1_mass, mesh=square_2x2)
    A = SparseMatrix(9)
    Assembler(add_values=True).assemble(A, form)
    Assembler(add_values=True).assemble(A, form)
    assert A.array().sum() == pytest.approx(2.0)
    Assembler().assemble(A, form)
    assert A.array().sum() == pytest.approx(1.0)

    B = SparseMatrix(9)
    Assembler(finalize_tensor=False).assemble(B, form)
    assert B.pending() == 8 * 9


def test_local_tensors_are_collected(square_2x2):
    values = []
    form = Form(1, (9,), cell_integral=p1_load, mesh=square_2x2)
    Assembler().assemble_cells(Vector(9), form, values=values)
    assert len(values) == 8
    assert values[0].shape == (3,)


def test_assembly_requires_ordered_mesh():
    mesh = Mesh()
    editor = MeshEditor()
    editor.open(mesh, "triangle", 2, 2)
    editor.init_vertices(3)
    for i, x in enumerate([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]):
        editor.add_vertex(i, x)
    editor.init_cells(1)
    editor.add_cell(0, [2, 0, 1])
    editor.close(order=False)
    with pytest.raises(RuntimeError):
        assemble(Form(0, cell_integral=area, mesh=mesh))
    mesh.order()
    assert assemble(Form(0, cell_integral=area, mesh=mesh)).value() == pytest.approx(0.5)


def test_tensor_must_fit_the_form(square_2x2):
    form = Form(2, (9, 9), cell_integral=p1_mass, mesh=square_2x2)
    with pytest.raises(ValueError):
        Assembler().assemble(Vector(9), form)
    with pytest.raises(ValueError):
        Assembler().assemble(SparseMatrix(4), form)


def test_malformed_local_tensors(square_2x2):
    with pytest.raises(ValueError):
        assemble(Form(1, (2,), cell_integral=p1_load, mesh=square_2x2))
    with pytest.raises(ValueError):
        assemble(Form(0, cell_integral=lambda cell: 1.0, mesh=square_2x2))
    with pytest.raises(ValueError):
        assemble(Form(1, (9,), cell_integral=lambda cell: (np.ones(2), [cell.entities(0)]), mesh=square_2x2))


def test_flat_local_tensor_is_reshaped(square_2x2):
    def flat_mass(cell):
        values, dofs = p1_mass(cell)
        return values.reshape(-1), dofs

    A = assemble(Form(2, (9, 9), cell_integral=flat_mass, mesh=square_2x2))
    B = assemble(Form(2, (9, 9), cell_integral=p1_mass, mesh=square_2x2))
    assert_allclose(A.array(), B.array())


def test_facet_pass_needs_facet_connectivity(square_2x2):
    form = Form(0, exterior_facet_integral=facet_length, mesh=square_2x2)
    with pytest.raises(RuntimeError):
        Assembler().assemble_exterior_facets(Scalar(), form)
    square_2x2.init(1, 2)
    s = Scalar()
    Assembler().assemble_exterior_facets(s, form)
    assert s.value() == pytest.approx(4.0)


def test_missing_mesh():
    with pytest.raises(ValueError):
        assemble(Form(0, cell_integral=area))


def test_form_validation():
    with pytest.raises(ValueError):
        Form(2, (3,))
    with pytest.raises(ValueError):
        Form(0, cell_integral=[area])
    form = Form(1, (4,), cell_integral=[Integral(p1_load, 0), Integral(p1_load, 1)])
    assert len(form.cell_integrals) == 2
    assert not form.has_facet_integrals()
    assert form.mesh() is None
    assert "rank=1" in repr(form)
