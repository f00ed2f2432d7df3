"""Assembly of global tensors from forms.

The assembler walks cells, exterior facets and interior facets, calls the
form's kernels on each selected entity and scatters the local tensors into
a global tensor through an `add_to_global` strategy chosen at construction.

Subdomain filtering: when a label function is available (passed in, set on
the form as dx/ds/dS, or taken from the mesh domain markers) an integral
with a `subdomain_id` only sees entities carrying that label. Entities with
another label, or none, are skipped without error.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .form import Form, Integral
from .mesh_entity import Cell
from .mesh_function import MeshFunction
from .tensor import GlobalTensor, create_tensor

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)

AddToGlobal = Callable[[GlobalTensor, NDArray[Any], Sequence[NDArray[Any]]], None]


def default_add_to_global(
    A: GlobalTensor, values: NDArray[Any], dofs: Sequence[NDArray[Any]]
) -> None:
    """Add the local tensor to `A` unchanged."""
    A.add(values, dofs)


def symmetric_split(antisymmetric_tensor: GlobalTensor) -> AddToGlobal:
    """Return a strategy adding the symmetric part of each block to the target.

    The antisymmetric remainder goes to `antisymmetric_tensor`. Blocks must
    be square with identical row and column dofs.
    """

    def add_to_global(
        A: GlobalTensor, values: NDArray[Any], dofs: Sequence[NDArray[Any]]
    ) -> None:
        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            _LOGGER.error("symmetric_split: local tensor of shape %s is not square", values.shape)
            raise ValueError(f"Cannot split a local tensor of shape {values.shape}")
        if not np.array_equal(dofs[0], dofs[1]):
            _LOGGER.error("symmetric_split: row and column dofs differ")
            raise ValueError("Symmetric splitting needs identical row and column dofs")
        sym = 0.5 * (values + values.T)
        A.add(sym, dofs)
        antisymmetric_tensor.add(values - sym, dofs)

    return add_to_global


def _form_mesh(form: Form, mesh: Optional["Mesh"]) -> "Mesh":
    mesh = mesh if mesh is not None else form.mesh()
    if mesh is None:
        _LOGGER.error("Assembler: no mesh given and none attached to the form")
        raise ValueError("No mesh to assemble over")
    return mesh


def _selected(integral: Integral, domains: Optional[MeshFunction], entity: int) -> bool:
    if domains is None or integral.subdomain_id is None:
        return True
    return int(domains[entity]) == integral.subdomain_id


def _labels(
    mesh: "Mesh", dim: int, explicit: Optional[MeshFunction], attached: Optional[MeshFunction]
) -> Optional[MeshFunction]:
    if explicit is not None:
        return explicit
    if attached is not None:
        return attached
    markers = mesh.domains()
    if markers.num_marked(dim) == 0:
        return None
    return markers.mesh_function(mesh, dim)


class Assembler:
    """Drives entity traversal and scatters local tensors.

    Args:
        add_to_global: Strategy receiving (tensor, values, dofs) for every
            local tensor; see `default_add_to_global`, `symmetric_split`.
        add_values: Keep existing tensor entries instead of zeroing first.
        finalize_tensor: Call `A.apply()` at the end of `assemble`.
    """

    def __init__(
        self,
        add_to_global: AddToGlobal = default_add_to_global,
        add_values: bool = False,
        finalize_tensor: bool = True,
    ) -> None:
        self.add_to_global = add_to_global
        self.add_values = add_values
        self.finalize_tensor = finalize_tensor

    def assemble(self, A: GlobalTensor, form: Form, mesh: Optional["Mesh"] = None) -> GlobalTensor:
        """Assemble `form` into `A` over all cells and facets.

        Raises:
            RuntimeError: If the mesh is not ordered.
            ValueError: If the tensor does not fit the form or a kernel
                returns a malformed local tensor.
        """
        mesh = _form_mesh(form, mesh)
        if A.rank() != form.rank() or tuple(A.shape()) != form.shape():
            _LOGGER.error(
                "Assembler: tensor of rank %d shape %s for form of rank %d shape %s",
                A.rank(),
                A.shape(),
                form.rank(),
                form.shape(),
            )
            raise ValueError("Tensor rank or shape does not match the form")
        if not mesh.ordered():
            _LOGGER.error("Assembler: mesh is not ordered")
            raise RuntimeError("Mesh must be ordered before assembly; call mesh.order()")

        D = mesh.topology().dim()
        if form.has_facet_integrals():
            mesh.init(D - 1)
            mesh.init(D - 1, D)
            mesh.init(D, D - 1)

        if not self.add_values:
            A.zero()
        self.assemble_cells(A, form, mesh=mesh)
        if form.exterior_facet_integrals:
            self.assemble_exterior_facets(A, form, mesh=mesh)
        if form.interior_facet_integrals:
            self.assemble_interior_facets(A, form, mesh=mesh)
        if self.finalize_tensor:
            A.apply()
        _LOGGER.info("Assembled %r over %d cells", form, mesh.num_cells())
        return A

    def _scatter(
        self,
        A: GlobalTensor,
        form: Form,
        result: Any,
        values: Optional[List[NDArray[Any]]],
    ) -> None:
        local, dofs = form.local_tensor(result)
        if values is not None:
            values.append(local)
        self.add_to_global(A, local, dofs)

    def assemble_cells(
        self,
        A: GlobalTensor,
        form: Form,
        domains: Optional[MeshFunction] = None,
        values: Optional[List[NDArray[Any]]] = None,
        mesh: Optional["Mesh"] = None,
    ) -> None:
        """Add the cell integrals of `form` to `A`.

        Args:
            domains: Cell labels; defaults to `form.dx` or the mesh markers.
            values: If given, receives every local tensor in traversal order.
        """
        if not form.cell_integrals:
            return
        mesh = _form_mesh(form, mesh)
        D = mesh.topology().dim()
        domains = _labels(mesh, D, domains, form.dx)
        count = 0
        for c in range(mesh.num_cells()):
            cell = None
            for integral in form.cell_integrals:
                if not _selected(integral, domains, c):
                    continue
                if cell is None:
                    cell = Cell(mesh, c)
                self._scatter(A, form, integral(cell), values)
                count += 1
        _LOGGER.debug("Assembled %d cell tensors", count)

    def _facet_cells(self, mesh: "Mesh", op: str) -> Any:
        topology = mesh.topology()
        D = topology.dim()
        if mesh.num_cells() and not topology.have(D - 1, D):
            _LOGGER.error("Assembler.%s: connectivity (%d, %d) has not been computed", op, D - 1, D)
            raise RuntimeError(
                f"Facet-cell connectivity ({D - 1}, {D}) must be computed before {op}"
            )
        return topology(D - 1, D)

    @staticmethod
    def _local_facet(cell: Cell, facet: int) -> int:
        return int(np.flatnonzero(cell.entities(cell.dim() - 1) == facet)[0])

    def assemble_exterior_facets(
        self,
        A: GlobalTensor,
        form: Form,
        domains: Optional[MeshFunction] = None,
        values: Optional[List[NDArray[Any]]] = None,
        mesh: Optional["Mesh"] = None,
    ) -> None:
        """Add the exterior facet integrals of `form` to `A`.

        Facets with one incident cell locally and globally are visited.

        Raises:
            RuntimeError: If facet-cell connectivity has not been computed.
        """
        if not form.exterior_facet_integrals:
            return
        mesh = _form_mesh(form, mesh)
        facet_cells = self._facet_cells(mesh, "assemble_exterior_facets")
        D = mesh.topology().dim()
        domains = _labels(mesh, D - 1, domains, form.ds)
        count = 0
        for f in range(mesh.num_facets()):
            if facet_cells.size(f) != 1 or facet_cells.num_global_connections(f) != 1:
                continue
            cell = None
            for integral in form.exterior_facet_integrals:
                if not _selected(integral, domains, f):
                    continue
                if cell is None:
                    cell = Cell(mesh, int(facet_cells(f)[0]))
                    local_facet = self._local_facet(cell, f)
                self._scatter(A, form, integral(cell, local_facet), values)
                count += 1
        _LOGGER.debug("Assembled %d exterior facet tensors", count)

    def assemble_interior_facets(
        self,
        A: GlobalTensor,
        form: Form,
        domains: Optional[MeshFunction] = None,
        values: Optional[List[NDArray[Any]]] = None,
        mesh: Optional["Mesh"] = None,
    ) -> None:
        """Add the interior facet integrals of `form` to `A`.

        Facets shared by two local cells are visited; the "+" side is the
        cell with the lower index.

        Raises:
            RuntimeError: If facet-cell connectivity has not been computed.
        """
        if not form.interior_facet_integrals:
            return
        mesh = _form_mesh(form, mesh)
        facet_cells = self._facet_cells(mesh, "assemble_interior_facets")
        D = mesh.topology().dim()
        domains = _labels(mesh, D - 1, domains, form.dS)
        count = 0
        for f in range(mesh.num_facets()):
            if facet_cells.size(f) != 2:
                continue
            sides = None
            for integral in form.interior_facet_integrals:
                if not _selected(integral, domains, f):
                    continue
                if sides is None:
                    c0, c1 = sorted(int(c) for c in facet_cells(f))
                    cell0, cell1 = Cell(mesh, c0), Cell(mesh, c1)
                    sides = (cell0, self._local_facet(cell0, f), cell1, self._local_facet(cell1, f))
                self._scatter(A, form, integral(*sides), values)
                count += 1
        _LOGGER.debug("Assembled %d interior facet tensors", count)


def assemble(
    form: Form,
    mesh: Optional["Mesh"] = None,
    tensor: Optional[GlobalTensor] = None,
    add_to_global: AddToGlobal = default_add_to_global,
) -> Any:
    """Assemble `form`, creating a tensor of the right type when none is given.

    Returns:
        The assembled tensor: a Scalar, Vector or SparseMatrix unless
        `tensor` was supplied.
    """
    A = tensor if tensor is not None else create_tensor(form.rank(), form.shape())
    return Assembler(add_to_global).assemble(A, form, mesh)
