"""Forms: local-tensor callables grouped by integration domain.

A kernel computes the local tensor of one mesh entity and says where it goes:

  - cell integral: ``kernel(cell) -> (values, dofs)``
  - exterior facet integral: ``kernel(cell, local_facet) -> (values, dofs)``
  - interior facet integral: ``kernel(cell0, facet0, cell1, facet1) -> (values, dofs)``

`dofs` holds one index sequence per tensor rank (none for a scalar); for an
interior facet these are the macro-element dofs of both cells together, and
`values` must have shape ``tuple(len(d) for d in dofs)``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from .mesh_function import MeshFunction

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)

Kernel = Callable[..., Tuple[Any, Sequence[Sequence[int]]]]


@dataclass
class Integral:
    """A kernel restricted to the entities labelled `subdomain_id`.

    With `subdomain_id` None the kernel is applied to every entity.
    """

    kernel: Kernel
    subdomain_id: Optional[int] = None

    def __call__(self, *args: Any) -> Tuple[Any, Sequence[Sequence[int]]]:
        return self.kernel(*args)


IntegralLike = Union[Integral, Kernel, Sequence[Integral], None]


def _as_integrals(integral: IntegralLike) -> List[Integral]:
    if integral is None:
        return []
    if isinstance(integral, Integral):
        return [integral]
    if callable(integral):
        return [Integral(integral)]
    integrals = list(integral)
    for i in integrals:
        if not isinstance(i, Integral):
            _LOGGER.error("Form: expected an Integral, got %r", type(i).__name__)
            raise ValueError(f"Expected an Integral, got {type(i).__name__}")
    return integrals


class Form:
    """Rank, global shape and integrals of a variational form.

    Args:
        rank (int): Tensor rank (0 scalar, 1 vector, 2 matrix).
        shape (Sequence[int]): Global tensor dimensions, one per rank.
        cell_integral: Integral(s) over cells; a bare callable is wrapped.
        exterior_facet_integral: Integral(s) over exterior facets.
        interior_facet_integral: Integral(s) over interior facets.
        dx (Optional[MeshFunction]): Cell labels used for subdomain
            filtering; defaults to the mesh domain markers.
        ds (Optional[MeshFunction]): Exterior facet labels.
        dS (Optional[MeshFunction]): Interior facet labels.
        mesh (Optional[Mesh]): Mesh to integrate over; taken from the label
            functions when omitted.

    Raises:
        ValueError: If `shape` does not have `rank` entries.
    """

    def __init__(
        self,
        rank: int,
        shape: Sequence[int] = (),
        cell_integral: IntegralLike = None,
        exterior_facet_integral: IntegralLike = None,
        interior_facet_integral: IntegralLike = None,
        dx: Optional[MeshFunction] = None,
        ds: Optional[MeshFunction] = None,
        dS: Optional[MeshFunction] = None,
        mesh: Optional["Mesh"] = None,
    ) -> None:
        shape = tuple(int(n) for n in shape)
        if rank < 0 or len(shape) != rank:
            _LOGGER.error("Form: rank %d with shape %s", rank, shape)
            raise ValueError(f"A form of rank {rank} needs {rank} dimensions, got {shape}")
        self._rank = int(rank)
        self._shape = shape
        self.cell_integrals = _as_integrals(cell_integral)
        self.exterior_facet_integrals = _as_integrals(exterior_facet_integral)
        self.interior_facet_integrals = _as_integrals(interior_facet_integral)
        self.dx = dx
        self.ds = ds
        self.dS = dS
        self._mesh = mesh

    def rank(self) -> int:
        return self._rank

    def shape(self) -> Tuple[int, ...]:
        return self._shape

    def mesh(self) -> Optional["Mesh"]:
        if self._mesh is not None:
            return self._mesh
        for f in (self.dx, self.ds, self.dS):
            if f is not None:
                return f.mesh()
        return None

    def has_facet_integrals(self) -> bool:
        return bool(self.exterior_facet_integrals or self.interior_facet_integrals)

    def local_tensor(self, result: Any) -> Tuple[NDArray[np.float64], List[NDArray[np.int64]]]:
        """Validate kernel output and return it as arrays.

        A flat `values` array of the right size is reshaped.

        Raises:
            ValueError: If the number of dof lists differs from the rank or
                the values do not match the dof counts.
        """
        try:
            values, dofs = result
        except (TypeError, ValueError):
            _LOGGER.error("Form: kernel returned %r instead of (values, dofs)", type(result).__name__)
            raise ValueError("A kernel must return a (values, dofs) pair") from None
        dofs = [np.asarray(d, dtype=np.int64).reshape(-1) for d in dofs]
        if len(dofs) != self._rank:
            _LOGGER.error("Form: %d dof lists for a form of rank %d", len(dofs), self._rank)
            raise ValueError(f"Expected {self._rank} dof lists, got {len(dofs)}")
        shape = tuple(d.shape[0] for d in dofs)
        values = np.asarray(values, dtype=float)
        if values.shape != shape:
            if values.size != int(np.prod(shape)):
                _LOGGER.error("Form: local tensor of shape %s for dofs %s", values.shape, shape)
                raise ValueError(f"Local tensor of shape {values.shape} does not match dofs {shape}")
            values = values.reshape(shape)
        for d, n in zip(dofs, self._shape):
            if d.shape[0] and (d.min() < 0 or d.max() >= n):
                _LOGGER.error("Form: dofs %s outside [0, %d)", d, n)
                raise ValueError(f"Dof index outside [0, {n})")
        return values, dofs

    def __repr__(self) -> str:
        return (
            f"<Form rank={self._rank} shape={self._shape} "
            f"cells={len(self.cell_integrals)} "
            f"exterior_facets={len(self.exterior_facet_integrals)} "
            f"interior_facets={len(self.interior_facet_integrals)}>"
        )
