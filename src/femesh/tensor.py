"""Global tensors receiving assembled local contributions.

Adds are summed and their order does not matter; `apply` finalizes pending
adds. Matrices accumulate COO triplets and are compressed to CSR with
scipy.sparse on `apply`, which sums duplicate entries.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)


class GlobalTensor(Protocol):
    """Interface of an assembly target."""

    def rank(self) -> int: ...

    def shape(self) -> Tuple[int, ...]: ...

    def add(self, values: NDArray[Any], dofs: Sequence[NDArray[Any]]) -> None: ...

    def apply(self) -> None: ...

    def zero(self) -> None: ...


def _check_dofs(tensor: Any, values: NDArray[Any], dofs: Sequence[NDArray[Any]]) -> NDArray[Any]:
    if len(dofs) != tensor.rank():
        _LOGGER.error("%s.add: %d dof lists for rank %d", type(tensor).__name__, len(dofs), tensor.rank())
        raise ValueError(f"Expected {tensor.rank()} dof lists, got {len(dofs)}")
    shape = tuple(len(d) for d in dofs)
    values = np.asarray(values, dtype=float)
    if values.size != int(np.prod(shape)):
        _LOGGER.error("%s.add: %d values for dofs of shape %s", type(tensor).__name__, values.size, shape)
        raise ValueError(f"{values.size} values do not match dofs of shape {shape}")
    return values.reshape(shape)


class _TensorBase:
    def add_to_global(
        self,
        values: NDArray[Any],
        row_dofs: Optional[Sequence[int]] = None,
        col_dofs: Optional[Sequence[int]] = None,
    ) -> None:
        """Add `values` at (`row_dofs`, `col_dofs`), omitting unused ranks."""
        dofs = [np.asarray(d, dtype=np.int64) for d in (row_dofs, col_dofs) if d is not None]
        self.add(values, dofs)  # type: ignore[attr-defined]


class Scalar(_TensorBase):
    """Rank-0 tensor."""

    def __init__(self) -> None:
        self._value = 0.0

    def rank(self) -> int:
        return 0

    def shape(self) -> Tuple[int, ...]:
        return ()

    def add(self, values: NDArray[Any], dofs: Sequence[NDArray[Any]] = ()) -> None:
        self._value += float(np.sum(_check_dofs(self, values, dofs)))

    def apply(self) -> None:
        pass

    def zero(self) -> None:
        self._value = 0.0

    def value(self) -> float:
        return self._value

    def __float__(self) -> float:
        return self._value

    def __repr__(self) -> str:
        return f"<Scalar {self._value}>"


class Vector(_TensorBase):
    """Dense rank-1 tensor of size `n`."""

    def __init__(self, n: int) -> None:
        self._array = np.zeros(int(n), dtype=float)

    def rank(self) -> int:
        return 1

    def shape(self) -> Tuple[int, ...]:
        return (self._array.shape[0],)

    def size(self) -> int:
        return int(self._array.shape[0])

    def add(self, values: NDArray[Any], dofs: Sequence[NDArray[Any]]) -> None:
        values = _check_dofs(self, values, dofs)
        np.add.at(self._array, np.asarray(dofs[0], dtype=np.int64), values)

    def apply(self) -> None:
        pass

    def zero(self) -> None:
        self._array[:] = 0.0

    def array(self) -> NDArray[np.float64]:
        return self._array

    def __repr__(self) -> str:
        return f"<Vector of size {self.size()}>"


class SparseMatrix(_TensorBase):
    """Sparse rank-2 tensor of shape (m, n)."""

    def __init__(self, m: int, n: Optional[int] = None) -> None:
        self._shape = (int(m), int(m if n is None else n))
        self._rows: List[NDArray[np.int64]] = []
        self._cols: List[NDArray[np.int64]] = []
        self._vals: List[NDArray[np.float64]] = []
        self._csr = sp.csr_matrix(self._shape, dtype=float)

    def rank(self) -> int:
        return 2

    def shape(self) -> Tuple[int, ...]:
        return self._shape

    def add(self, values: NDArray[Any], dofs: Sequence[NDArray[Any]]) -> None:
        values = _check_dofs(self, values, dofs)
        rows, cols = np.meshgrid(
            np.asarray(dofs[0], dtype=np.int64),
            np.asarray(dofs[1], dtype=np.int64),
            indexing="ij",
        )
        self._rows.append(rows.reshape(-1))
        self._cols.append(cols.reshape(-1))
        self._vals.append(values.reshape(-1))

    def apply(self) -> None:
        """Compress pending entries into the CSR matrix."""
        if not self._vals:
            return
        rows = np.concatenate(self._rows)
        cols = np.concatenate(self._cols)
        vals = np.concatenate(self._vals)
        pending = sp.coo_matrix((vals, (rows, cols)), shape=self._shape).tocsr()
        self._csr = (self._csr + pending).tocsr()
        self._rows, self._cols, self._vals = [], [], []
        _LOGGER.debug("SparseMatrix.apply: %d entries, %d nonzeros", vals.shape[0], self._csr.nnz)

    def zero(self) -> None:
        self._rows, self._cols, self._vals = [], [], []
        self._csr = sp.csr_matrix(self._shape, dtype=float)

    def pending(self) -> int:
        """Return the number of entries added since the last `apply`."""
        return int(sum(v.shape[0] for v in self._vals))

    def matrix(self) -> sp.csr_matrix:
        """Return the assembled CSR matrix (pending adds are applied first)."""
        self.apply()
        return self._csr

    def array(self) -> NDArray[np.float64]:
        return self.matrix().toarray()

    def nnz(self) -> int:
        return int(self.matrix().nnz)

    def __repr__(self) -> str:
        return f"<SparseMatrix {self._shape[0]}x{self._shape[1]}>"


def create_tensor(rank: int, shape: Sequence[int] = ()) -> Any:
    """Return an empty tensor of the given rank and shape.

    Raises:
        ValueError: For a rank above 2 or a shape of the wrong length.
    """
    shape = tuple(shape)
    if rank not in (0, 1, 2) or len(shape) != rank:
        _LOGGER.error("create_tensor: unsupported rank %d with shape %s", rank, shape)
        raise ValueError(f"Cannot create a tensor of rank {rank} and shape {shape}")
    if rank == 0:
        return Scalar()
    if rank == 1:
        return Vector(shape[0])
    return SparseMatrix(shape[0], shape[1])
