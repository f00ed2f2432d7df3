"""Module defining the incidence structure of a mesh.

This module provides:
  - MeshConnectivity: compressed row storage of one (d0, d1) incidence table.
  - MeshTopology: per-dimension entity counts, global numbering and the
    lazily populated set of connectivity tables.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)


class MeshConnectivity:
    """Incidence relation between entities of dimension d0 and d1.

    Rows are stored back to back in `connections`; row `i` spans
    `connections[offsets[i]:offsets[i + 1]]`. Row views returned by
    `__call__` alias the underlying storage, so in-place edits are visible.

    Args:
        d0 (int): Topological dimension of the source entities.
        d1 (int): Topological dimension of the target entities.
    """

    def __init__(self, d0: int, d1: int) -> None:
        self._d0 = int(d0)
        self._d1 = int(d1)
        self._offsets: NDArray[np.int64] = np.zeros(1, dtype=np.int64)
        self._connections: NDArray[np.int64] = np.zeros(0, dtype=np.int64)
        self._num_global_connections: Optional[NDArray[np.int64]] = None

    def set(self, rows: Sequence[Sequence[int]] | NDArray[Any]) -> None:
        """Replace the table with `rows`.

        Args:
            rows: A 2D integer array (uniform row length) or a ragged
                sequence of integer sequences.
        """
        if isinstance(rows, np.ndarray) and rows.ndim == 2:
            n, k = rows.shape
            self._connections = np.array(rows, dtype=np.int64).reshape(-1)
            self._offsets = np.arange(n + 1, dtype=np.int64) * k
        else:
            lengths = np.fromiter((len(r) for r in rows), dtype=np.int64)
            self._offsets = np.zeros(lengths.shape[0] + 1, dtype=np.int64)
            np.cumsum(lengths, out=self._offsets[1:])
            if lengths.shape[0] and self._offsets[-1]:
                self._connections = np.concatenate(
                    [np.asarray(r, dtype=np.int64) for r in rows]
                )
            else:
                self._connections = np.zeros(0, dtype=np.int64)
        self._num_global_connections = None

    def set_offsets(self, offsets: NDArray[Any], connections: NDArray[Any]) -> None:
        """Replace the table with already compressed rows."""
        self._offsets = np.asarray(offsets, dtype=np.int64)
        self._connections = np.asarray(connections, dtype=np.int64)
        self._num_global_connections = None

    def __call__(self, i: Optional[int] = None) -> NDArray[np.int64]:
        """Return the row of entity `i` (a view), or the flat array."""
        if i is None:
            return self._connections
        return self._connections[self._offsets[i] : self._offsets[i + 1]]

    def size(self, i: Optional[int] = None) -> int:
        """Return the row length of entity `i`, or the total number of entries."""
        if i is None:
            return int(self._connections.shape[0])
        return int(self._offsets[i + 1] - self._offsets[i])

    def __len__(self) -> int:
        return int(self._offsets.shape[0] - 1)

    def empty(self) -> bool:
        return self._connections.shape[0] == 0

    def offsets(self) -> NDArray[np.int64]:
        return self._offsets

    def array(self) -> NDArray[np.int64]:
        """Return a 2D view of the table when every row has the same length.

        Raises:
            ValueError: If the rows are ragged.
        """
        n = len(self)
        if n == 0:
            return self._connections.reshape(0, 0)
        lengths = np.diff(self._offsets)
        if np.any(lengths != lengths[0]):
            _LOGGER.error(
                "MeshConnectivity(%d,%d): ragged rows cannot be viewed as 2D",
                self._d0,
                self._d1,
            )
            raise ValueError(
                f"Connectivity ({self._d0}, {self._d1}) has ragged rows"
            )
        return self._connections.reshape(n, int(lengths[0]))

    def rows(self) -> List[List[int]]:
        """Return the table as a list of Python lists."""
        return [self(i).tolist() for i in range(len(self))]

    def set_num_global_connections(self, counts: Sequence[int] | NDArray[Any]) -> None:
        counts = np.asarray(counts, dtype=np.int64)
        if counts.shape[0] != len(self):
            _LOGGER.error(
                "MeshConnectivity(%d,%d): %d global counts for %d entities",
                self._d0,
                self._d1,
                counts.shape[0],
                len(self),
            )
            raise ValueError("Global connection counts do not match the entity count")
        self._num_global_connections = counts

    def num_global_connections(self, i: int) -> int:
        """Return the number of connections of entity `i` across all partitions."""
        if self._num_global_connections is None:
            return self.size(i)
        return int(self._num_global_connections[i])

    def clear(self) -> None:
        self._offsets = np.zeros(1, dtype=np.int64)
        self._connections = np.zeros(0, dtype=np.int64)
        self._num_global_connections = None

    def str(self, verbose: bool = False) -> str:
        if not verbose:
            return (
                f"<MeshConnectivity {self._d0} -- {self._d1} of size "
                f"{self.size()}>"
            )
        lines = [f"Connectivity {self._d0} -- {self._d1}:"]
        for i in range(len(self)):
            lines.append(f"  {i}: {' '.join(str(j) for j in self(i))}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.str(False)


class MeshTopology:
    """Entity counts and connectivity tables of a mesh.

    Attributes:
        _num_entities (List[int]): Local number of entities per dimension.
        _global_num_entities (List[int]): Global number of entities per
            dimension (0 when unset, in which case the local count is used).
        _global_indices (Dict[int, NDArray]): Local-to-global entity numbering.
        _connectivity (Dict[Tuple[int, int], MeshConnectivity]): Tables
            created on first access.
    """

    def __init__(self) -> None:
        self._num_entities: List[int] = []
        self._global_num_entities: List[int] = []
        self._global_indices: Dict[int, NDArray[np.int64]] = {}
        self._connectivity: Dict[Tuple[int, int], MeshConnectivity] = {}

    def dim(self) -> int:
        """Return the topological dimension."""
        return max(len(self._num_entities) - 1, 0)

    def init(
        self,
        dim: int,
        local_size: Optional[int] = None,
        global_size: Optional[int] = None,
    ) -> None:
        """Initialize the topology.

        With only `dim`, clear everything and prepare for a mesh of
        topological dimension `dim`. With sizes, set the number of entities
        of dimension `dim`.
        """
        if local_size is None:
            if dim < 0:
                _LOGGER.error("MeshTopology.init: illegal dimension %d", dim)
                raise ValueError(f"Illegal topological dimension ({dim})")
            self.clear()
            self._num_entities = [0] * (dim + 1)
            self._global_num_entities = [0] * (dim + 1)
            return
        self._check_dim(dim)
        self._num_entities[dim] = int(local_size)
        self._global_num_entities[dim] = int(
            local_size if global_size is None else global_size
        )

    def _check_dim(self, dim: int) -> None:
        if dim < 0 or dim >= len(self._num_entities):
            _LOGGER.error(
                "MeshTopology: dimension %d out of range [0, %d]",
                dim,
                len(self._num_entities) - 1,
            )
            raise ValueError(
                f"Dimension {dim} out of range for topology of dimension {self.dim()}"
            )

    def size(self, dim: int) -> int:
        """Return the number of local entities of dimension `dim`."""
        if dim < 0 or dim >= len(self._num_entities):
            return 0
        return self._num_entities[dim]

    def size_global(self, dim: int) -> int:
        """Return the global number of entities (the local size when unset)."""
        if dim < 0 or dim >= len(self._global_num_entities):
            return 0
        return self._global_num_entities[dim] or self._num_entities[dim]

    def set_global_indices(self, dim: int, indices: Sequence[int] | NDArray[Any]) -> None:
        self._check_dim(dim)
        indices = np.asarray(indices, dtype=np.int64)
        if indices.shape[0] != self._num_entities[dim]:
            _LOGGER.error(
                "MeshTopology: %d global indices for %d entities of dimension %d",
                indices.shape[0],
                self._num_entities[dim],
                dim,
            )
            raise ValueError("Number of global indices does not match entity count")
        self._global_indices[dim] = indices

    def global_indices(self, dim: int) -> NDArray[np.int64]:
        """Return the global indices of dimension `dim` (identity when unset)."""
        if dim in self._global_indices:
            return self._global_indices[dim]
        return np.arange(self.size(dim), dtype=np.int64)

    def have_global_indices(self, dim: int) -> bool:
        return dim in self._global_indices

    def __call__(self, d0: int, d1: int) -> MeshConnectivity:
        """Return connectivity (d0, d1), creating an empty table on first access."""
        key = (d0, d1)
        if key not in self._connectivity:
            self._check_dim(d0)
            self._check_dim(d1)
            self._connectivity[key] = MeshConnectivity(d0, d1)
        return self._connectivity[key]

    def have(self, d0: int, d1: int) -> bool:
        """Return whether connectivity (d0, d1) has been computed."""
        c = self._connectivity.get((d0, d1))
        return c is not None and not c.empty()

    def set_num_global_connections(
        self, d0: int, d1: int, counts: Sequence[int] | NDArray[Any]
    ) -> None:
        self(d0, d1).set_num_global_connections(counts)

    def num_global_connections(self, d0: int, d1: int, index: int) -> int:
        return self(d0, d1).num_global_connections(index)

    def clear(self) -> None:
        """Clear all data."""
        self._num_entities = []
        self._global_num_entities = []
        self._global_indices = {}
        self._connectivity = {}

    def clean(self) -> None:
        """Drop all derived data, keeping cell-vertex connectivity."""
        D = self.dim()
        if not self._num_entities:
            return
        for key in list(self._connectivity):
            if key != (D, 0):
                del self._connectivity[key]
        for d in range(1, D):
            self._num_entities[d] = 0
            self._global_num_entities[d] = 0
            self._global_indices.pop(d, None)
        _LOGGER.debug("MeshTopology.clean: kept connectivity (%d, 0)", D)

    def hash(self) -> int:
        """Return a hash of the cell-vertex connectivity."""
        h = hashlib.sha1()
        if self._num_entities:
            h.update(np.ascontiguousarray(self(self.dim(), 0)()).tobytes())
        return int.from_bytes(h.digest()[:8], "little")

    def str(self, verbose: bool = False) -> str:
        D = self.dim()
        if not verbose:
            return f"<MeshTopology of dimension {D}>"
        lines = ["Number of entities:"]
        for d in range(len(self._num_entities)):
            lines.append(f"  dim = {d}: {self._num_entities[d]}")
        lines.append("Connectivity matrix:")
        for d0 in range(len(self._num_entities)):
            flags = " ".join("x" if self.have(d0, d1) else "-" for d1 in range(D + 1))
            lines.append(f"  {flags}")
        for (d0, d1), c in sorted(self._connectivity.items()):
            if not c.empty():
                lines.append(c.str(True))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.str(False)
