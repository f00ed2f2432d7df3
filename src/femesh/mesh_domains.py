"""Module defining MeshDomains, sparse integer labels on mesh entities."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .mesh_function import MeshFunction

if TYPE_CHECKING:
    from .mesh import Mesh

_LOGGER = logging.getLogger(__name__)

#: Value of entities without a label in `MeshDomains.mesh_function`.
UNMARKED = -1


class MeshDomains:
    """Per-dimension maps from entity index to a non-negative label."""

    def __init__(self) -> None:
        self._markers: List[Dict[int, int]] = []

    def init(self, dim: int) -> None:
        """Prepare empty marker maps for dimensions 0..dim."""
        self._markers = [{} for _ in range(dim + 1)]

    def max_dim(self) -> int:
        return len(self._markers) - 1

    def _check_dim(self, dim: int) -> None:
        if dim < 0 or dim >= len(self._markers):
            _LOGGER.error("MeshDomains: dimension %d out of range", dim)
            raise ValueError(f"No domain markers of dimension {dim}")

    def markers(self, dim: int) -> Dict[int, int]:
        self._check_dim(dim)
        return self._markers[dim]

    def set_marker(self, dim: int, entity: int, value: int) -> None:
        self._check_dim(dim)
        value = int(value)
        if value < 0:
            _LOGGER.error("MeshDomains.set_marker: negative label %d", value)
            raise ValueError(f"Domain labels must be non-negative (got {value})")
        self._markers[dim][int(entity)] = value

    def get_marker(self, dim: int, entity: int, default: Optional[int] = None) -> Optional[int]:
        self._check_dim(dim)
        return self._markers[dim].get(int(entity), default)

    def num_marked(self, dim: int) -> int:
        if dim < 0 or dim >= len(self._markers):
            return 0
        return len(self._markers[dim])

    def is_empty(self) -> bool:
        return all(not m for m in self._markers)

    def clear(self) -> None:
        for m in self._markers:
            m.clear()

    def mesh_function(self, mesh: "Mesh", dim: int) -> MeshFunction:
        """Return the labels of dimension `dim` as a dense MeshFunction.

        Entities without a label hold `UNMARKED`.
        """
        self._check_dim(dim)
        f = MeshFunction(mesh, dim, UNMARKED)
        for entity, value in self._markers[dim].items():
            f[entity] = value
        return f

    def __repr__(self) -> str:
        counts = ", ".join(f"{d}: {len(m)}" for d, m in enumerate(self._markers))
        return f"<MeshDomains {{{counts}}}>"
