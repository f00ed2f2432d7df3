"""Global configuration for femesh.

Logging level control, FEMESH_* environment parsing and the global
parameters (geometric tolerance, mesh ordering policy, CSG generator
defaults). Parameters can be changed with `configure` or overridden for a
block with `use`.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, ContextManager, Dict, Iterator

_LOGGER = logging.getLogger("femesh")

_TRUE = frozenset(("1", "true", "yes", "on"))
_FALSE = frozenset(("0", "false", "no", "off"))


def set_log_level(level: str | int = "WARNING") -> None:
    """Set the level of the `femesh` logger.

    Unknown level names fall back to WARNING.
    """
    if not isinstance(level, int):
        level = logging.getLevelName(str(level).upper())
        if not isinstance(level, int):
            level = logging.WARNING
    _LOGGER.setLevel(level)


set_log_level(os.getenv("FEMESH_LOGLEVEL", "WARNING"))


def bool_env(varname: str, default: bool) -> bool:
    """Return environment variable `varname` as a boolean.

    Accepts 1/0, true/false, yes/no and on/off in any case.

    Raises:
        ValueError: For any other value.
    """
    raw = os.getenv(varname)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    _LOGGER.error("bool_env: %s=%r is not a boolean", varname, raw)
    raise ValueError(f"Environment variable {varname} is not a boolean: {raw!r}")


def int_env(varname: str, default: int) -> int:
    raw = os.getenv(varname)
    return default if raw is None else int(raw)


def float_env(varname: str, default: float) -> float:
    raw = os.getenv(varname)
    return default if raw is None else float(raw)


@dataclass(frozen=True)
class Parameters:
    """Global femesh parameters.

    Attributes:
        eps: Absolute tolerance used by point-in-cell tests.
        order_on_close: Whether `MeshEditor.close()` orders the mesh by default.
        mesh_resolution: Default CSG mesh resolution (0 disables it and
            `cell_size` is used instead).
        triangle_shape_bound: Default CSG shape bound (squared sine of the
            smallest admissible angle).
        cell_size: Default CSG upper bound on edge length.
    """

    eps: float = 3.0e-16
    order_on_close: bool = True
    mesh_resolution: int = 64
    triangle_shape_bound: float = 0.125
    cell_size: float = 0.25


def _parameters_from_env() -> Parameters:
    """Build the initial parameter set from FEMESH_* environment variables."""
    defaults = Parameters()
    params = Parameters(
        eps=float_env("FEMESH_EPS", defaults.eps),
        order_on_close=bool_env("FEMESH_ORDER_MESH", defaults.order_on_close),
        mesh_resolution=int_env("FEMESH_MESH_RESOLUTION", defaults.mesh_resolution),
        triangle_shape_bound=float_env(
            "FEMESH_TRIANGLE_SHAPE_BOUND", defaults.triangle_shape_bound
        ),
        cell_size=float_env("FEMESH_CELL_SIZE", defaults.cell_size),
    )
    _LOGGER.debug("Parameters from environment: %s", params)
    return params


class Config:
    """Global configuration holder.

    Provides read access to the current `Parameters`, programmatic updates and
    a context manager for temporary overrides.
    """

    def __init__(self) -> None:
        """Initialize config using environment defaults."""
        self._params = _parameters_from_env()

    def configure(self, **params: Any) -> Config:
        """Update one or more parameters.

        Args:
            **params: Parameter names and their new values.

        Returns:
            The `Config` instance (for chaining).

        Raises:
            ValueError: If an unknown parameter name is given.
        """
        known = {f.name for f in fields(Parameters)}
        unknown = sorted(set(params) - known)
        if unknown:
            _LOGGER.error("configure: unknown parameter(s) %s", unknown)
            raise ValueError(f"Unknown femesh parameter(s): {', '.join(unknown)}")
        self._params = replace(self._params, **params)
        _LOGGER.info("Reconfigured parameters: %s", params)
        return self

    @contextlib.contextmanager
    def use(self, **params: Any) -> Iterator[Parameters]:
        """Temporarily override parameters within a context manager.

        Yields:
            The active `Parameters`. Restores the previous values on exit.
        """
        prev = self._params
        try:
            self.configure(**params)
            yield self._params
        finally:
            self._params = prev
            _LOGGER.debug("Restored previous parameters: %s", prev)

    @property
    def parameters(self) -> Parameters:
        """Return the active parameters (immutable)."""
        return self._params

    def __getattr__(self, name: str) -> Any:  # noqa: D401
        params = self.__dict__.get("_params")
        if params is not None and hasattr(params, name):
            return getattr(params, name)
        raise AttributeError(name)


# Singleton & forwards
config = Config()


def configure(**params: Any) -> Config:
    """Update global parameters (module-level)."""
    return config.configure(**params)


def use(**params: Any) -> ContextManager[Parameters]:
    """Temporarily override global parameters (module-level)."""
    return config.use(**params)


def parameters() -> Dict[str, Any]:
    """Return a plain dict copy of the active parameters."""
    p = config.parameters
    return {f.name: getattr(p, f.name) for f in fields(Parameters)}
