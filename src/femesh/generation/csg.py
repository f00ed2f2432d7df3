"""Constructive solid geometry in 2D.

A CSG tree is built from primitives (Circle, Ellipse, Rectangle, Polygon)
joined by union (+), intersection (*) and difference (-). Building a tree
needs no geometry backend; `to_shapely` evaluates it with shapely, which is
only imported at that point.
"""
from __future__ import annotations

import logging
import math
from typing import Any, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)


def _shapely() -> Any:
    try:
        import shapely.geometry
    except ImportError as exc:
        _LOGGER.error("CSG: shapely is not installed")
        raise RuntimeError(
            "CSG geometry needs shapely; install the 'csg' extra (pip install femesh[csg])"
        ) from exc
    return shapely.geometry


def _point2(p: Sequence[float], what: str) -> Tuple[float, float]:
    p = tuple(float(c) for c in p)
    if len(p) != 2:
        _LOGGER.error("CSG: %s %s is not a 2D point", what, p)
        raise ValueError(f"{what} must be a 2D point, got {p}")
    return p  # type: ignore[return-value]


class CSGGeometry:
    """Base of all CSG nodes."""

    def dim(self) -> int:
        return 2

    def str(self, verbose: bool = False) -> str:
        raise NotImplementedError

    def to_shapely(self) -> Any:
        """Return the region as a shapely geometry."""
        raise NotImplementedError

    def __add__(self, other: "CSGGeometry") -> "CSGUnion":
        return CSGUnion(self, other)

    def __mul__(self, other: "CSGGeometry") -> "CSGIntersection":
        return CSGIntersection(self, other)

    def __sub__(self, other: "CSGGeometry") -> "CSGDifference":
        return CSGDifference(self, other)

    def __repr__(self) -> str:
        return self.str(False)


class CSGPrimitive(CSGGeometry):
    def boundary_points(self) -> NDArray[np.float64]:
        """Return the counter-clockwise boundary polygon, shape (n, 2)."""
        raise NotImplementedError

    def to_shapely(self) -> Any:
        return _shapely().Polygon(self.boundary_points())


class Circle(CSGPrimitive):
    """Circle approximated by a regular polygon of `fragments` sides.

    Raises:
        ValueError: For a non-positive radius or fewer than 3 fragments.
    """

    def __init__(self, center: Sequence[float], radius: float, fragments: int = 32) -> None:
        self.center = _point2(center, "Circle center")
        if radius <= 0.0:
            _LOGGER.error("Circle: radius %g is not positive", radius)
            raise ValueError(f"Circle radius must be positive, got {radius}")
        if fragments < 3:
            _LOGGER.error("Circle: %d fragments", fragments)
            raise ValueError(f"A circle needs at least 3 fragments, got {fragments}")
        self.radius = float(radius)
        self.fragments = int(fragments)

    def boundary_points(self) -> NDArray[np.float64]:
        phi = 2.0 * math.pi * np.arange(self.fragments) / self.fragments
        return np.stack(
            [self.center[0] + self.radius * np.cos(phi), self.center[1] + self.radius * np.sin(phi)],
            axis=1,
        )

    def str(self, verbose: bool = False) -> str:
        if verbose:
            return (
                f"<Circle at ({self.center[0]}, {self.center[1]}) with radius {self.radius} "
                f"and {self.fragments} fragments>"
            )
        return f"Circle({self.center[0]}, {self.center[1]}, {self.radius})"


class Ellipse(CSGPrimitive):
    """Axis-aligned ellipse with semi-axes `a` (x) and `b` (y)."""

    def __init__(self, center: Sequence[float], a: float, b: float, fragments: int = 32) -> None:
        self.center = _point2(center, "Ellipse center")
        if a <= 0.0 or b <= 0.0:
            _LOGGER.error("Ellipse: semi-axes %g, %g are not positive", a, b)
            raise ValueError(f"Ellipse semi-axes must be positive, got {a} and {b}")
        if fragments < 3:
            _LOGGER.error("Ellipse: %d fragments", fragments)
            raise ValueError(f"An ellipse needs at least 3 fragments, got {fragments}")
        self.a = float(a)
        self.b = float(b)
        self.fragments = int(fragments)

    def boundary_points(self) -> NDArray[np.float64]:
        phi = 2.0 * math.pi * np.arange(self.fragments) / self.fragments
        return np.stack(
            [self.center[0] + self.a * np.cos(phi), self.center[1] + self.b * np.sin(phi)], axis=1
        )

    def str(self, verbose: bool = False) -> str:
        if verbose:
            return (
                f"<Ellipse at ({self.center[0]}, {self.center[1]}) with semi-axes "
                f"{self.a} and {self.b} and {self.fragments} fragments>"
            )
        return f"Ellipse({self.center[0]}, {self.center[1]}, {self.a}, {self.b})"


class Rectangle(CSGPrimitive):
    """Axis-aligned rectangle with opposite corners `p0` and `p1`."""

    def __init__(self, p0: Sequence[float], p1: Sequence[float]) -> None:
        a = _point2(p0, "Rectangle corner")
        b = _point2(p1, "Rectangle corner")
        self.p0 = (min(a[0], b[0]), min(a[1], b[1]))
        self.p1 = (max(a[0], b[0]), max(a[1], b[1]))
        if self.p0[0] == self.p1[0] or self.p0[1] == self.p1[1]:
            _LOGGER.error("Rectangle: degenerate corners %s, %s", a, b)
            raise ValueError("Rectangle has zero width or height")

    def boundary_points(self) -> NDArray[np.float64]:
        (x0, y0), (x1, y1) = self.p0, self.p1
        return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=float)

    def str(self, verbose: bool = False) -> str:
        if verbose:
            return f"<Rectangle with corners {self.p0} and {self.p1}>"
        return f"Rectangle({self.p0[0]}, {self.p0[1]}, {self.p1[0]}, {self.p1[1]})"


class Polygon(CSGPrimitive):
    """Simple polygon through `vertices`."""

    def __init__(self, vertices: Sequence[Sequence[float]]) -> None:
        points: List[Tuple[float, float]] = [_point2(v, "Polygon vertex") for v in vertices]
        if len(points) < 3:
            _LOGGER.error("Polygon: %d vertices", len(points))
            raise ValueError(f"A polygon needs at least 3 vertices, got {len(points)}")
        self.vertices = points

    def boundary_points(self) -> NDArray[np.float64]:
        return np.asarray(self.vertices, dtype=float)

    def str(self, verbose: bool = False) -> str:
        if verbose:
            return "<Polygon with vertices " + ", ".join(f"({x}, {y})" for x, y in self.vertices) + ">"
        return "Polygon(" + ", ".join(f"{x}, {y}" for x, y in self.vertices) + ")"


class CSGOperator(CSGGeometry):
    _symbol = "?"
    _name = "operator"

    def __init__(self, g0: CSGGeometry, g1: CSGGeometry) -> None:
        for g in (g0, g1):
            if not isinstance(g, CSGGeometry):
                _LOGGER.error("CSG %s: operand %r is not a CSG geometry", self._name, g)
                raise ValueError(f"CSG {self._name} needs CSG geometries, got {type(g).__name__}")
            if g.dim() != 2:
                _LOGGER.error("CSG %s: operand of dimension %d", self._name, g.dim())
                raise ValueError("CSG operands must be 2D geometries")
        self.g0 = g0
        self.g1 = g1

    def str(self, verbose: bool = False) -> str:
        if verbose:
            return f"<CSG{self._name.capitalize()} of {self.g0.str(True)} and {self.g1.str(True)}>"
        return f"({self.g0.str(False)} {self._symbol} {self.g1.str(False)})"


class CSGUnion(CSGOperator):
    _symbol = "+"
    _name = "union"

    def to_shapely(self) -> Any:
        return self.g0.to_shapely().union(self.g1.to_shapely())


class CSGIntersection(CSGOperator):
    _symbol = "*"
    _name = "intersection"

    def to_shapely(self) -> Any:
        return self.g0.to_shapely().intersection(self.g1.to_shapely())


class CSGDifference(CSGOperator):
    _symbol = "-"
    _name = "difference"

    def to_shapely(self) -> Any:
        return self.g0.to_shapely().difference(self.g1.to_shapely())
