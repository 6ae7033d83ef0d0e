"""
Immersed bodies as ordered point sets.

Quadrature weights and normals are computed from the points alone, so a body
and the raw coordinates of its points always give the same surface data.
Points of closed bodies are expected in counter-clockwise order, for which
the normals below point outward.
"""

from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np

from ilmerrors import DimensionMismatchError


def _segment_lengths(x: np.ndarray, y: np.ndarray, closed: bool) -> np.ndarray:
    """Lengths |X_{k+1} - X_k|; for closed curves the last one wraps around."""
    if closed:
        return np.hypot(np.roll(x, -1) - x, np.roll(y, -1) - y)
    return np.hypot(np.diff(x), np.diff(y))


def arclength_weights(x: np.ndarray, y: np.ndarray, closed: bool) -> np.ndarray:
    """
    ds_k = (|X_{k+1} - X_k| + |X_k - X_{k-1}|)/2. Endpoints of open curves
    only get the half segment on their side.
    """
    n = x.size
    if n == 1:
        return np.zeros(1)
    seg = _segment_lengths(x, y, closed)
    if closed:
        return 0.5 * (seg + np.roll(seg, 1))
    ds = np.zeros(n)
    ds[:-1] += 0.5 * seg
    ds[1:] += 0.5 * seg
    return ds


def finite_difference_normals(
    x: np.ndarray, y: np.ndarray, closed: bool
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unit normals (t_y, -t_x)/|t| from the centred tangent t_k = X_{k+1} - X_{k-1}
    (one-sided at the ends of open curves).
    """
    n = x.size
    if n == 1:
        return np.zeros(1), np.zeros(1)
    if closed:
        tx = np.roll(x, -1) - np.roll(x, 1)
        ty = np.roll(y, -1) - np.roll(y, 1)
    else:
        tx = np.empty(n)
        ty = np.empty(n)
        tx[1:-1] = x[2:] - x[:-2]
        ty[1:-1] = y[2:] - y[:-2]
        tx[0], ty[0] = x[1] - x[0], y[1] - y[0]
        tx[-1], ty[-1] = x[-1] - x[-2], y[-1] - y[-2]
    tnorm = np.hypot(tx, ty)
    if np.any(tnorm == 0.0):
        raise DimensionMismatchError("Body has repeated consecutive points; normals undefined.")
    return ty / tnorm, -tx / tnorm


class Body:
    """
    An immutable ordered point set (closed curve by default).
    """

    def __init__(self, x, y, *, closed: bool = True):
        x = np.array(x, dtype=float).ravel()
        y = np.array(y, dtype=float).ravel()
        if x.shape != y.shape:
            raise DimensionMismatchError(
                f"Body: x and y must have the same length, got {x.size} and {y.size}."
            )
        x.setflags(write=False)
        y.setflags(write=False)
        self._x = x
        self._y = y
        self._closed = bool(closed)

    @property
    def x(self) -> np.ndarray:
        return self._x

    @property
    def y(self) -> np.ndarray:
        return self._y

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self):
        return self._x.size

    def __repr__(self):
        return f"{self.__class__.__name__}(npts={len(self)}, closed={self._closed})"

    def arclength_weights(self) -> np.ndarray:
        return arclength_weights(self._x, self._y, self._closed)

    def normals(self) -> Tuple[np.ndarray, np.ndarray]:
        return finite_difference_normals(self._x, self._y, self._closed)

    def centroid(self) -> Tuple[float, float]:
        return float(np.mean(self._x)), float(np.mean(self._y))

    def transform(self, *, translation=(0.0, 0.0), angle: float = 0.0) -> "Body":
        """
        A new Body rotated by `angle` about its centroid and then translated.
        """
        xc, yc = self.centroid()
        c, s = np.cos(angle), np.sin(angle)
        dx, dy = self._x - xc, self._y - yc
        xn = xc + c * dx - s * dy + translation[0]
        yn = yc + s * dx + c * dy + translation[1]
        return Body(xn, yn, closed=self._closed)


class Circle(Body):
    def __init__(self, radius: float, ds: float, *, center=(0.0, 0.0)):
        n = max(int(np.ceil(2.0 * np.pi * radius / ds)), 3)
        theta = 2.0 * np.pi * np.arange(n) / n
        self.radius = float(radius)
        super().__init__(
            center[0] + radius * np.cos(theta), center[1] + radius * np.sin(theta)
        )


class Ellipse(Body):
    """Ellipse with semi-axes a (along x) and b, points equally spaced in arclength."""

    def __init__(self, a: float, b: float, ds: float, *, center=(0.0, 0.0)):
        fine = np.linspace(0.0, 2.0 * np.pi, 4096 + 1)
        xf, yf = a * np.cos(fine), b * np.sin(fine)
        s = np.concatenate([[0.0], np.cumsum(np.hypot(np.diff(xf), np.diff(yf)))])
        n = max(int(np.ceil(s[-1] / ds)), 3)
        theta = np.interp(np.arange(n) * s[-1] / n, s, fine)
        self.a, self.b = float(a), float(b)
        super().__init__(center[0] + a * np.cos(theta), center[1] + b * np.sin(theta))


def _polygon_points(vertices: np.ndarray, ds: float) -> Tuple[np.ndarray, np.ndarray]:
    """Points at the midpoints of equal sub-segments of each side (no point on a corner)."""
    xs, ys = [], []
    nv = len(vertices)
    for k in range(nv):
        p0 = vertices[k]
        p1 = vertices[(k + 1) % nv]
        length = np.hypot(*(p1 - p0))
        m = max(int(np.ceil(length / ds)), 1)
        t = (np.arange(m) + 0.5) / m
        xs.append(p0[0] + t * (p1[0] - p0[0]))
        ys.append(p0[1] + t * (p1[1] - p0[1]))
    return np.concatenate(xs), np.concatenate(ys)


class Rectangle(Body):
    """Rectangle with half-lengths a (along x) and b (along y)."""

    def __init__(self, a: float, b: float, ds: float, *, center=(0.0, 0.0)):
        vertices = np.array([[a, -b], [a, b], [-a, b], [-a, -b]]) + np.asarray(center)
        self.a, self.b = float(a), float(b)
        super().__init__(*_polygon_points(vertices, ds))


class Square(Rectangle):
    def __init__(self, a: float, ds: float, *, center=(0.0, 0.0)):
        super().__init__(a, a, ds, center=center)


class LineSegment(Body):
    """Open straight segment from p0 to p1, endpoints included."""

    def __init__(self, p0, p1, ds: float):
        p0 = np.asarray(p0, dtype=float)
        p1 = np.asarray(p1, dtype=float)
        length = np.hypot(*(p1 - p0))
        n = max(int(np.ceil(length / ds)), 1) + 1
        t = np.linspace(0.0, 1.0, n)
        super().__init__(p0[0] + t * (p1[0] - p0[0]), p0[1] + t * (p1[1] - p0[1]), closed=False)


class BodyList:
    """Ordered collection of bodies; surface data is their concatenation."""

    def __init__(self, bodies: Iterable[Body] = ()):
        self._bodies: Tuple[Body, ...] = tuple(bodies)
        for b in self._bodies:
            if not isinstance(b, Body):
                raise TypeError(f"BodyList: expected Body instances, got {type(b).__name__}.")

    def __len__(self):
        return len(self._bodies)

    def __iter__(self):
        return iter(self._bodies)

    def __getitem__(self, i) -> Body:
        return self._bodies[i]

    def __repr__(self):
        return f"BodyList({list(self._bodies)!r})"

    @property
    def npts(self) -> int:
        return sum(len(b) for b in self._bodies)

    def ranges(self) -> List[slice]:
        """Slice of the concatenated surface data belonging to each body."""
        out, start = [], 0
        for b in self._bodies:
            out.append(slice(start, start + len(b)))
            start += len(b)
        return out

    def _concat(self, parts: List[np.ndarray]) -> np.ndarray:
        return np.concatenate(parts) if parts else np.zeros(0)

    @property
    def x(self) -> np.ndarray:
        return self._concat([b.x for b in self._bodies])

    @property
    def y(self) -> np.ndarray:
        return self._concat([b.y for b in self._bodies])

    def arclength_weights(self) -> np.ndarray:
        return self._concat([b.arclength_weights() for b in self._bodies])

    def normals(self) -> Tuple[np.ndarray, np.ndarray]:
        parts = [b.normals() for b in self._bodies]
        return self._concat([p[0] for p in parts]), self._concat([p[1] for p in parts])

    def with_body(self, i: int, body: Body) -> "BodyList":
        """A new BodyList with body `i` replaced."""
        bodies = list(self._bodies)
        bodies[i] = body
        return BodyList(bodies)


BodyLike = Union[Body, BodyList, Sequence[Body], Tuple[np.ndarray, np.ndarray]]


def to_bodylist(bodies: BodyLike) -> BodyList:
    """
    Accepts a Body, a BodyList, a sequence of Body, or raw coordinates (x, y)
    (taken as one closed curve).
    """
    if isinstance(bodies, BodyList):
        return bodies
    if isinstance(bodies, Body):
        return BodyList([bodies])
    if isinstance(bodies, (list, tuple)) and all(isinstance(b, Body) for b in bodies):
        return BodyList(bodies)
    if isinstance(bodies, (list, tuple)) and len(bodies) == 2:
        return BodyList([Body(bodies[0], bodies[1])])
    raise TypeError(f"Cannot interpret {type(bodies).__name__} as bodies.")
