"""3D vector math helpers operating on tuple[float, float, float].

Z is up. Angles are in degrees.
"""
from __future__ import annotations

import math

Vec3 = tuple[float, float, float]

UP: Vec3 = (0.0, 0.0, 1.0)
DOWN: Vec3 = (0.0, 0.0, -1.0)
ZERO: Vec3 = (0.0, 0.0, 0.0)


def add(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def scale(v: Vec3, s: float) -> Vec3:
    return (v[0] * s, v[1] * s, v[2] * s)


def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def length(v: Vec3) -> float:
    return math.sqrt(dot(v, v))


def normalize(v: Vec3) -> Vec3:
    mag = length(v)
    if mag == 0.0:
        return v
    return scale(v, 1.0 / mag)


def distance(a: Vec3, b: Vec3) -> float:
    return length(sub(a, b))


def distance_sq(a: Vec3, b: Vec3) -> float:
    d = sub(a, b)
    return dot(d, d)


def distance_2d(a: Vec3, b: Vec3) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def with_z(v: Vec3, z: float) -> Vec3:
    return (v[0], v[1], z)


def lerp(a: Vec3, b: Vec3, t: float) -> Vec3:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t, a[2] + (b[2] - a[2]) * t)


def angle(a: Vec3, b: Vec3) -> float:
    """Unsigned angle between two vectors. Zero-length input yields 0."""
    mags = length(a) * length(b)
    if mags == 0.0:
        return 0.0
    cos = max(-1.0, min(1.0, dot(a, b) / mags))
    return math.degrees(math.acos(cos))


def rotate_yaw(v: Vec3, degrees: float) -> Vec3:
    """Rotate around the up axis."""
    if degrees == 0.0:
        return v
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return (v[0] * c - v[1] * s, v[0] * s + v[1] * c, v[2])


def forward(yaw: float) -> Vec3:
    """Unit vector on the ground plane pointing at ``yaw`` degrees."""
    rad = math.radians(yaw)
    return (math.cos(rad), math.sin(rad), 0.0)
