# stepflow/core/jobs/geometry.py
"""
Small GeoJSON helpers for the built-in geometry jobs.

Coordinates are `[longitude, latitude]` in degrees. Areas are computed on a
sphere of radius 6378137 m (WGS84 equatorial radius) with the ring-area
formula from "Some Algorithms for Polygons on a Sphere" (Chamberlain &
Duquette, JPL 2007).
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Sequence

EARTH_RADIUS_M = 6378137.0

Position = Sequence[float]
Ring = Sequence[Position]
PolygonCoords = Sequence[Ring]


def as_geometry(obj: Any) -> Optional[Mapping[str, Any]]:
    """Return the geometry object of a Feature, or `obj` itself if it is a geometry."""
    if not isinstance(obj, Mapping):
        return None
    if obj.get('type') == 'Feature':
        geometry = obj.get('geometry')
        return geometry if isinstance(geometry, Mapping) else None
    return obj


def _is_position(p: Any) -> bool:
    return (
        isinstance(p, (list, tuple))
        and len(p) >= 2
        and all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in p[:2])
    )


def _is_valid_ring(ring: Any) -> bool:
    if not isinstance(ring, (list, tuple)) or len(ring) < 4:
        return False
    if not all(_is_position(p) for p in ring):
        return False
    return list(ring[0][:2]) == list(ring[-1][:2])


def is_valid_polygon(geometry: Optional[Mapping[str, Any]]) -> bool:
    """Check that a geometry is a Polygon whose rings are closed with at least 4 positions."""
    if geometry is None or geometry.get('type') != 'Polygon':
        return False
    rings = geometry.get('coordinates')
    if not isinstance(rings, (list, tuple)) or not rings:
        return False
    return all(_is_valid_ring(ring) for ring in rings)


def polygons_of(geometry: Mapping[str, Any]) -> list[PolygonCoords]:
    """Coordinates of each polygon in a Polygon or MultiPolygon."""
    kind = geometry.get('type')
    coords = geometry.get('coordinates') or []
    if kind == 'Polygon':
        return [coords]
    if kind == 'MultiPolygon':
        return list(coords)
    return []


def ring_area(ring: Ring) -> float:
    """Signed spherical area of a ring, in square metres."""
    n = len(ring)
    if n <= 2:
        return 0.0
    total = 0.0
    for i in range(n):
        if i == n - 2:
            lower, middle, upper = n - 2, n - 1, 0
        elif i == n - 1:
            lower, middle, upper = n - 1, 0, 1
        else:
            lower, middle, upper = i, i + 1, i + 2
        p1, p2, p3 = ring[lower], ring[middle], ring[upper]
        total += (math.radians(p3[0]) - math.radians(p1[0])) * math.sin(
            math.radians(p2[1])
        )
    return total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2.0


def polygon_area(rings: PolygonCoords) -> float:
    """Area of a polygon: exterior ring minus its holes, in square metres."""
    if not rings:
        return 0.0
    area = abs(ring_area(rings[0]))
    for hole in rings[1:]:
        area -= abs(ring_area(hole))
    return area


def geometry_area(geometry: Mapping[str, Any]) -> float:
    return sum(polygon_area(rings) for rings in polygons_of(geometry))


def _on_segment(p: Position, a: Position, b: Position, eps: float = 1e-12) -> bool:
    cross = (b[0] - a[0]) * (p[1] - a[1]) - (b[1] - a[1]) * (p[0] - a[0])
    if abs(cross) > eps:
        return False
    return (
        min(a[0], b[0]) - eps <= p[0] <= max(a[0], b[0]) + eps
        and min(a[1], b[1]) - eps <= p[1] <= max(a[1], b[1]) + eps
    )


def point_in_ring(point: Position, ring: Ring, *, include_boundary: bool = True) -> bool:
    """Ray-casting point-in-ring test."""
    x, y = point[0], point[1]
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        a, b = ring[i], ring[j]
        if _on_segment(point, a, b):
            return include_boundary
        if (a[1] > y) != (b[1] > y):
            x_cross = (b[0] - a[0]) * (y - a[1]) / (b[1] - a[1]) + a[0]
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_polygon(point: Position, rings: PolygonCoords) -> bool:
    if not rings or not point_in_ring(point, rings[0]):
        return False
    return not any(point_in_ring(point, hole, include_boundary=False) for hole in rings[1:])


def polygon_within(inner: PolygonCoords, outer: Mapping[str, Any]) -> bool:
    """
    True when the polygon `inner` lies inside one polygon of `outer`.

    Every vertex of `inner` must be inside (or on the boundary of) the same
    polygon of `outer`, and no exterior vertex of that polygon may lie
    strictly inside `inner`.
    """
    if not inner:
        return False
    vertices = inner[0]
    for candidate in polygons_of(outer):
        if not candidate:
            continue
        if not all(point_in_polygon(v, candidate) for v in vertices):
            continue
        if any(
            point_in_ring(v, vertices, include_boundary=False) for v in candidate[0]
        ):
            continue
        return True
    return False
