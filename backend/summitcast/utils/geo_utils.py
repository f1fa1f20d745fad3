"""
Geographic utility functions for SummitCast.

Provides Haversine distance plus the polygon helpers used for avalanche zone
resolution (GeoJSON Polygon / MultiPolygon geometries, [lon, lat] order).
"""
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from summitcast.services.algorithm_config import EARTH_RADIUS_KM

Ring = List[Tuple[float, float]]


def haversine_distance(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point (degrees)
        lon1: Longitude of first point (degrees)
        lat2: Latitude of second point (degrees)
        lon2: Longitude of second point (degrees)

    Returns:
        Distance in kilometers

    Example:
        >>> distance = haversine_distance(40.0, -105.0, 40.1, -105.1)
        >>> print(f"{distance:.2f} km")
        13.95 km
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(a))


def geometry_polygons(geometry: Optional[Dict[str, Any]]) -> List[List[Ring]]:
    """
    Normalize a GeoJSON geometry into a list of polygons (each a list of rings).

    Unsupported or malformed geometries yield an empty list.
    """
    if not isinstance(geometry, dict):
        return []
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        return []

    if geometry_type == "Polygon":
        raw_polygons = [coordinates]
    elif geometry_type == "MultiPolygon":
        raw_polygons = coordinates
    else:
        return []

    polygons = []
    for raw_polygon in raw_polygons:
        rings = []
        for raw_ring in raw_polygon if isinstance(raw_polygon, list) else []:
            ring = _parse_ring(raw_ring)
            if len(ring) >= 3:
                rings.append(ring)
        if rings:
            polygons.append(rings)
    return polygons


def _parse_ring(raw_ring: Any) -> Ring:
    ring = []
    if not isinstance(raw_ring, list):
        return ring
    for position in raw_ring:
        if (
            isinstance(position, (list, tuple))
            and len(position) >= 2
            and isinstance(position[0], (int, float))
            and isinstance(position[1], (int, float))
        ):
            ring.append((float(position[0]), float(position[1])))
    return ring


def point_in_ring(lon: float, lat: float, ring: Sequence[Tuple[float, float]]) -> bool:
    """Ray-casting containment test for one linear ring."""
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lon < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_geometry(lat: float, lon: float, geometry: Optional[Dict[str, Any]]) -> bool:
    """
    Check whether a point falls inside a Polygon/MultiPolygon (holes excluded).

    Example:
        >>> square = {"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]]}
        >>> point_in_geometry(0.5, 0.5, square)
        True
    """
    for rings in geometry_polygons(geometry):
        outer, holes = rings[0], rings[1:]
        if point_in_ring(lon, lat, outer) and not any(point_in_ring(lon, lat, hole) for hole in holes):
            return True
    return False


def geometry_centroid(geometry: Optional[Dict[str, Any]]) -> Optional[Tuple[float, float]]:
    """
    Vertex-mean centroid of all outer rings, as (lat, lon).

    Returns:
        (lat, lon) or None when the geometry carries no usable ring
    """
    vertices = []
    for rings in geometry_polygons(geometry):
        outer = rings[0]
        # Drop the closing vertex so it is not double counted
        if len(outer) > 1 and outer[0] == outer[-1]:
            outer = outer[:-1]
        vertices.extend(outer)
    if not vertices:
        return None
    mean_lon = sum(v[0] for v in vertices) / len(vertices)
    mean_lat = sum(v[1] for v in vertices) / len(vertices)
    return mean_lat, mean_lon


def within_bounds(lat: float, lon: float, bounds: Tuple[float, float, float, float]) -> bool:
    """Check (min_lat, max_lat, min_lon, max_lon) containment."""
    min_lat, max_lat, min_lon, max_lon = bounds
    return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon
