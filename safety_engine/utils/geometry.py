"""Geometry utilities for road segments.

Distances are great-circle (haversine) in metres. Polylines are handled as
Shapely LineStrings in (lng, lat) order, matching GeoJSON, while the rest of the
engine passes coordinates around as (lat, lng) tuples. Interpolation happens on
unwrapped longitudes so a segment crossing the antimeridian takes the short way.
"""

import logging
import math
from typing import List, Sequence, Tuple

from shapely import line_interpolate_point
from shapely.geometry import LineString

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great circle distance between two points.

    Args:
        lat1, lng1: First point coordinates
        lat2, lng2: Second point coordinates

    Returns:
        Distance in metres
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def polyline_length_m(coordinates: Sequence[Tuple[float, float]]) -> float:
    """Length of a (lat, lng) polyline in metres."""
    return sum(
        haversine_distance(a[0], a[1], b[0], b[1])
        for a, b in zip(coordinates, coordinates[1:])
    )


def to_linestring(coordinates: Sequence[Tuple[float, float]]) -> LineString:
    """Convert (lat, lng) points to a Shapely LineString in (lng, lat) order.

    Raises:
        ValueError: fewer than two points
    """
    if len(coordinates) < 2:
        raise ValueError(f"Expected at least 2 points, got {len(coordinates)}")
    return LineString([(lng, lat) for lat, lng in coordinates])


def unwrap_longitudes(
    coordinates: Sequence[Tuple[float, float]],
) -> List[Tuple[float, float]]:
    """Shift longitudes by whole turns so no step spans more than 180 degrees.

    The result may leave [-180, 180]; pass points back through
    ``wrap_longitude`` before handing them to anything that validates range.
    """
    unwrapped: List[Tuple[float, float]] = []
    previous_lng = None
    for lat, lng in coordinates:
        if previous_lng is not None:
            lng -= 360.0 * round((lng - previous_lng) / 360.0)
        unwrapped.append((lat, lng))
        previous_lng = lng
    return unwrapped


def wrap_longitude(lng: float) -> float:
    """Longitude folded back into [-180, 180)."""
    return (lng + 180.0) % 360.0 - 180.0


def sample_polyline(
    coordinates: Sequence[Tuple[float, float]], interval_m: float
) -> List[Tuple[float, float]]:
    """Points along a polyline spaced roughly ``interval_m`` apart.

    The first and last input points are always included.

    Args:
        coordinates: (lat, lng) polyline
        interval_m: Target spacing between samples

    Returns:
        (lat, lng) sample points in travel order
    """
    if not coordinates:
        return []
    if len(coordinates) == 1:
        return [tuple(coordinates[0])]

    length_m = polyline_length_m(coordinates)
    num_samples = max(int(length_m / interval_m), 1)

    line = to_linestring(unwrap_longitudes(coordinates))
    samples = [tuple(coordinates[0])]
    for i in range(1, num_samples):
        point = line_interpolate_point(line, i / num_samples, normalized=True)
        samples.append((point.y, wrap_longitude(point.x)))
    samples.append(tuple(coordinates[-1]))

    return samples
