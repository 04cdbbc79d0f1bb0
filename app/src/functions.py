from typing import List, Dict, Sequence, Tuple
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
import pyproj

from app.src import schemas
from app.src.exceptions import APIException

# WGS84 ellipsoid used for distances between location points
GEOD = pyproj.Geod(ellps="WGS84")


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Example:
        >>> enumStr(DutyStatus)
        'ACTIVE: 1, COMPLETED: 2'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isSRID4326(wktGeom: BaseGeometry) -> bool:
    """
    Validate whether a Shapely geometry uses coordinates consistent with SRID 4326 (WGS84).

    Latitude must be within [-90, 90] and longitude within [-180, 180].
    Coordinates are read in (longitude, latitude) order.

    Example:
        >>> isSRID4326(Point(78.4867, 17.3850))
        True
        >>> isSRID4326(Point(200, 95))
        False
    """

    def check_coords(coords):
        for longitude, latitude in coords:
            if not (-90 <= latitude <= 90) or not (-180 <= longitude <= 180):
                return False
        return True

    if hasattr(wktGeom, "exterior"):
        if not check_coords(wktGeom.exterior.coords):
            return False
    elif hasattr(wktGeom, "coords"):
        if not check_coords(wktGeom.coords):
            return False

    if hasattr(wktGeom, "geoms"):
        for geom in wktGeom.geoms:
            if not isSRID4326(geom):
                return False

    return True


def toPoint(latitude: float, longitude: float) -> Point:
    return Point(longitude, latitude)


def trailDistanceKm(coordinates: Sequence[Tuple[float, float]]) -> float:
    """
    Geodesic length of a trail of `(latitude, longitude)` pairs in kilometers.

    Example:
        >>> round(trailDistanceKm([(17.0, 78.0), (17.0, 78.0)]), 3)
        0.0
    """
    if len(coordinates) < 2:
        return 0.0
    latitudes = [latitude for latitude, _ in coordinates]
    longitudes = [longitude for _, longitude in coordinates]
    return GEOD.line_length(longitudes, latitudes) / 1000

