import httpx
from app.core.config import settings
from app.core.errors import ServiceUnavailableError, UpstreamError
from app.core.logging import get_logger
from app.models.schemas import DirectionsResponse, RouteStep
from typing import Optional, Tuple

logger = get_logger("MAPBOX-DIRECTIONS")

# Mapbox Directions API base URL
MAPBOX_BASE_URL = "https://api.mapbox.com/directions/v5/mapbox"


def format_duration(seconds: float) -> str:
    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}m"


def format_distance(meters: float) -> str:
    km = meters / 1000
    if round(km, 1) >= 1:
        return f"{km:.1f} km"
    return f"{round(meters)} m"


def get_route(
    destination: Tuple[float, float],
    origin: Optional[Tuple[float, float]] = None,
    profile: str = "driving",
) -> Optional[dict]:
    """
    Asks Mapbox for a route between two (lat, lng) points.
    Returns the first route, or None when Mapbox finds no route.
    """
    if not settings.MAPBOX_TOKEN:
        logger.error("MAPBOX_TOKEN not configured")
        raise ServiceUnavailableError("Mapbox token not configured")

    origin = origin or settings.DEFAULT_ROUTE_ORIGIN
    # Mapbox wants lng,lat pairs
    coords = f"{origin[1]},{origin[0]};{destination[1]},{destination[0]}"

    client = httpx.Client(timeout=15.0)
    try:
        response = client.get(
            f"{MAPBOX_BASE_URL}/{profile}/{coords}",
            params={
                "geometries": "geojson",
                "overview": "full",
                "steps": "true",
                "access_token": settings.MAPBOX_TOKEN,
            },
        )
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error("Mapbox HTTP error", status=e.response.status_code)
        raise UpstreamError("Directions service error")
    except Exception as e:
        logger.error("Error in get_route", error=str(e))
        raise UpstreamError("Directions service error")
    finally:
        client.close()

    if data.get("code") != "Ok" or not data.get("routes"):
        logger.warning("Mapbox returned no route", code=data.get("code"))
        return None
    return data["routes"][0]


def get_directions(
    destination: Tuple[float, float],
    origin: Optional[Tuple[float, float]] = None,
) -> Optional[DirectionsResponse]:
    origin = origin or settings.DEFAULT_ROUTE_ORIGIN
    route = get_route(destination, origin)
    if route is None:
        return None

    legs = route.get("legs") or [{}]
    steps = [
        RouteStep(
            instruction=(step.get("maneuver") or {}).get("instruction"),
            distance=step.get("distance", 0),
            duration=step.get("duration", 0),
        )
        for step in legs[0].get("steps", [])
    ]

    result = DirectionsResponse(
        route=route.get("geometry"),
        duration=route["duration"],
        duration_text=format_duration(route["duration"]),
        distance=route["distance"],
        distance_text=format_distance(route["distance"]),
        steps=steps,
        origin={"lat": origin[0], "lng": origin[1]},
        destination={"lat": destination[0], "lng": destination[1]},
    )
    logger.info("Route calculated", duration=result.duration_text, distance=result.distance_text)
    return result
