from __future__ import annotations

import math
import random

from aqualink.config import settings
from aqualink.services.location_provider import Location

EARTH_RADIUS_KM = 6371.0

STATIC_LOCATIONS: tuple[Location, ...] = (
    Location(6.9355, 79.8430, 'Fort, Galle Road', 'Colombo 01'),
    Location(6.9219, 79.8507, 'Slave Island, Kompannavidiya', 'Colombo 02'),
    Location(6.9063, 79.8530, 'Kollupitiya, Galle Road', 'Colombo 03'),
    Location(6.9004, 79.8560, 'Bambalapitiya, Galle Road', 'Colombo 04'),
    Location(6.8797, 79.8652, 'Havelock Town, Galle Road', 'Colombo 05'),
    Location(6.8741, 79.8612, 'Wellawatte, Galle Road', 'Colombo 06'),
    Location(6.9106, 79.8648, 'Cinnamon Gardens, Reid Avenue', 'Colombo 07'),
    Location(6.9183, 79.8760, 'Borella, Baseline Road', 'Colombo 08'),
    Location(6.9391, 79.8787, 'Dematagoda, Baseline Road', 'Colombo 09'),
    Location(6.9337, 79.8641, 'Maradana, Baseline Road', 'Colombo 10'),
    Location(6.9385, 79.8577, 'Pettah Market Area', 'Colombo 11'),
    Location(6.9378, 79.8614, 'Hulftsdorp, Baseline Road', 'Colombo 12'),
    Location(6.9486, 79.8608, 'Kotahena, Negombo Road', 'Colombo 13'),
    Location(6.9522, 79.8737, 'Grandpass, Negombo Road', 'Colombo 14'),
    Location(6.9633, 79.8669, 'Mutwal, Negombo Road', 'Colombo 15'),
    Location(6.7730, 79.8816, 'Moratuwa, Galle Road', 'Colombo 06'),
    Location(6.8700, 79.8700, 'Ratmalana, Galle Road', 'Colombo 06'),
    Location(6.8500, 79.8500, 'Panadura, Galle Road', 'Colombo 06'),
    Location(6.8000, 79.9000, 'Kalutara, Galle Road', 'Kalutara'),
    Location(6.9900, 79.9500, 'Katunayake, Airport Road', 'Katunayake'),
    Location(6.8500, 79.9200, 'Kesbewa, High Level Road', 'Kesbewa'),
    Location(6.9500, 79.8000, 'Kelaniya, Kelaniya Road', 'Kelaniya'),
    Location(6.8200, 79.8800, 'Horana, Horana Road', 'Horana'),
    Location(6.7800, 79.9200, 'Bandaragama, Galle Road', 'Bandaragama'),
    Location(6.7600, 79.9400, 'Wadduwa, Galle Road', 'Wadduwa'),
    Location(6.7400, 79.9600, 'Kalutara North, Galle Road', 'Kalutara'),
    Location(6.7200, 79.9800, 'Beruwala, Galle Road', 'Beruwala'),
)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def road_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return haversine_km(lat1, lng1, lat2, lng2) * settings.emergency_road_factor


class StaticLocationProvider:
    def __init__(
        self,
        locations: tuple[Location, ...] = STATIC_LOCATIONS,
        *,
        origin: tuple[float, float] | None = None,
        radius_km: float | None = None,
    ) -> None:
        self.locations = locations
        self.origin = origin or (settings.dispatch_origin_lat, settings.dispatch_origin_lng)
        self.radius_km = settings.emergency_radius_km if radius_km is None else radius_km

    def locations_in_range(self) -> list[Location]:
        origin_lat, origin_lng = self.origin
        return [
            location
            for location in self.locations
            if road_distance_km(origin_lat, origin_lng, location.lat, location.lng) <= self.radius_km
        ]

    def pick_location(self, *, rng: random.Random) -> Location:
        candidates = self.locations_in_range()
        if not candidates:
            # Nothing in range: fall back to the dispatch origin itself.
            origin_lat, origin_lng = self.origin
            return Location(origin_lat, origin_lng, 'Dispatch origin', 'Unknown')
        return rng.choice(candidates)
