"""Office geofence: great-circle distance and the in-range decision."""
import math
from dataclasses import dataclass

EARTH_RADIUS_METERS = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance in meters between two GPS coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(meters: float) -> str:
    if meters < 1:
        return "less than 1 meter"
    if meters < 1000:
        return f"{meters:.0f} meters"
    return f"{meters / 1000:.1f} km"


@dataclass(frozen=True)
class GeofenceResult:
    in_range: bool
    distance: float


@dataclass(frozen=True)
class LocationValidation:
    in_range: bool
    message: str
    need_force: bool
    distance: float
    max_radius: float


@dataclass(frozen=True)
class GeofencePolicy:
    office_latitude: float
    office_longitude: float
    radius_meters: float
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings) -> "GeofencePolicy":
        return cls(
            office_latitude=settings.OFFICE_LATITUDE,
            office_longitude=settings.OFFICE_LONGITUDE,
            radius_meters=settings.ATTENDANCE_RADIUS_METERS,
            enabled=settings.ENABLE_LOCATION_CHECK,
        )

    def evaluate(self, latitude: float, longitude: float) -> GeofenceResult:
        # Disabled check: everyone is in range
        if not self.enabled:
            return GeofenceResult(in_range=True, distance=0.0)
        distance = haversine_distance(latitude, longitude, self.office_latitude, self.office_longitude)
        return GeofenceResult(in_range=distance <= self.radius_meters, distance=distance)

    def validate(self, latitude: float, longitude: float) -> LocationValidation:
        """Evaluate and describe the result for the check-location endpoint."""
        result = self.evaluate(latitude, longitude)
        if not self.enabled:
            message = "Location check is disabled"
        elif result.in_range:
            message = "Location is within office range"
        else:
            message = (
                f"You are {format_distance(result.distance)} from the office "
                f"(range: {format_distance(self.radius_meters)})"
            )
        return LocationValidation(
            in_range=result.in_range,
            message=message,
            need_force=not result.in_range,
            distance=result.distance,
            max_radius=self.radius_meters,
        )
