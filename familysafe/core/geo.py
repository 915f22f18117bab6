import math

EARTH_RADIUS_KM = 6371.0

# Shown until the first fix arrives (Tokyo Station)
DEFAULT_LATITUDE = 35.6812
DEFAULT_LONGITUDE = 139.7671
UNKNOWN_ADDRESS = "Location unavailable"


def haversine_km(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between two points in decimal degrees, in kilometers.
    """
    lat1_rad = math.radians(float(lat1))
    lat2_rad = math.radians(float(lat2))
    dlat = math.radians(float(lat2) - float(lat1))
    dlon = math.radians(float(lon2) - float(lon1))

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_in_meters(lat1, lon1, lat2, lon2):
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def address_label(latitude: float, longitude: float) -> str:
    return f"Lat: {latitude:.4f}, Lng: {longitude:.4f}"
