import math
from decimal import Decimal
from typing import Dict

from chalicelib.constants.constants import EARTH_RADIUS_KM, BASE_DELIVERY_FEE, DELIVERY_FEE_TIERS, \
    DELIVERY_FEE_MAX_SURCHARGE, BASE_PREPARATION_MINUTES, AVERAGE_DELIVERY_SPEED_KMH, MINUTES_PER_ACTIVE_ORDER, \
    MAX_QUEUE_DELAY_MINUTES
from chalicelib.utils.exceptions import WrongDeliveryAddress


def get_coordinates(location: Dict):
    """ (latitude, longitude) as floats, WrongDeliveryAddress if location has no valid coordinates """
    try:
        latitude, longitude = float(location['latitude']), float(location['longitude'])
    except (KeyError, TypeError, ValueError):
        raise WrongDeliveryAddress(f'Location {location} has no valid latitude/longitude')
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise WrongDeliveryAddress(f'Location {location} is out of range')
    return latitude, longitude


def normalize_location(location):
    """ Coordinates as Decimal for db, anything which is not a location is returned as is """
    if not isinstance(location, dict):
        return location
    try:
        latitude, longitude = get_coordinates(location)
    except WrongDeliveryAddress:
        return location
    return {
        **location,
        'latitude': Decimal(str(latitude)).quantize(Decimal('1.000000')),
        'longitude': Decimal(str(longitude)).quantize(Decimal('1.000000'))
    }


def distance_km(location_from: Dict, location_to: Dict) -> Decimal:
    """ Great-circle distance by haversine formula, rounded to 2 decimals """
    lat1, lon1 = get_coordinates(location_from)
    lat2, lon2 = get_coordinates(location_to)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)
    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return Decimal(str(round(EARTH_RADIUS_KM * c, 2))).quantize(Decimal('1.00'))


def delivery_fee_by_distance(distance: Decimal) -> Decimal:
    for max_distance, surcharge in DELIVERY_FEE_TIERS:
        if distance <= max_distance:
            return (BASE_DELIVERY_FEE + surcharge).quantize(Decimal('1.00'))
    return (BASE_DELIVERY_FEE + DELIVERY_FEE_MAX_SURCHARGE).quantize(Decimal('1.00'))


def estimated_delivery_minutes(distance: Decimal, active_orders: int = 0) -> int:
    travel_minutes = math.ceil(float(distance) / AVERAGE_DELIVERY_SPEED_KMH * 60)
    queue_delay = min(active_orders * MINUTES_PER_ACTIVE_ORDER, MAX_QUEUE_DELAY_MINUTES)
    return BASE_PREPARATION_MINUTES + travel_minutes + queue_delay
