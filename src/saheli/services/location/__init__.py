"""
Location Service Module

Provides device location access and persistence:
- One-shot fixes with accuracy refinement
- Throttled continuous watches
- Latest location, location history and route storage
"""

from .geolocation import GeolocationAccessor, GeolocationSensor, PushedPositionSensor, WatchSubscription
from .location_store import LocationStore
from .route_store import RouteStore

__all__ = [
    'GeolocationAccessor',
    'GeolocationSensor',
    'PushedPositionSensor',
    'WatchSubscription',
    'LocationStore',
    'RouteStore'
]
