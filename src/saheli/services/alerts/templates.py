"""Alert message templates"""

from datetime import datetime, timezone
from typing import Optional

from saheli.models.safety import LocationShare, PositionFix


LOCATION_UNAVAILABLE = "Location not available"
DEFAULT_MAPS_URL = "https://www.google.com/maps?q={latitude},{longitude}"

SOS_TEMPLATE = (
    "🚨 EMERGENCY ALERT 🚨\n\n"
    "I am in trouble and need immediate help!\n\n"
    "My current location: {location}\n\n"
    "Please contact emergency services if you cannot reach me."
)

TRACKING_TEMPLATE = (
    "📍 I have started sharing my live location with you.\n\n"
    "Current location: {location}\n"
    "Shared at: {time}\n\n"
    "You will be able to follow my location until I stop sharing."
)

DESTINATION_TEMPLATE = (
    "🧭 I am travelling to {destination}.\n"
    "Started at: {time}\n\n"
    "Please check on me if you do not hear from me."
)


def location_link(fix: Optional[PositionFix], maps_url: str = DEFAULT_MAPS_URL) -> str:
    if fix is None:
        return LOCATION_UNAVAILABLE
    return fix.maps_link(maps_url)


def sos_message(fix: Optional[PositionFix], maps_url: str = DEFAULT_MAPS_URL) -> str:
    return SOS_TEMPLATE.format(location=location_link(fix, maps_url))


def tracking_message(share: LocationShare, maps_url: str = DEFAULT_MAPS_URL) -> str:
    link = maps_url.format(latitude=share.latitude, longitude=share.longitude)
    return TRACKING_TEMPLATE.format(location=link, time=share.timestamp.strftime('%H:%M'))


def destination_message(destination: str, started_at: Optional[datetime] = None) -> str:
    started_at = started_at or datetime.now(timezone.utc)
    return DESTINATION_TEMPLATE.format(destination=destination,
                                       time=started_at.strftime('%H:%M'))
