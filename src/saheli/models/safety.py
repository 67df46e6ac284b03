"""
Safety data models for Saheli

Defines the records persisted by the stores and the value objects passed
between the geolocation, alert and sharing layers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import uuid


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """Parse a stored timestamp back into a datetime"""
    if value is None:
        return utc_now()
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


@dataclass
class PositionOptions:
    """Options passed to the location sensor"""
    enable_high_accuracy: bool = True
    timeout_ms: int = 10000
    maximum_age_ms: int = 0


@dataclass
class PositionFix:
    """One reading of device coordinates"""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    speed: Optional[float] = 0.0
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        # Sensors omit speed when the device is stationary
        if self.speed is None:
            self.speed = 0.0

    def exceeds_accuracy(self, threshold_m: float) -> bool:
        """True when the reported accuracy radius is wider than threshold_m"""
        return self.accuracy is not None and self.accuracy > threshold_m

    def maps_link(self, template: str) -> str:
        return template.format(latitude=self.latitude, longitude=self.longitude)


@dataclass
class TrustedContact:
    """A person notified when the user raises an alert"""
    name: str
    phone: str
    email: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row) -> 'TrustedContact':
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            name=row['name'],
            phone=row['phone'],
            email=row['email'],
            created_at=_parse_timestamp(row['created_at'])
        )


@dataclass
class LocationShare:
    """Latest shared location of a user, one per user"""
    latitude: float
    longitude: float
    is_sharing: bool
    timestamp: datetime = field(default_factory=utc_now)
    accuracy: Optional[float] = None
    speed: Optional[float] = 0.0
    user_id: Optional[str] = None

    @classmethod
    def from_fix(cls, fix: PositionFix, is_sharing: bool = True) -> 'LocationShare':
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            is_sharing=is_sharing,
            timestamp=fix.timestamp,
            accuracy=fix.accuracy,
            speed=fix.speed
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_sharing': bool(self.is_sharing),
            'timestamp': self.timestamp.isoformat(),
            'accuracy': self.accuracy,
            'speed': self.speed
        }

    @classmethod
    def from_row(cls, row) -> 'LocationShare':
        return cls(
            user_id=row['user_id'],
            latitude=row['latitude'],
            longitude=row['longitude'],
            is_sharing=bool(row['is_sharing']),
            timestamp=_parse_timestamp(row['timestamp']),
            accuracy=row['accuracy'],
            speed=row['speed']
        )


@dataclass
class LocationHistoryEntry:
    """One accepted fix recorded while sharing was active"""
    latitude: float
    longitude: float
    timestamp: datetime = field(default_factory=utc_now)
    accuracy: Optional[float] = None
    speed: Optional[float] = 0.0
    user_id: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_share(cls, share: LocationShare) -> 'LocationHistoryEntry':
        return cls(
            latitude=share.latitude,
            longitude=share.longitude,
            timestamp=share.timestamp,
            accuracy=share.accuracy,
            speed=share.speed
        )

    @classmethod
    def from_row(cls, row) -> 'LocationHistoryEntry':
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            latitude=row['latitude'],
            longitude=row['longitude'],
            timestamp=_parse_timestamp(row['timestamp']),
            accuracy=row['accuracy'],
            speed=row['speed']
        )


@dataclass
class RouteShare:
    """Destination the user is travelling to"""
    destination: str
    start_time: datetime = field(default_factory=utc_now)
    is_active: bool = True
    user_id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'destination': self.destination,
            'start_time': self.start_time.isoformat(),
            'is_active': bool(self.is_active)
        }

    @classmethod
    def from_row(cls, row) -> 'RouteShare':
        return cls(
            user_id=row['user_id'],
            destination=row['destination'],
            start_time=_parse_timestamp(row['start_time']),
            is_active=bool(row['is_active'])
        )


class StoreStatus(Enum):
    """Outcome of a best-effort store write"""
    SUCCESS = "success"
    UNAUTHENTICATED = "unauthenticated"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass
class StoreResult:
    """Result of a store write, letting the caller decide what to surface"""
    status: StoreStatus
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == StoreStatus.SUCCESS

    @classmethod
    def success(cls, data: Any = None) -> 'StoreResult':
        return cls(StoreStatus.SUCCESS, data=data)

    @classmethod
    def unauthenticated(cls) -> 'StoreResult':
        return cls(StoreStatus.UNAUTHENTICATED, error="User not authenticated")

    @classmethod
    def unavailable(cls, error: Union[str, Exception]) -> 'StoreResult':
        return cls(StoreStatus.STORE_UNAVAILABLE, error=str(error))


class AlertKind(Enum):
    """Alert templates sent to trusted contacts"""
    SOS = "sos"
    TRACKING = "tracking"
    DESTINATION = "destination"


class DeliveryStatus(Enum):
    """Per-contact delivery result"""
    SENT = "sent"
    INVALID_PHONE = "invalid_phone"
    FAILED = "failed"


@dataclass
class DeliveryOutcome:
    """What happened when messaging one contact"""
    contact: TrustedContact
    status: DeliveryStatus
    phone: Optional[str] = None
    message_sid: Optional[str] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.SENT


@dataclass
class AlertReport:
    """Collected outcomes of one fan-out"""
    kind: AlertKind
    body: str
    outcomes: List[DeliveryOutcome] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def sent_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.delivered)

    @property
    def failed_count(self) -> int:
        return self.total - self.sent_count

    def summary(self) -> str:
        """Human-readable delivery summary, e.g. 'sent to 3 of 5 contacts'"""
        noun = "contact" if self.total == 1 else "contacts"
        return f"sent to {self.sent_count} of {self.total} {noun}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'sent': self.sent_count,
            'failed': self.failed_count,
            'total': self.total,
            'outcomes': [
                {
                    'contact_id': outcome.contact.id,
                    'status': outcome.status.value,
                    'phone': outcome.phone,
                    'message_sid': outcome.message_sid,
                    'error': outcome.error
                }
                for outcome in self.outcomes
            ]
        }
