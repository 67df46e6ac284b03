"""
Data models for Saheli

Contains the records persisted by the stores and the value objects
exchanged between services.
"""

from .safety import (
    PositionFix, PositionOptions, TrustedContact, LocationShare,
    LocationHistoryEntry, RouteShare, StoreResult, StoreStatus,
    AlertKind, AlertReport, DeliveryOutcome, DeliveryStatus
)

__all__ = [
    'PositionFix', 'PositionOptions', 'TrustedContact', 'LocationShare',
    'LocationHistoryEntry', 'RouteShare', 'StoreResult', 'StoreStatus',
    'AlertKind', 'AlertReport', 'DeliveryOutcome', 'DeliveryStatus'
]
