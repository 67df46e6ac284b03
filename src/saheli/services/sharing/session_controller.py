"""
Sharing Session Control

Orchestrates live location sharing for one signed-in user:
- INACTIVE -> STARTING -> ACTIVE: one fix, persisted with history, then
  contacts notified
- ACTIVE -> INACTIVE: sharing flag cleared, history kept
- While ACTIVE a throttled watch keeps the stored location current
- Destination sharing and SOS alerts for the same user
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from saheli.core.errors import (
    InvalidDestination, SafetyError, SensorError, StoreError, UnauthenticatedUser
)
from saheli.models.safety import (
    AlertReport, LocationHistoryEntry, LocationShare, PositionFix,
    RouteShare, StoreResult, StoreStatus
)
from saheli.services.alerts.alert_dispatcher import AlertDispatcher
from saheli.services.location.geolocation import GeolocationAccessor, WatchSubscription
from saheli.services.location.location_store import LocationStore
from saheli.services.location.route_store import RouteStore


class SharingState(Enum):
    """Live location sharing state of a session"""
    INACTIVE = "inactive"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass
class SharingStartResult:
    """Outcome of starting a share; notification problems make it partial"""
    share: Optional[LocationShare]
    history_saved: bool
    alert_report: Optional[AlertReport] = None
    notification_error: Optional[SafetyError] = None
    already_active: bool = False

    @property
    def partial(self) -> bool:
        if self.notification_error is not None:
            return True
        return self.alert_report is not None and self.alert_report.failed_count > 0

    def user_message(self) -> str:
        if self.already_active:
            return "Location sharing is already active."
        if self.notification_error is not None:
            return f"Location sharing started, but contacts were not notified: " \
                   f"{self.notification_error.user_message}"
        if self.alert_report is not None:
            return f"Location sharing started, {self.alert_report.summary()}."
        return "Location sharing started."


@dataclass
class DestinationResult:
    """Outcome of sharing a destination"""
    route: RouteShare
    alert_report: Optional[AlertReport] = None
    notification_error: Optional[SafetyError] = None

    @property
    def partial(self) -> bool:
        if self.notification_error is not None:
            return True
        return self.alert_report is not None and self.alert_report.failed_count > 0


class SharingSessionController:
    """Location sharing session of one user"""

    def __init__(
        self,
        geolocation: GeolocationAccessor,
        location_store: LocationStore,
        route_store: RouteStore,
        dispatcher: AlertDispatcher,
        notify_on_start: bool = True,
        error_callback: Optional[Callable[[SafetyError], Any]] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.geolocation = geolocation
        self.location_store = location_store
        self.route_store = route_store
        self.dispatcher = dispatcher
        self.notify_on_start = notify_on_start
        self.error_callback = error_callback

        self.state = SharingState.INACTIVE
        self.current_share: Optional[LocationShare] = None
        self.subscription: Optional[WatchSubscription] = None
        self.last_watch_error: Optional[SensorError] = None
        self.last_alert_report: Optional[AlertReport] = None
        self.started_at: Optional[datetime] = None
        self._transition_lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self.state == SharingState.ACTIVE

    async def start(self) -> SharingStartResult:
        """
        Start sharing live location

        A start requested while another is in progress or sharing is already
        active returns already_active without notifying contacts again.

        Returns:
            SharingStartResult; partial when contacts could not all be notified

        Raises:
            UnsupportedEnvironment, SensorError: If no fix could be acquired
            UnauthenticatedUser: If nobody is signed in
            StoreError: If the location could not be stored
        """
        if self.state != SharingState.INACTIVE:
            self.logger.warning(f"Location sharing already {self.state.value}")
            return SharingStartResult(share=self.current_share, history_saved=False,
                                      already_active=True)

        self.state = SharingState.STARTING
        try:
            async with self._transition_lock:
                share, history_saved = await self._begin_sharing()
        except BaseException:
            self.state = SharingState.INACTIVE
            raise

        start_result = SharingStartResult(share=share, history_saved=history_saved)
        if self.notify_on_start:
            try:
                start_result.alert_report = await self.dispatcher.send_location_tracking_message(share)
                self.last_alert_report = start_result.alert_report
            except SafetyError as e:
                self.logger.warning(f"Contacts not notified of location sharing: {e}")
                start_result.notification_error = e

        return start_result

    async def _begin_sharing(self):
        fix = await self.geolocation.get_current_location()

        result = await self.location_store.save_location_data(LocationShare.from_fix(fix, is_sharing=True))
        self._raise_for_store_result(result, "start location sharing")
        share = result.data

        history = await self.location_store.save_location_history(
            LocationHistoryEntry.from_share(share)
        )
        if not history.ok:
            self.logger.warning(f"Location history not recorded: {history.error}")

        # A watch left over from an earlier session must not keep writing
        self.geolocation.stop_watching_location(self.subscription)
        self.subscription = self.geolocation.watch_location(self._on_watch_fix, self._on_watch_error)

        self.state = SharingState.ACTIVE
        self.current_share = share
        self.started_at = datetime.now(timezone.utc)
        self.last_watch_error = None

        self.logger.info(f"Location sharing started for user {share.user_id}")
        return share, history.ok

    async def stop(self) -> StoreResult:
        """
        Stop sharing live location

        Clears the sharing flag on the stored location; history is kept. Waits
        for a start in progress to finish first.

        Returns:
            StoreResult; STORE_UNAVAILABLE when the flag could not be cleared
        """
        async with self._transition_lock:
            self.geolocation.stop_watching_location(self.subscription)
            self.subscription = None
            self.state = SharingState.INACTIVE

            current = await self.location_store.fetch_location_data()
            if not current.ok:
                self.logger.error(f"Failed to read location before stopping: {current.error}")
                return current

            if current.data is None:
                self.current_share = None
                return StoreResult.success()

            result = await self.location_store.save_location_data(
                dataclasses.replace(current.data, is_sharing=False)
            )
            if result.ok:
                self.current_share = result.data
                self.logger.info(f"Location sharing stopped for user {result.data.user_id}")
            else:
                self.logger.error(f"Failed to clear sharing flag: {result.error}")

            return result

    async def toggle(self):
        """Start sharing when inactive, stop when active"""
        if self.is_active:
            return await self.stop()
        return await self.start()

    async def _on_watch_fix(self, fix: PositionFix) -> None:
        if not self.is_active:
            return

        share = LocationShare.from_fix(fix, is_sharing=True)
        result = await self.location_store.save_location_data(share)
        if not result.ok:
            self.logger.error(f"Failed to store watched location: {result.error}")
            return

        self.current_share = result.data
        history = await self.location_store.save_location_history(
            LocationHistoryEntry.from_share(result.data)
        )
        if not history.ok:
            self.logger.warning(f"Location history not recorded: {history.error}")

    def _on_watch_error(self, error: SensorError) -> None:
        self.logger.warning(f"Location watch error: {error}")
        self.last_watch_error = error
        if self.error_callback:
            self.error_callback(error)

    async def share_destination(self, destination: str) -> DestinationResult:
        """
        Share a destination with trusted contacts

        Replaces any previous destination. Notification failures make the
        result partial and never undo the stored route.
        """
        destination = (destination or '').strip()
        if not destination:
            raise InvalidDestination("Destination is required")

        result = await self.route_store.start_route(destination)
        self._raise_for_store_result(result, "share destination")

        destination_result = DestinationResult(route=result.data)
        try:
            destination_result.alert_report = await self.dispatcher.send_destination_message(destination)
            self.last_alert_report = destination_result.alert_report
        except SafetyError as e:
            self.logger.warning(f"Contacts not notified of destination: {e}")
            destination_result.notification_error = e

        return destination_result

    async def stop_destination(self) -> StoreResult:
        """Clear the active destination"""
        return await self.route_store.stop_route()

    async def send_sos(self) -> AlertReport:
        """Send the emergency alert to every trusted contact"""
        report = await self.dispatcher.send_sos_message()
        self.last_alert_report = report
        return report

    async def get_status(self) -> Dict[str, Any]:
        """Get the session's sharing state"""
        share = await self.location_store.get_location_data()
        route = await self.route_store.get_route_data()

        return {
            'state': self.state.value,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'location': share.to_row() if share else None,
            'route': route.to_row() if route else None,
            'watch': {
                'delivered': self.subscription.delivered_count,
                'dropped': self.subscription.dropped_count
            } if self.subscription else None,
            'last_watch_error': self.last_watch_error.user_message if self.last_watch_error else None,
            'last_alert': self.last_alert_report.to_dict() if self.last_alert_report else None
        }

    def _raise_for_store_result(self, result: StoreResult, action: str) -> None:
        if result.status == StoreStatus.UNAUTHENTICATED:
            raise UnauthenticatedUser(f"Cannot {action}: user not authenticated")
        if result.status == StoreStatus.STORE_UNAVAILABLE:
            raise StoreError(f"Cannot {action}: {result.error}")
