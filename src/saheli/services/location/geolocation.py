"""
Geolocation Access

Wraps the device location sensor:
- One-shot fixes with a single accuracy refinement attempt
- Continuous watches throttled to a minimum re-notification interval
- A sensor fed by positions the client device reports
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from saheli.core.errors import SensorError, SensorErrorCode, UnsupportedEnvironment
from saheli.models.safety import PositionFix, PositionOptions


FixCallback = Callable[[PositionFix], Any]
ErrorCallback = Callable[[SensorError], Any]

DEFAULT_ACCURACY_THRESHOLD_M = 50.0
DEFAULT_WATCH_INTERVAL_SECONDS = 60.0


class GeolocationSensor(ABC):
    """Platform location sensor"""

    @abstractmethod
    async def get_current_position(self, options: PositionOptions) -> PositionFix:
        """Resolve one fix or raise SensorError"""

    @abstractmethod
    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> int:
        """Report every fix and error to the callbacks until cleared"""

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop reporting to a watch"""


class PushedPositionSensor(GeolocationSensor):
    """
    Sensor fed by the client device.

    The device posts fixes and sensor errors as it observes them; one-shot
    requests are answered from a fresh enough cached fix or by waiting for
    the next report.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.logger = logging.getLogger(__name__)
        self._clock = clock
        self._last_fix: Optional[PositionFix] = None
        self._last_fix_at: Optional[float] = None
        self._waiters: List[asyncio.Future] = []
        self._watchers: Dict[int, Tuple[FixCallback, ErrorCallback]] = {}
        self._next_watch_id = 1
        self.permission_denied = False

    async def get_current_position(self, options: PositionOptions) -> PositionFix:
        if self.permission_denied:
            raise SensorError(SensorErrorCode.PERMISSION_DENIED, "Location permission denied")

        if self._last_fix is not None and options.maximum_age_ms > 0:
            age_ms = (self._clock() - self._last_fix_at) * 1000
            if age_ms <= options.maximum_age_ms:
                return self._last_fix

        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            return await asyncio.wait_for(future, timeout=options.timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise SensorError(SensorErrorCode.TIMEOUT,
                              f"No position reported within {options.timeout_ms} ms")
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watchers[watch_id] = (on_fix, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watchers.pop(watch_id, None)

    def report_position(self, fix: PositionFix) -> None:
        """Accept a fix reported by the device"""
        self._last_fix = fix
        self._last_fix_at = self._clock()

        for future in list(self._waiters):
            if not future.done():
                future.set_result(fix)

        for watch_id, (on_fix, _) in list(self._watchers.items()):
            try:
                on_fix(fix)
            except Exception as e:
                self.logger.error(f"Watch {watch_id} fix callback failed: {e}")

    def report_error(self, error: SensorError) -> None:
        """Accept a sensor error reported by the device"""
        if error.code == SensorErrorCode.PERMISSION_DENIED:
            self.permission_denied = True

        for future in list(self._waiters):
            if not future.done():
                future.set_exception(error)

        for watch_id, (_, on_error) in list(self._watchers.items()):
            try:
                on_error(error)
            except Exception as e:
                self.logger.error(f"Watch {watch_id} error callback failed: {e}")

    def grant_permission(self) -> None:
        self.permission_denied = False

    @property
    def watch_count(self) -> int:
        return len(self._watchers)


class WatchSubscription:
    """
    Handle for one continuous watch.

    The subscription owns its throttle timestamp, so concurrent watches never
    share delivery state. Coroutine callbacks run as tasks; cancelling the
    subscription stops future deliveries but leaves running tasks alone.
    """

    def __init__(self, on_fix: FixCallback, on_error: Optional[ErrorCallback],
                 min_interval: float, clock: Callable[[], float]):
        self.logger = logging.getLogger(__name__)
        self.on_fix = on_fix
        self.on_error = on_error
        self.min_interval = min_interval
        self._clock = clock

        self.watch_id: Optional[int] = None
        self.active = True
        self.last_delivered_at: Optional[float] = None
        self.delivered_count = 0
        self.dropped_count = 0
        self.started_at = datetime.now(timezone.utc)
        self._pending: Set[asyncio.Future] = set()

    def handle_fix(self, fix: PositionFix) -> None:
        if not self.active:
            return

        now = self._clock()
        if self.last_delivered_at is not None and now - self.last_delivered_at < self.min_interval:
            self.dropped_count += 1
            self.logger.debug(f"Dropping fix for watch {self.watch_id}, "
                              f"{now - self.last_delivered_at:.1f}s since last delivery")
            return

        self.last_delivered_at = now
        self.delivered_count += 1
        self._invoke(self.on_fix, fix)

    def handle_error(self, error: SensorError) -> None:
        if not self.active or self.on_error is None:
            return
        self._invoke(self.on_error, error)

    def _invoke(self, callback: Callable, argument: Any) -> None:
        result = callback(argument)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Watch {self.watch_id} callback failed: {task.exception()}")

    async def wait_pending(self) -> None:
        """Wait for callback tasks that are still running"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)


class GeolocationAccessor:
    """Location access used by the sharing and alert services"""

    def __init__(
        self,
        sensor: Optional[GeolocationSensor],
        accuracy_threshold_m: float = DEFAULT_ACCURACY_THRESHOLD_M,
        watch_interval_seconds: float = DEFAULT_WATCH_INTERVAL_SECONDS,
        timeout_ms: int = 10000,
        maximum_age_ms: int = 0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.logger = logging.getLogger(__name__)
        self.sensor = sensor
        self.accuracy_threshold_m = accuracy_threshold_m
        self.watch_interval_seconds = watch_interval_seconds
        self.timeout_ms = timeout_ms
        self.maximum_age_ms = maximum_age_ms
        self._clock = clock

    def default_options(self) -> PositionOptions:
        return PositionOptions(
            enable_high_accuracy=True,
            timeout_ms=self.timeout_ms,
            maximum_age_ms=self.maximum_age_ms
        )

    def _require_sensor(self) -> GeolocationSensor:
        if self.sensor is None:
            raise UnsupportedEnvironment("Geolocation is not supported by this environment")
        return self.sensor

    async def get_current_location(self) -> PositionFix:
        """
        Get one position fix

        A fix less accurate than the threshold triggers exactly one more
        attempt, whose result is returned as is.

        Raises:
            UnsupportedEnvironment: If no sensor is available
            SensorError: Propagated from the sensor unchanged
        """
        sensor = self._require_sensor()
        options = self.default_options()

        fix = await sensor.get_current_position(options)
        if fix.exceeds_accuracy(self.accuracy_threshold_m):
            self.logger.info(f"Fix accuracy {fix.accuracy}m exceeds "
                             f"{self.accuracy_threshold_m}m, requesting another fix")
            fix = await sensor.get_current_position(options)

        return fix

    def watch_location(self, on_fix: FixCallback, on_error: Optional[ErrorCallback] = None,
                       options: Optional[PositionOptions] = None) -> WatchSubscription:
        """
        Start a continuous watch

        Args:
            on_fix: Called with at most one fix per watch interval
            on_error: Called with sensor errors
            options: Sensor options, defaults to high accuracy

        Returns:
            Subscription handle for stop_watching_location
        """
        sensor = self._require_sensor()
        subscription = WatchSubscription(on_fix, on_error, self.watch_interval_seconds, self._clock)
        subscription.watch_id = sensor.watch_position(
            subscription.handle_fix,
            subscription.handle_error,
            options or self.default_options()
        )
        self.logger.debug(f"Started location watch {subscription.watch_id}")
        return subscription

    def stop_watching_location(self, subscription: Optional[WatchSubscription]) -> None:
        """Cancel a watch; a no-op for cancelled or missing handles"""
        if subscription is None or not subscription.active:
            return

        subscription.active = False
        if self.sensor is not None and subscription.watch_id is not None:
            self.sensor.clear_watch(subscription.watch_id)
        self.logger.debug(f"Stopped location watch {subscription.watch_id}")
