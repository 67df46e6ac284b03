"""
Mock objects for the device location sensor.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from saheli.core.errors import SensorError, SensorErrorCode
from saheli.models.safety import PositionFix, PositionOptions
from saheli.services.location.geolocation import GeolocationSensor


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedSensor(GeolocationSensor):
    """Sensor that answers one-shot requests from a script of fixes and errors."""

    def __init__(self, results: Optional[List[Union[PositionFix, Exception]]] = None):
        self.results: List[Union[PositionFix, Exception]] = list(results or [])
        self.calls: List[PositionOptions] = []
        self.watchers: Dict[int, Tuple[Callable, Callable]] = {}
        self.watch_options: List[PositionOptions] = []
        self._next_watch_id = 1

    def queue(self, *results: Union[PositionFix, Exception]):
        self.results.extend(results)

    async def get_current_position(self, options: PositionOptions) -> PositionFix:
        self.calls.append(options)
        if not self.results:
            raise SensorError(SensorErrorCode.POSITION_UNAVAILABLE, "No scripted fix")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def watch_position(self, on_fix, on_error, options: PositionOptions) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self.watchers[watch_id] = (on_fix, on_error)
        self.watch_options.append(options)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self.watchers.pop(watch_id, None)

    def emit_fix(self, fix: PositionFix):
        for on_fix, _ in list(self.watchers.values()):
            on_fix(fix)

    def emit_error(self, error: SensorError):
        for _, on_error in list(self.watchers.values()):
            on_error(error)


def make_fix(latitude: float = 12.9716, longitude: float = 77.5946,
             accuracy: Optional[float] = 10.0, speed: Optional[float] = 0.0) -> PositionFix:
    """Build a fix near Bengaluru by default."""
    return PositionFix(latitude=latitude, longitude=longitude, accuracy=accuracy, speed=speed)
