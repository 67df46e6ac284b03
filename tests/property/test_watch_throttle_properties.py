"""
Property-based tests for watch throttling

Tests universal properties of the minimum re-notification interval applied
to continuous location watches.
"""

from hypothesis import given, strategies as st

from saheli.services.location.geolocation import GeolocationAccessor
from tests.mocks.geolocation_mocks import FakeClock, ScriptedSensor, make_fix


def run_watch(gaps, interval):
    """Emit one fix after each gap and return delivery times"""
    clock = FakeClock()
    sensor = ScriptedSensor()
    geolocation = GeolocationAccessor(sensor, watch_interval_seconds=interval, clock=clock)

    delivered_at = []
    subscription = geolocation.watch_location(lambda fix: delivered_at.append(clock()))

    for gap in gaps:
        clock.advance(gap)
        sensor.emit_fix(make_fix())

    return subscription, delivered_at


class TestWatchThrottleProperties:
    """
    Property-based tests for watch throttling.

    For any sequence of fixes, delivered fixes are at least the interval
    apart, the first fix is always delivered, and every fix is either
    delivered or dropped.
    """

    @given(
        gaps=st.lists(st.floats(min_value=0.0, max_value=200.0), min_size=1, max_size=50),
        interval=st.floats(min_value=1.0, max_value=120.0)
    )
    def test_deliveries_respect_interval(self, gaps, interval):
        """
        Property: Consecutive deliveries are never closer than the interval
        """
        _, delivered_at = run_watch(gaps, interval)

        for earlier, later in zip(delivered_at, delivered_at[1:]):
            assert later - earlier >= interval

    @given(
        gaps=st.lists(st.floats(min_value=0.0, max_value=200.0), min_size=1, max_size=50),
        interval=st.floats(min_value=1.0, max_value=120.0)
    )
    def test_every_fix_accounted_for(self, gaps, interval):
        """
        Property: Each fix is delivered or dropped, and the first is delivered
        """
        subscription, delivered_at = run_watch(gaps, interval)

        assert subscription.delivered_count + subscription.dropped_count == len(gaps)
        assert subscription.delivered_count == len(delivered_at)
        assert len(delivered_at) >= 1

    @given(gaps=st.lists(st.floats(min_value=61.0, max_value=500.0), min_size=1, max_size=20))
    def test_spaced_fixes_all_delivered(self, gaps):
        """
        Property: Fixes at least one interval apart are never dropped
        """
        subscription, _ = run_watch(gaps, 60.0)

        assert subscription.dropped_count == 0
