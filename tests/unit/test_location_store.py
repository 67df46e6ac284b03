"""
Unit tests for the location and route stores
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from saheli.core.database import DatabaseError
from saheli.models.safety import LocationHistoryEntry, LocationShare, RouteShare, StoreStatus
from saheli.services.location.location_store import LocationStore
from saheli.services.location.route_store import RouteStore


def make_share(latitude=12.9716, longitude=77.5946, is_sharing=True, **kwargs):
    return LocationShare(latitude=latitude, longitude=longitude, is_sharing=is_sharing,
                         accuracy=kwargs.pop('accuracy', 8.0), **kwargs)


class TestLocationStore:
    """Tests for location shares and history"""

    @pytest.mark.asyncio
    async def test_save_and_read_back(self, location_store):
        result = await location_store.save_location_data(make_share(speed=1.5))

        assert result.ok
        assert result.data.user_id == "U1"

        stored = await location_store.get_location_data()
        assert stored.latitude == 12.9716
        assert stored.longitude == 77.5946
        assert stored.is_sharing is True
        assert stored.accuracy == 8.0
        assert stored.speed == 1.5

    @pytest.mark.asyncio
    async def test_user_id_comes_from_session(self, location_store):
        result = await location_store.save_location_data(make_share(user_id="someone-else"))

        assert result.data.user_id == "U1"
        assert (await location_store.get_location_data()).user_id == "U1"

    @pytest.mark.asyncio
    async def test_second_save_overwrites_single_row(self, location_store, db):
        await location_store.save_location_data(make_share(latitude=1.0))
        await location_store.save_location_data(make_share(latitude=2.0, is_sharing=False))

        rows = db.execute_query("SELECT * FROM location_shares WHERE user_id = ?", ("U1",))
        assert len(rows) == 1

        stored = await location_store.get_location_data()
        assert stored.latitude == 2.0
        assert stored.is_sharing is False

    @pytest.mark.asyncio
    async def test_users_do_not_see_each_other(self, db, location_store, other_auth):
        other_store = LocationStore(db, other_auth)
        await location_store.save_location_data(make_share(latitude=1.0))

        assert await other_store.get_location_data() is None

    @pytest.mark.asyncio
    async def test_unauthenticated_save_is_a_result_not_an_error(self, db, anonymous):
        store = LocationStore(db, anonymous)

        result = await store.save_location_data(make_share())

        assert result.status == StoreStatus.UNAUTHENTICATED
        assert not result.ok
        assert db.get_stats()['location_shares'] == 0

    @pytest.mark.asyncio
    async def test_unauthenticated_reads_are_empty(self, db, anonymous):
        store = LocationStore(db, anonymous)

        assert await store.get_location_data() is None
        assert await store.get_location_history() == []

    @pytest.mark.asyncio
    async def test_fetch_distinguishes_missing_row_from_failure(self, location_store, db):
        missing = await location_store.fetch_location_data()
        assert missing.ok
        assert missing.data is None

        with patch.object(db, 'execute_query', side_effect=DatabaseError("locked")):
            failed = await location_store.fetch_location_data()

        assert failed.status == StoreStatus.STORE_UNAVAILABLE
        assert failed.data is None

    @pytest.mark.asyncio
    async def test_store_failure_reported_as_unavailable(self, location_store, db):
        with patch.object(db, 'upsert', side_effect=DatabaseError("disk I/O error")):
            result = await location_store.save_location_data(make_share())

        assert result.status == StoreStatus.STORE_UNAVAILABLE
        assert "disk I/O error" in result.error

    @pytest.mark.asyncio
    async def test_read_failure_returns_none(self, location_store, db):
        with patch.object(db, 'execute_query', side_effect=DatabaseError("locked")):
            assert await location_store.get_location_data() is None
            assert await location_store.get_location_history() == []

    @pytest.mark.asyncio
    async def test_timestamps_are_utc_aware(self, location_store):
        await location_store.save_location_data(make_share())
        await location_store.save_location_history(LocationHistoryEntry(latitude=1.0, longitude=2.0))

        share = await location_store.get_location_data()
        entry = (await location_store.get_location_history())[0]

        assert share.timestamp.utcoffset() == timedelta(0)
        assert entry.timestamp.utcoffset() == timedelta(0)

    @pytest.mark.asyncio
    async def test_history_appends_newest_first(self, location_store):
        base = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
        for minute in range(3):
            entry = LocationHistoryEntry(latitude=10.0 + minute, longitude=77.0,
                                         timestamp=base + timedelta(minutes=minute))
            result = await location_store.save_location_history(entry)
            assert result.ok

        history = await location_store.get_location_history()

        assert [entry.latitude for entry in history] == [12.0, 11.0, 10.0]
        assert all(entry.user_id == "U1" for entry in history)
        assert all(entry.id is not None for entry in history)

    @pytest.mark.asyncio
    async def test_history_limit(self, location_store):
        for index in range(5):
            await location_store.save_location_history(
                LocationHistoryEntry(latitude=float(index), longitude=0.0)
            )

        assert len(await location_store.get_location_history(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_history_failure_is_logged_not_raised(self, location_store, db):
        with patch.object(db, 'execute_update', side_effect=DatabaseError("readonly")):
            result = await location_store.save_location_history(
                LocationHistoryEntry(latitude=1.0, longitude=2.0)
            )

        assert result.status == StoreStatus.STORE_UNAVAILABLE


class TestRouteStore:
    """Tests for destination sharing records"""

    @pytest.mark.asyncio
    async def test_start_route_is_active(self, route_store):
        result = await route_store.start_route("Koramangala")

        assert result.ok
        route = await route_store.get_route_data()
        assert route.destination == "Koramangala"
        assert route.is_active is True
        assert route.user_id == "U1"

    @pytest.mark.asyncio
    async def test_new_destination_replaces_previous(self, route_store, db):
        await route_store.start_route("Home")
        await route_store.start_route("Office")

        assert (await route_store.get_route_data()).destination == "Office"
        assert db.get_stats()['route_shares'] == 1

    @pytest.mark.asyncio
    async def test_inactive_route_is_not_returned(self, route_store):
        await route_store.save_route_data(RouteShare(destination="Airport", is_active=False))

        assert await route_store.get_route_data() is None

    @pytest.mark.asyncio
    async def test_stop_route_clears_active_flag(self, route_store, db):
        await route_store.start_route("Home")

        result = await route_store.stop_route()

        assert result.ok
        assert await route_store.get_route_data() is None
        rows = db.execute_query("SELECT is_active FROM route_shares WHERE user_id = ?", ("U1",))
        assert not rows[0]['is_active']

    @pytest.mark.asyncio
    async def test_stop_without_route_succeeds(self, route_store):
        result = await route_store.stop_route()

        assert result.ok
        assert result.data is None

    @pytest.mark.asyncio
    async def test_unauthenticated_route_operations(self, db, anonymous):
        store = RouteStore(db, anonymous)

        assert (await store.start_route("Home")).status == StoreStatus.UNAUTHENTICATED
        assert (await store.stop_route()).status == StoreStatus.UNAUTHENTICATED
        assert await store.get_route_data() is None

    @pytest.mark.asyncio
    async def test_route_store_failure(self, route_store, db):
        with patch.object(db, 'upsert', side_effect=DatabaseError("disk full")):
            result = await route_store.start_route("Home")

        assert result.status == StoreStatus.STORE_UNAVAILABLE
