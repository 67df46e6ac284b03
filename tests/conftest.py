"""
Global pytest configuration and fixtures for Saheli testing.
"""
import tempfile
import pytest
from pathlib import Path

from saheli.core.database import DatabaseManager
from saheli.core.identity import AuthSession
from saheli.services.alerts.alert_dispatcher import AlertDispatcher
from saheli.services.contacts.contact_directory import ContactDirectory
from saheli.services.location.geolocation import GeolocationAccessor
from saheli.services.location.location_store import LocationStore
from saheli.services.location.route_store import RouteStore
from saheli.services.sharing.session_controller import SharingSessionController
from tests.mocks.geolocation_mocks import FakeClock, ScriptedSensor
from tests.mocks.messaging_mocks import RecordingGateway


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db():
    """In-memory database with the full schema applied."""
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close()


@pytest.fixture
def auth():
    """Session signed in as user U1."""
    return AuthSession("U1")


@pytest.fixture
def other_auth():
    """Session signed in as user U2."""
    return AuthSession("U2")


@pytest.fixture
def anonymous():
    """Session with nobody signed in."""
    return AuthSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sensor():
    return ScriptedSensor()


@pytest.fixture
def geolocation(sensor, clock):
    return GeolocationAccessor(sensor, clock=clock)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def contacts(db, auth):
    return ContactDirectory(db, auth)


@pytest.fixture
def location_store(db, auth):
    return LocationStore(db, auth)


@pytest.fixture
def route_store(db, auth):
    return RouteStore(db, auth)


@pytest.fixture
def dispatcher(auth, contacts, geolocation, gateway):
    return AlertDispatcher(auth, contacts, geolocation, gateway)


@pytest.fixture
def controller(geolocation, location_store, route_store, dispatcher):
    return SharingSessionController(geolocation, location_store, route_store, dispatcher)
