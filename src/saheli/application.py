"""
Saheli Application

Composition root: loads configuration, initializes logging and the database,
builds the messaging gateway and opens a sharing session per signed-in user.
"""

import traceback
from typing import Any, Dict, Optional

from saheli.core.config import ConfigurationManager
from saheli.core.database import DatabaseManager
from saheli.core.identity import AuthSession
from saheli.core.logging import get_logger, initialize_logging, shutdown_logging
from saheli.services.alerts.alert_dispatcher import AlertDispatcher
from saheli.services.alerts.messaging_gateway import MessagingGateway, TwilioMessagingGateway
from saheli.services.contacts.contact_directory import ContactDirectory
from saheli.services.location.geolocation import GeolocationAccessor, GeolocationSensor
from saheli.services.location.location_store import LocationStore
from saheli.services.location.route_store import RouteStore
from saheli.services.sharing.session_controller import SharingSessionController


class SaheliApplication:
    """Main Saheli application class"""

    def __init__(self, config_manager: Optional[ConfigurationManager] = None,
                 gateway: Optional[MessagingGateway] = None):
        self.config_manager = config_manager
        self.gateway = gateway
        self.db_manager: Optional[DatabaseManager] = None
        self.logger = None
        self.sessions: Dict[str, SharingSessionController] = {}
        self.running = False

    async def initialize(self):
        """Initialize all application components"""
        try:
            if self.config_manager is None:
                self.config_manager = ConfigurationManager()
                self.config_manager.load_config()

            initialize_logging(self.config_manager.config)
            self.logger = get_logger(__name__)

            self.logger.info("Saheli starting up...")
            self.logger.info(f"Version: {self.config_manager.get('app.version', '1.0.0')}")

            self._initialize_database()
            self._initialize_gateway()

            self.running = True
            self.logger.info("Core systems initialized successfully")

        except Exception as e:
            if self.logger:
                self.logger.error(f"Failed to initialize application: {e}", exc_info=True)
            else:
                traceback.print_exc()
            raise

    def _initialize_database(self):
        db_path = self.config_manager.get('database.path', 'data/saheli.db')
        max_connections = self.config_manager.get('database.max_connections', 10)
        self.db_manager = DatabaseManager(db_path, max_connections)

    def _initialize_gateway(self):
        if self.gateway is not None:
            return

        if not self.config_manager.is_messaging_configured():
            self.logger.warning("Messaging credentials missing; alerts will fail to send")

        self.gateway = TwilioMessagingGateway.from_config(self.config_manager.get_section('messaging'))

    def open_session(self, auth: AuthSession,
                     sensor: Optional[GeolocationSensor]) -> SharingSessionController:
        """
        Build the sharing session for a signed-in user

        Args:
            auth: Identity of the user the session acts for
            sensor: The user's device location sensor, None if unsupported

        Returns:
            SharingSessionController wired to the shared store and gateway
        """
        if not self.running:
            raise RuntimeError("Application not initialized")

        geo_config = self.config_manager.get_section('geolocation')
        alert_config = self.config_manager.get_section('alerts')

        geolocation = GeolocationAccessor(
            sensor,
            accuracy_threshold_m=geo_config.get('accuracy_threshold_m', 50.0),
            watch_interval_seconds=geo_config.get('watch_interval_seconds', 60.0),
            timeout_ms=geo_config.get('timeout_ms', 10000),
            maximum_age_ms=geo_config.get('maximum_age_ms', 0)
        )
        contacts = ContactDirectory(self.db_manager, auth)
        dispatcher = AlertDispatcher(
            auth,
            contacts,
            geolocation,
            self.gateway,
            country_code=alert_config.get('country_code', '+91'),
            max_concurrency=alert_config.get('max_concurrency', 5),
            maps_url=alert_config.get('maps_url', 'https://www.google.com/maps?q={latitude},{longitude}')
        )
        session = SharingSessionController(
            geolocation,
            LocationStore(self.db_manager, auth),
            RouteStore(self.db_manager, auth),
            dispatcher,
            notify_on_start=alert_config.get('notify_on_start', True)
        )

        user_id = auth.user_id
        if user_id:
            previous = self.sessions.get(user_id)
            if previous is not None and previous.is_active:
                self.logger.warning(f"Replacing active session for user {user_id}")
                previous.geolocation.stop_watching_location(previous.subscription)
            self.sessions[user_id] = session

        return session

    def contacts_for(self, auth: AuthSession) -> ContactDirectory:
        """Contact directory scoped to a signed-in user"""
        return ContactDirectory(self.db_manager, auth)

    def get_system_status(self) -> Dict[str, Any]:
        return {
            'running': self.running,
            'sessions': len(self.sessions),
            'active_sessions': sum(1 for s in self.sessions.values() if s.is_active),
            'database': self.db_manager.get_stats() if self.db_manager else {}
        }

    async def shutdown(self):
        """Stop all sessions and release resources"""
        if not self.running:
            return

        self.logger.info("Shutting down Saheli...")
        for session in self.sessions.values():
            subscription = session.subscription
            if subscription is None:
                continue
            session.geolocation.stop_watching_location(subscription)
            # Watched fixes already accepted still write to the database
            await subscription.wait_pending()
        self.sessions.clear()

        if self.gateway:
            await self.gateway.close()
        if self.db_manager:
            self.db_manager.close()

        self.running = False
        self.logger.info("Saheli shutdown complete")
        shutdown_logging()
