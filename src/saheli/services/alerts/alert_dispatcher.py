"""
Alert Dispatch

Composes SOS, tracking and destination alerts and sends each trusted contact
its own message. A contact with a bad number or a failed send is recorded in
the report and never stops delivery to the others.
"""

import asyncio
import logging
from typing import List, Optional

from saheli.core.errors import InvalidPhoneFormat, MessagingError, NoTrustedContacts
from saheli.core.identity import AuthSession
from saheli.core.logging import get_structured_logger
from saheli.models.safety import (
    AlertKind, AlertReport, DeliveryOutcome, DeliveryStatus,
    LocationShare, PositionFix, TrustedContact
)
from saheli.services.contacts.contact_directory import ContactDirectory
from saheli.services.contacts.phone import DEFAULT_COUNTRY_CODE, format_phone_number
from saheli.services.location.geolocation import GeolocationAccessor
from .messaging_gateway import MessagingGateway
from . import templates


class AlertDispatcher:
    """Fans alerts out to the signed-in user's trusted contacts"""

    def __init__(
        self,
        auth: AuthSession,
        contacts: ContactDirectory,
        geolocation: GeolocationAccessor,
        gateway: MessagingGateway,
        country_code: str = DEFAULT_COUNTRY_CODE,
        max_concurrency: int = 5,
        maps_url: str = templates.DEFAULT_MAPS_URL
    ):
        self.logger = logging.getLogger(__name__)
        self.events = get_structured_logger('alerts')
        self.auth = auth
        self.contacts = contacts
        self.geolocation = geolocation
        self.gateway = gateway
        self.country_code = country_code
        self.max_concurrency = max(1, max_concurrency)
        self.maps_url = maps_url

    async def send_sos_message(self) -> AlertReport:
        """
        Send the emergency alert to every trusted contact

        The current location is included when it can be resolved; otherwise
        the message carries a placeholder and is sent anyway.

        Raises:
            UnauthenticatedUser: If nobody is signed in
            NoTrustedContacts: If there is nobody to notify
        """
        user_id = await self.auth.require_user_id()
        contacts = await self._require_contacts()

        fix: Optional[PositionFix] = None
        try:
            fix = await self.geolocation.get_current_location()
        except Exception as e:
            self.logger.error(f"Error getting current location for SOS: {e}")

        body = templates.sos_message(fix, self.maps_url)
        report = await self._fan_out(AlertKind.SOS, body, contacts)

        self.logger.critical(f"SOS ALERT from {user_id}: {report.summary()}")
        return report

    async def send_location_tracking_message(self, share: LocationShare) -> AlertReport:
        """Tell every trusted contact that live location sharing has started"""
        await self.auth.require_user_id()
        contacts = await self._require_contacts()

        body = templates.tracking_message(share, self.maps_url)
        return await self._fan_out(AlertKind.TRACKING, body, contacts)

    async def send_destination_message(self, destination: str) -> AlertReport:
        """Tell every trusted contact where the user is heading"""
        await self.auth.require_user_id()
        contacts = await self._require_contacts()

        body = templates.destination_message(destination)
        return await self._fan_out(AlertKind.DESTINATION, body, contacts)

    async def _require_contacts(self) -> List[TrustedContact]:
        contacts = await self.contacts.get_trusted_contacts()
        if not contacts:
            raise NoTrustedContacts("No trusted contacts found")
        return contacts

    async def _fan_out(self, kind: AlertKind, body: str,
                       contacts: List[TrustedContact]) -> AlertReport:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def deliver(contact: TrustedContact) -> DeliveryOutcome:
            async with semaphore:
                return await self._deliver(contact, body)

        outcomes = await asyncio.gather(*(deliver(contact) for contact in contacts))
        report = AlertReport(kind=kind, body=body, outcomes=list(outcomes))

        self.events.info(
            "alert_dispatched",
            kind=kind.value,
            sent=report.sent_count,
            failed=report.failed_count,
            total=report.total
        )
        return report

    async def _deliver(self, contact: TrustedContact, body: str) -> DeliveryOutcome:
        try:
            phone = format_phone_number(contact.phone, self.country_code)
        except InvalidPhoneFormat as e:
            self.logger.warning(f"Skipping contact {contact.id}: {e}")
            return DeliveryOutcome(contact=contact, status=DeliveryStatus.INVALID_PHONE,
                                   error=str(e))

        try:
            message_sid = await self.gateway.send_message(phone, body)
        except MessagingError as e:
            self.logger.error(f"Failed to send SMS to {phone}: {e}")
            return DeliveryOutcome(contact=contact, status=DeliveryStatus.FAILED,
                                   phone=phone, error=str(e))
        except Exception as e:
            self.logger.error(f"Error sending SMS to {phone}: {e}", exc_info=True)
            return DeliveryOutcome(contact=contact, status=DeliveryStatus.FAILED,
                                   phone=phone, error=str(e))

        return DeliveryOutcome(contact=contact, status=DeliveryStatus.SENT,
                               phone=phone, message_sid=message_sid)
