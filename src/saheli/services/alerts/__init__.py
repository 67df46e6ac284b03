"""
Alert Service Module

Sends SOS, tracking and destination alerts to trusted contacts
through an SMS gateway, one message per contact.
"""

from .alert_dispatcher import AlertDispatcher
from .messaging_gateway import MessagingGateway, TwilioMessagingGateway

__all__ = ['AlertDispatcher', 'MessagingGateway', 'TwilioMessagingGateway']
