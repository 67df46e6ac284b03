"""
Error taxonomy for the safety workflow

Errors raised by the geolocation, store, contact and alert layers all derive
from SafetyError so callers can surface a human-readable message for any of
them.
"""

from enum import Enum
from typing import Optional


class SafetyError(Exception):
    """Base class for safety workflow errors"""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class SensorErrorCode(Enum):
    """Geolocation failure reasons reported by the sensor"""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


class SensorError(SafetyError):
    """Location sensor failed to produce a fix"""

    def __init__(self, code: SensorErrorCode, message: str = ""):
        self.code = code
        user_messages = {
            SensorErrorCode.PERMISSION_DENIED: "Location permission was denied.",
            SensorErrorCode.POSITION_UNAVAILABLE: "Your location is currently unavailable.",
            SensorErrorCode.TIMEOUT: "Timed out while getting your location.",
        }
        super().__init__(message or code.value, user_messages[code])


class UnsupportedEnvironment(SafetyError):
    """No location sensor is available"""
    user_message = "Geolocation is not supported on this device."


class StoreError(SafetyError):
    """The backing store rejected or failed an operation"""
    user_message = "Could not reach the server. Please try again."


class ContactNotFound(StoreError):
    """No trusted contact with the given id belongs to the user"""
    user_message = "This contact no longer exists."


class UnauthenticatedUser(SafetyError):
    """Operation requires a signed-in user"""
    user_message = "Please sign in to continue."


class ValidationError(SafetyError):
    """User supplied input is incomplete or malformed"""
    user_message = "Please check the details you entered."


class InvalidContact(ValidationError):
    """Contact is missing a required field"""
    user_message = "A contact needs both a name and a phone number."


class InvalidDestination(ValidationError):
    """Destination text is empty"""
    user_message = "Please enter a destination."


class DuplicateContact(SafetyError):
    """A contact with the same phone number already exists for this user"""
    user_message = "This phone number is already in your trusted contacts."


class InvalidPhoneFormat(SafetyError):
    """Phone number does not normalize to a dialable number"""
    user_message = "Invalid phone number format."


class NoTrustedContacts(SafetyError):
    """An alert was requested but the user has no contacts to notify"""
    user_message = "No trusted contacts found. Add a contact first."


class MessagingError(SafetyError):
    """The messaging gateway refused or failed to deliver a message"""
    user_message = "Failed to send the message."

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status
