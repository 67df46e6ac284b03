"""Trusted contact management"""

from .contact_directory import ContactDirectory
from .phone import format_phone_number, phone_digits

__all__ = ['ContactDirectory', 'format_phone_number', 'phone_digits']
