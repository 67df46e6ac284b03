"""Phone number normalization"""

import re

from saheli.core.errors import InvalidPhoneFormat


DEFAULT_COUNTRY_CODE = "+91"
LOCAL_DIGITS = 10

_NON_DIGITS = re.compile(r'[^0-9]')


def phone_digits(phone: str) -> str:
    """Strip everything but digits"""
    return _NON_DIGITS.sub('', phone or '')


def format_phone_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalize a phone number to international format

    Args:
        phone: Number as entered, punctuation allowed
        country_code: Calling code prefixed to the local digits

    Returns:
        Country code followed by exactly ten local digits

    Raises:
        InvalidPhoneFormat: If the number does not hold exactly ten digits
    """
    digits = phone_digits(phone)
    if len(digits) != LOCAL_DIGITS:
        raise InvalidPhoneFormat(f"Invalid phone number format: expected {LOCAL_DIGITS} digits, "
                                 f"got {len(digits)}")
    return f"{country_code}{digits}"
