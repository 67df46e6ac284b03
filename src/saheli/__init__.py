"""
Saheli - Personal Safety Service

Live location sharing, destination sharing, trusted contacts and SOS alerts
delivered to those contacts by SMS.
"""

__version__ = "1.0.0"
__author__ = "Saheli Development Team"
