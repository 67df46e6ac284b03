"""
Trusted Contact Directory

CRUD over a user's trusted contacts. A phone number may appear only once per
user; numbers are compared on their digits so punctuation does not hide a
duplicate.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from saheli.core.database import DatabaseManager, DatabaseError, DatabaseIntegrityError
from saheli.core.errors import ContactNotFound, DuplicateContact, InvalidContact, StoreError
from saheli.core.identity import AuthSession
from saheli.models.safety import TrustedContact
from .phone import phone_digits


class ContactDirectory:
    """Manages the trusted contacts of the signed-in user"""

    def __init__(self, db: DatabaseManager, auth: AuthSession):
        self.logger = logging.getLogger(__name__)
        self.db = db
        self.auth = auth

    async def get_trusted_contacts(self) -> List[TrustedContact]:
        """
        Get the user's contacts, newest first

        Returns:
            List of contacts; empty when not signed in or on any store failure
        """
        user_id = await self.auth.get_user_id()
        if not user_id:
            return []

        try:
            rows = self.db.execute_query(
                """
                SELECT * FROM trusted_contacts WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id,)
            )
            return [TrustedContact.from_row(row) for row in rows]

        except DatabaseError as e:
            self.logger.error(f"Failed to get trusted contacts for user {user_id}: {e}")
            return []

    async def add_trusted_contact(self, name: str, phone: str,
                                  email: Optional[str] = None) -> TrustedContact:
        """
        Add a trusted contact

        Args:
            name: Display name
            phone: Phone number as entered
            email: Optional email address

        Returns:
            The stored contact

        Raises:
            InvalidContact: If name or phone is missing
            UnauthenticatedUser: If nobody is signed in
            DuplicateContact: If the phone is already in the user's contacts
            StoreError: If the insert fails
        """
        name = (name or '').strip()
        phone = (phone or '').strip()
        if not name or not phone_digits(phone):
            raise InvalidContact("Name and phone number are required")

        user_id = await self.auth.require_user_id()
        digits = phone_digits(phone)

        if self._find_by_digits(user_id, digits) is not None:
            raise DuplicateContact(f"Contact with phone {phone} already exists")

        contact = TrustedContact(
            name=name,
            phone=phone,
            email=(email or '').strip() or None,
            user_id=user_id,
            created_at=datetime.now(timezone.utc)
        )

        try:
            self.db.execute_update(
                """
                INSERT INTO trusted_contacts (id, user_id, name, phone, phone_digits, email, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (contact.id, user_id, contact.name, contact.phone, digits,
                 contact.email, contact.created_at.isoformat())
            )
        except DatabaseIntegrityError:
            # Lost a race with a concurrent add of the same number
            raise DuplicateContact(f"Contact with phone {phone} already exists")
        except DatabaseError as e:
            self.logger.error(f"Failed to add trusted contact for user {user_id}: {e}")
            raise StoreError(f"Failed to add trusted contact: {e}")

        self.logger.info(f"Added trusted contact {contact.id} for user {user_id}")
        return contact

    async def remove_trusted_contact(self, contact_id: str) -> bool:
        """
        Remove a trusted contact

        Returns:
            True if a contact was removed, False if none matched

        Raises:
            UnauthenticatedUser: If nobody is signed in
            StoreError: If the delete fails
        """
        user_id = await self.auth.require_user_id()

        try:
            rows_affected = self.db.execute_update(
                "DELETE FROM trusted_contacts WHERE id = ? AND user_id = ?",
                (contact_id, user_id)
            )
        except DatabaseError as e:
            self.logger.error(f"Failed to remove trusted contact {contact_id}: {e}")
            raise StoreError(f"Failed to remove trusted contact: {e}")

        if rows_affected == 0:
            self.logger.warning(f"No trusted contact {contact_id} for user {user_id}")
            return False

        self.logger.info(f"Removed trusted contact {contact_id} for user {user_id}")
        return True

    async def update_trusted_contact(self, contact: TrustedContact) -> TrustedContact:
        """
        Update a contact's name, phone and email by id

        Raises:
            InvalidContact: If name or phone is missing
            UnauthenticatedUser: If nobody is signed in
            DuplicateContact: If another contact already has the phone
            ContactNotFound: If the user has no contact with that id
            StoreError: If the update fails
        """
        name = (contact.name or '').strip()
        phone = (contact.phone or '').strip()
        if not name or not phone_digits(phone):
            raise InvalidContact("Name and phone number are required")

        user_id = await self.auth.require_user_id()
        digits = phone_digits(phone)

        existing = self._find_by_digits(user_id, digits)
        if existing is not None and existing.id != contact.id:
            raise DuplicateContact(f"Contact with phone {phone} already exists")

        try:
            rows_affected = self.db.execute_update(
                """
                UPDATE trusted_contacts SET name = ?, phone = ?, phone_digits = ?, email = ?
                WHERE id = ? AND user_id = ?
                """,
                (name, phone, digits, contact.email, contact.id, user_id)
            )
        except DatabaseIntegrityError:
            raise DuplicateContact(f"Contact with phone {phone} already exists")
        except DatabaseError as e:
            self.logger.error(f"Failed to update trusted contact {contact.id}: {e}")
            raise StoreError(f"Failed to update trusted contact: {e}")

        if rows_affected == 0:
            self.logger.warning(f"No trusted contact {contact.id} for user {user_id}")
            raise ContactNotFound(f"No trusted contact {contact.id}")

        contact.name = name
        contact.phone = phone
        contact.user_id = user_id
        return contact

    def _find_by_digits(self, user_id: str, digits: str) -> Optional[TrustedContact]:
        try:
            rows = self.db.execute_query(
                "SELECT * FROM trusted_contacts WHERE user_id = ? AND phone_digits = ?",
                (user_id, digits)
            )
        except DatabaseError as e:
            raise StoreError(f"Failed to check for existing contact: {e}")

        return TrustedContact.from_row(rows[0]) if rows else None
