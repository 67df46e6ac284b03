"""
Unit tests for the Trusted Contact Directory
"""

from unittest.mock import patch

import pytest

from saheli.core.database import DatabaseError
from saheli.core.errors import (
    ContactNotFound, DuplicateContact, InvalidContact, InvalidPhoneFormat, StoreError,
    UnauthenticatedUser
)
from saheli.models.safety import TrustedContact
from saheli.services.contacts.contact_directory import ContactDirectory
from saheli.services.contacts.phone import format_phone_number, phone_digits


class TestPhoneFormatting:
    """Tests for phone normalization"""

    @pytest.mark.parametrize("phone", [
        "9876543210",
        "98765-43210",
        "(987) 654-3210",
        "98 76 54 32 10",
        "987.654.3210",
    ])
    def test_ten_digits_with_punctuation(self, phone):
        assert format_phone_number(phone) == "+919876543210"

    @pytest.mark.parametrize("phone", ["12345", "", "+91 98765 43210", "98765432101", "abc"])
    def test_wrong_digit_count_rejected(self, phone):
        with pytest.raises(InvalidPhoneFormat):
            format_phone_number(phone)

    def test_custom_country_code(self):
        assert format_phone_number("555-123-4567", "+1") == "+15551234567"

    def test_phone_digits(self):
        assert phone_digits("+91 (987) 654-3210") == "919876543210"
        assert phone_digits(None) == ""


class TestAddTrustedContact:
    """Tests for adding contacts"""

    @pytest.mark.asyncio
    async def test_add_contact(self, contacts):
        contact = await contacts.add_trusted_contact("Asha", "9876543210", "asha@example.com")

        assert contact.id
        assert contact.user_id == "U1"
        assert contact.name == "Asha"
        assert contact.email == "asha@example.com"

        listed = await contacts.get_trusted_contacts()
        assert [c.id for c in listed] == [contact.id]

    @pytest.mark.asyncio
    async def test_blank_email_stored_as_none(self, contacts):
        contact = await contacts.add_trusted_contact("Asha", "9876543210", "  ")

        assert contact.email is None

    @pytest.mark.asyncio
    async def test_same_phone_same_user_rejected(self, contacts):
        await contacts.add_trusted_contact("Asha", "9876543210")

        with pytest.raises(DuplicateContact):
            await contacts.add_trusted_contact("Asha again", "9876543210")

        assert len(await contacts.get_trusted_contacts()) == 1

    @pytest.mark.asyncio
    async def test_punctuation_does_not_hide_duplicate(self, contacts):
        await contacts.add_trusted_contact("A", "98765-43210")

        with pytest.raises(DuplicateContact):
            await contacts.add_trusted_contact("B", "9876543210")

    @pytest.mark.asyncio
    async def test_same_phone_different_user_allowed(self, db, contacts, other_auth):
        other_contacts = ContactDirectory(db, other_auth)

        await contacts.add_trusted_contact("Asha", "9876543210")
        contact = await other_contacts.add_trusted_contact("Asha", "9876543210")

        assert contact.user_id == "U2"
        assert len(await contacts.get_trusted_contacts()) == 1
        assert len(await other_contacts.get_trusted_contacts()) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,phone", [("", "9876543210"), ("Asha", ""), ("  ", "---")])
    async def test_missing_fields_rejected(self, contacts, name, phone):
        with pytest.raises(InvalidContact):
            await contacts.add_trusted_contact(name, phone)

    @pytest.mark.asyncio
    async def test_malformed_phone_is_stored(self, contacts):
        contact = await contacts.add_trusted_contact("Ravi", "12345")

        assert contact.phone == "12345"

    @pytest.mark.asyncio
    async def test_requires_signed_in_user(self, db, anonymous):
        with pytest.raises(UnauthenticatedUser):
            await ContactDirectory(db, anonymous).add_trusted_contact("Asha", "9876543210")

    @pytest.mark.asyncio
    async def test_store_failure_raises_store_error(self, contacts, db):
        with patch.object(db, 'execute_update', side_effect=DatabaseError("disk full")):
            with pytest.raises(StoreError):
                await contacts.add_trusted_contact("Asha", "9876543210")


class TestListAndRemoveContacts:
    """Tests for listing, updating and removing contacts"""

    @pytest.mark.asyncio
    async def test_newest_first(self, contacts):
        first = await contacts.add_trusted_contact("First", "9000000001")
        second = await contacts.add_trusted_contact("Second", "9000000002")
        third = await contacts.add_trusted_contact("Third", "9000000003")

        listed = await contacts.get_trusted_contacts()

        assert [c.id for c in listed] == [third.id, second.id, first.id]

    @pytest.mark.asyncio
    async def test_list_failure_returns_empty(self, contacts, db):
        await contacts.add_trusted_contact("Asha", "9876543210")

        with patch.object(db, 'execute_query', side_effect=DatabaseError("locked")):
            assert await contacts.get_trusted_contacts() == []

    @pytest.mark.asyncio
    async def test_unauthenticated_list_is_empty(self, db, anonymous):
        assert await ContactDirectory(db, anonymous).get_trusted_contacts() == []

    @pytest.mark.asyncio
    async def test_remove_contact(self, contacts):
        contact = await contacts.add_trusted_contact("Asha", "9876543210")

        assert await contacts.remove_trusted_contact(contact.id) is True
        assert await contacts.get_trusted_contacts() == []

    @pytest.mark.asyncio
    async def test_remove_unknown_contact(self, contacts):
        assert await contacts.remove_trusted_contact("missing") is False

    @pytest.mark.asyncio
    async def test_cannot_remove_other_users_contact(self, db, contacts, other_auth):
        contact = await contacts.add_trusted_contact("Asha", "9876543210")

        removed = await ContactDirectory(db, other_auth).remove_trusted_contact(contact.id)

        assert removed is False
        assert len(await contacts.get_trusted_contacts()) == 1

    @pytest.mark.asyncio
    async def test_removed_phone_can_be_added_again(self, contacts):
        contact = await contacts.add_trusted_contact("Asha", "9876543210")
        await contacts.remove_trusted_contact(contact.id)

        again = await contacts.add_trusted_contact("Asha", "98765 43210")

        assert again.id != contact.id

    @pytest.mark.asyncio
    async def test_update_contact(self, contacts):
        contact = await contacts.add_trusted_contact("Asha", "9876543210")
        contact.name = "Asha K"
        contact.phone = "98765-43210"

        await contacts.update_trusted_contact(contact)

        stored = (await contacts.get_trusted_contacts())[0]
        assert stored.name == "Asha K"
        assert stored.phone == "98765-43210"

    @pytest.mark.asyncio
    async def test_update_to_existing_phone_rejected(self, contacts):
        await contacts.add_trusted_contact("Asha", "9876543210")
        other = await contacts.add_trusted_contact("Ravi", "9123456780")
        other.phone = "(987) 654-3210"

        with pytest.raises(DuplicateContact):
            await contacts.update_trusted_contact(other)

    @pytest.mark.asyncio
    async def test_update_unknown_contact_raises(self, contacts):
        ghost = TrustedContact(name="Nobody", phone="9000000000")

        with pytest.raises(ContactNotFound):
            await contacts.update_trusted_contact(ghost)

        assert await contacts.get_trusted_contacts() == []

    @pytest.mark.asyncio
    async def test_update_other_users_contact_raises(self, db, contacts, other_auth):
        theirs = await ContactDirectory(db, other_auth).add_trusted_contact("Ravi", "9123456780")
        theirs.name = "Hijacked"

        with pytest.raises(StoreError):
            await contacts.update_trusted_contact(theirs)

        stored = await ContactDirectory(db, other_auth).get_trusted_contacts()
        assert [c.name for c in stored] == ["Ravi"]
