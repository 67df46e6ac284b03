"""
Authenticated identity accessor

Every store operation is scoped by the current user's id. The session is
owned by whoever signs the user in; stores only read from it.
"""

import logging
from typing import Optional

from .errors import UnauthenticatedUser


class AuthSession:
    """Holds the identity of the signed-in user, if any"""

    def __init__(self, user_id: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._user_id = user_id or None

    async def get_user_id(self) -> Optional[str]:
        """Return the current user id, or None when nobody is signed in"""
        return self._user_id

    async def require_user_id(self) -> str:
        """Return the current user id or raise UnauthenticatedUser"""
        user_id = await self.get_user_id()
        if not user_id:
            raise UnauthenticatedUser("User not authenticated")
        return user_id

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._user_id = user_id
        self.logger.info(f"User {user_id} signed in")

    def sign_out(self) -> None:
        if self._user_id:
            self.logger.info(f"User {self._user_id} signed out")
        self._user_id = None

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id
