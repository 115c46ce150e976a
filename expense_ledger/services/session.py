"""
Session Store

Keeps the signed-in user's display name in the device-local key-value
store, next to the receipts. There is no real authentication: signing
in only records who is using the app.

Credentials are never stored.
"""

from typing import Optional

import structlog

from expense_ledger.services.storage.interface import KeyValueStoreInterface


logger = structlog.get_logger(__name__)

DEFAULT_DISPLAY_NAME = "Usuario"


def username_from_email(email: str) -> str:
    """The part of an email address before the '@'."""
    return email.strip().split("@")[0]


class SessionStore:
    """Signed-in state on top of a key-value store."""

    def __init__(self, kv: KeyValueStoreInterface, key: str = "username"):
        self._kv = kv
        self._key = key

    async def login(self, email: str) -> str:
        """
        Record ``email``'s user as signed in.

        Returns:
            The stored username

        Raises:
            PersistenceError: If the username could not be stored
        """
        username = username_from_email(email)
        await self._kv.set_item(self._key, username)
        logger.info("session_started", username=username)
        return username

    async def username(self) -> Optional[str]:
        return await self._kv.get_item(self._key)

    async def display_name(self) -> str:
        """Name for the dashboard greeting."""
        return await self.username() or DEFAULT_DISPLAY_NAME

    async def is_logged_in(self) -> bool:
        return bool(await self.username())

    async def logout(self) -> None:
        await self._kv.remove_item(self._key)
        logger.info("session_ended")
