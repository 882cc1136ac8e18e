"""
API user provisioning.

Translates store outcomes into the queue error taxonomy.
"""

import logging

from dnstest_queue.db.store import UserStore
from dnstest_queue.errors import ConflictError, InternalError, ValidationError

logger = logging.getLogger(__name__)


class UserRegistry:
    """Thin adapter over the user store."""

    def __init__(self, store: UserStore):
        self._store = store

    async def user_exists(self, username: str) -> bool:
        """
        Check if a user is registered.

        Raises:
            ValidationError: If no username is given.
        """
        if not username:
            raise ValidationError("Username not provided")
        return await self._store.user_exists_in_db(username)

    async def add_api_user(self, username: str, api_key: str) -> bool:
        """
        Register an API user.

        Raises:
            ValidationError: If username or api key is missing.
            ConflictError: If the user already exists.
            InternalError: If the store did not register the user.
        """
        if not username or not api_key:
            raise ValidationError("Username or api key not provided")

        if await self.user_exists(username):
            raise ConflictError("User already exists", {"username": username})

        if not await self._store.add_api_user_to_db(username, api_key):
            raise InternalError("Adding the user was not successful", {"username": username})

        logger.info("Added API user", extra={"username": username})
        return True
