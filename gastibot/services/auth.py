"""
Authenticated calls against Gasti.pro.
Every command goes through AuthSession.call so the rotating refresh token is
always written back before the next use.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from gastibot.errors import TokenStoreError
from gastibot.services.gasti_client import GastiClient
from gastibot.services.token_store import TokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthSession:
    """Refresh-then-act wrapper around the token store and the backend client."""

    def __init__(self, store: TokenStore, client: GastiClient):
        self.store = store
        self.client = client
        self._lock = asyncio.Lock()

    async def access_token(self) -> str:
        """
        Obtain a fresh access token, persisting a rotated refresh token.

        Raises:
            AuthError: if the backend rejects the stored refresh token.
        """
        async with self._lock:
            current = self.store.read()
            tokens = await self.client.refresh(current)

            if tokens.refresh_token != current:
                logger.info("Gasti.pro rotated the refresh token, saving the new one")
                try:
                    self.store.write(tokens.refresh_token)
                except TokenStoreError as e:
                    # The access token is still valid for this command
                    logger.error(f"❌ {e}")

            return tokens.access_token

    async def call(self, action: Callable[[str], Awaitable[T]]) -> T:
        """Run ``action`` with a freshly issued access token."""
        access_token = await self.access_token()
        return await action(access_token)
