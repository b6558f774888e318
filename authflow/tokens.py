from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .api_client import ApiClient
from .errors import ApiError
from .models import TokenPair
from .storage import Storage, load_model, save_model

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenManager:
    """Owns the access/refresh pair of one scope (one chat, one user).

    The pair lives in a single storage record, so readers never see an
    access token without its refresh token. With ``storage=None`` every
    read returns None and writes are no-ops.
    """

    def __init__(self, storage: Optional[Storage], client: ApiClient, scope: str = "default"):
        self.storage = storage
        self.client = client
        self.scope = scope
        self._refreshing: Optional[asyncio.Task] = None

    @property
    def key(self) -> str:
        return f"tokens:{self.scope}"

    async def set_tokens(self, access_token: str, refresh_token: str, expires_in: int = 0) -> None:
        if self.storage is None:
            return
        pair = TokenPair(access_token=access_token, refresh_token=refresh_token, expires_in=expires_in)
        await save_model(self.storage, self.key, pair)

    async def get_tokens(self) -> Optional[TokenPair]:
        if self.storage is None:
            return None
        return await load_model(self.storage, self.key, TokenPair)

    async def get_access_token(self) -> Optional[str]:
        pair = await self.get_tokens()
        return pair.access_token if pair else None

    async def get_refresh_token(self) -> Optional[str]:
        pair = await self.get_tokens()
        return pair.refresh_token if pair else None

    async def clear_tokens(self) -> None:
        if self.storage is None:
            return
        await self.storage.delete(self.key)

    async def refresh(self) -> Optional[str]:
        # все одновременные вызовы ждут один и тот же запрос
        if self._refreshing is None or self._refreshing.done():
            self._refreshing = asyncio.ensure_future(self._do_refresh())
        return await asyncio.shield(self._refreshing)

    async def _do_refresh(self) -> Optional[str]:
        refresh_token = await self.get_refresh_token()
        if not refresh_token:
            return None
        try:
            res = await self.client.with_token(None).refresh_token(refresh_token)
        except ApiError as e:
            logger.warning("Token refresh failed for %s: %s", self.scope, e.message)
            await self.clear_tokens()
            return None
        except Exception:
            logger.exception("Token refresh crashed for %s", self.scope)
            await self.clear_tokens()
            return None
        await self.set_tokens(res.access_token, res.refresh_token, res.expires_in)
        logger.info("Tokens refreshed for %s", self.scope)
        return res.access_token

    async def authorized(self, call: Callable[[ApiClient], Awaitable[T]]) -> T:
        """Run ``call`` with a client bound to the current access token.

        A 401 triggers one refresh and one retry. If the refresh fails the
        original 401 propagates.
        """
        access = await self.get_access_token()
        try:
            return await call(self.client.with_token(access))
        except ApiError as e:
            if e.status != 401:
                raise
            new_access = await self.refresh()
            if not new_access:
                raise
        return await call(self.client.with_token(new_access))
