from __future__ import annotations

import logging
from typing import Protocol

from .models import TokenPair
from .tokens import TokenManager

logger = logging.getLogger(__name__)


class SessionBridge(Protocol):
    async def establish_session(self, tokens: TokenPair) -> bool: ...


class TokenManagerBridge:
    """Logs the user in by storing the pair in their TokenManager."""

    def __init__(self, tokens: TokenManager):
        self.tokens = tokens

    async def establish_session(self, tokens: TokenPair) -> bool:
        if not tokens.access_token or not tokens.refresh_token:
            return False
        await self.tokens.set_tokens(tokens.access_token, tokens.refresh_token, tokens.expires_in)
        stored = await self.tokens.get_access_token()
        if stored != tokens.access_token:
            logger.warning("Session for %s was not persisted", self.tokens.scope)
            return False
        return True
