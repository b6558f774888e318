from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from typing import Any, Optional


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int = 0


class AuthResponse(TokenPair):
    model_config = ConfigDict(extra="allow")

    # user не разбираем, только передаём дальше
    user: Any = None

    def tokens(self) -> TokenPair:
        return TokenPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""


class VerifyResetPasswordResponse(MessageResponse):
    """Пароль уже сменён, даже если токенов в ответе нет."""

    message: Any = ""
    user: Any = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Any = 0

    def tokens(self) -> Optional[TokenPair]:
        if not self.access_token or not self.refresh_token:
            return None
        expires_in = self.expires_in if isinstance(self.expires_in, int) else 0
        return TokenPair(access_token=self.access_token, refresh_token=self.refresh_token, expires_in=expires_in)


class RegisterResponse(MessageResponse):
    user: Any = None


class ResetFlowState(BaseModel):
    email: Optional[str] = None
    verified_otp: Optional[str] = None


class ChatSession(BaseModel):
    view: str = "menu"  # "menu" | "login" | один из ResetStep
