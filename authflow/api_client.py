from __future__ import annotations

import copy
import logging
from typing import Any, Awaitable, Dict, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import ApiError, CanonicalError, Err, Ok, Result, normalize_error, transport_error
from .models import (
    AuthResponse,
    MessageResponse,
    RegisterResponse,
    VerifyResetPasswordResponse,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

AUTH = "/api/v1/auth"


class ApiClient:
    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 8.0,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout_sec
        self.transport = transport
        self._access_token = access_token

    def set_access_token(self, token: Optional[str]) -> None:
        self._access_token = token

    def get_access_token(self) -> Optional[str]:
        return self._access_token

    def with_token(self, token: Optional[str]) -> "ApiClient":
        bound = copy.copy(self)
        bound._access_token = token
        return bound

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        _, data = await self._send(endpoint, method, body, headers)
        return data

    async def _send(
        self,
        endpoint: str,
        method: str,
        body: Optional[Any],
        headers: Optional[Dict[str, str]],
    ) -> Tuple[int, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.request(method, url, headers=self._headers(headers), json=body)
        except httpx.HTTPError as e:
            logger.warning("API transport error [%s %s]: %s", method, endpoint, e)
            raise ApiError(transport_error(e)) from e

        if not r.is_success:
            try:
                data = r.json()
            except ValueError:
                data = {}
            error = normalize_error(data, r.status_code, r.reason_phrase)
            logger.warning("API error [%s %s]: %s %s", method, endpoint, error.status, error.message)
            raise ApiError(error)

        if not r.content:
            return r.status_code, None
        try:
            data = r.json()
        except ValueError as e:
            raise ApiError(CanonicalError(
                message=f"Invalid JSON response from {endpoint}",
                status=r.status_code,
                payload=r.text,
            )) from e

        # один уровень конверта {data: ...}, без рекурсии
        if isinstance(data, dict) and data.get("data") is not None:
            return r.status_code, data["data"]
        return r.status_code, data

    async def safe_request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Result[Any]:
        return await _safe(self.request(endpoint, method, body, headers))

    async def _post(self, endpoint: str, body: Dict[str, Any], model: Type[M]) -> M:
        status, data = await self._send(endpoint, "POST", body, None)
        try:
            return model.model_validate(data or {})
        except ValidationError as e:
            logger.warning("Unexpected response shape from %s: %s", endpoint, e)
            raise ApiError(CanonicalError(
                message=f"Unexpected response from {endpoint}",
                status=status,
                payload=data,
            )) from e

    # AUTH
    async def login(self, email: str, password: str) -> AuthResponse:
        return await self._post(f"{AUTH}/login", {"email": email, "password": password}, AuthResponse)

    async def register(self, full_name: str, email: str, password: str, user_type: str, **extra: Any) -> RegisterResponse:
        payload = {"full_name": full_name, "email": email, "password": password, "user_type": user_type}
        payload.update({k: v for k, v in extra.items() if v is not None})
        return await self._post(f"{AUTH}/register", payload, RegisterResponse)

    async def verify_otp(self, email: str, otp_code: str) -> AuthResponse:
        return await self._post(f"{AUTH}/verify-otp", {"email": email, "otp_code": otp_code}, AuthResponse)

    async def resend_otp(self, email: str) -> MessageResponse:
        return await self._post(f"{AUTH}/resend-otp", {"email": email}, MessageResponse)

    async def verify_email(self, token: str) -> AuthResponse:
        return await self._post(f"{AUTH}/verify-email", {"token": token}, AuthResponse)

    async def refresh_token(self, refresh_token: str) -> AuthResponse:
        return await self._post(f"{AUTH}/refresh-token", {"refresh_token": refresh_token}, AuthResponse)

    # PASSWORD RESET
    async def request_reset_password(self, email: str) -> MessageResponse:
        return await self._post(f"{AUTH}/forgot-password", {"email": email}, MessageResponse)

    async def verify_reset_password_token(self, token: str) -> MessageResponse:
        # только проверка кода, пароль не меняется
        return await self._post(f"{AUTH}/verify-reset-password", {"token": token}, MessageResponse)

    async def verify_reset_password(self, email: str, otp_code: str, new_password: str) -> VerifyResetPasswordResponse:
        return await self._post(
            f"{AUTH}/verify-reset-password",
            {"email": email, "otp_code": otp_code, "new_password": new_password},
            VerifyResetPasswordResponse,
        )

    async def reset_password(self, token: str, new_password: str) -> AuthResponse:
        # сброс по ссылке из письма
        return await self._post(f"{AUTH}/reset-password", {"token": token, "newPassword": new_password}, AuthResponse)

    # OAUTH
    async def google_oauth(
        self,
        email: str,
        full_name: str,
        google_id: str,
        profile_photo: Optional[str] = None,
    ) -> AuthResponse:
        payload = {
            "email": email,
            "full_name": full_name,
            "profile_photo": profile_photo,
            "google_id": google_id,
        }
        return await self._post(f"{AUTH}/google-oauth", payload, AuthResponse)

    async def safe_login(self, email: str, password: str) -> Result[AuthResponse]:
        return await _safe(self.login(email, password))

    async def safe_request_reset_password(self, email: str) -> Result[MessageResponse]:
        return await _safe(self.request_reset_password(email))

    async def safe_verify_reset_password_token(self, token: str) -> Result[MessageResponse]:
        return await _safe(self.verify_reset_password_token(token))

    async def safe_verify_reset_password(self, email: str, otp_code: str, new_password: str) -> Result[VerifyResetPasswordResponse]:
        return await _safe(self.verify_reset_password(email, otp_code, new_password))

    async def safe_reset_password(self, token: str, new_password: str) -> Result[AuthResponse]:
        return await _safe(self.reset_password(token, new_password))

    async def safe_google_oauth(
        self,
        email: str,
        full_name: str,
        google_id: str,
        profile_photo: Optional[str] = None,
    ) -> Result[AuthResponse]:
        return await _safe(self.google_oauth(email, full_name, google_id, profile_photo))


async def _safe(call: Awaitable[Any]) -> Result[Any]:
    try:
        return Ok(await call)
    except ApiError as e:
        return Err(e.error)
