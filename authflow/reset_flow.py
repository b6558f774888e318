from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .api_client import ApiClient
from .errors import CanonicalError, Err
from .models import ResetFlowState, TokenPair
from .session_bridge import SessionBridge
from .storage import Storage, load_model, save_model

logger = logging.getLogger(__name__)

NETWORK_ERROR = "⚠️ Сервис авторизации сейчас недоступен. Попробуй позже."
EMAIL_MISSING = "❌ Email не найден. Начни сброс пароля заново."
OTP_MISSING = "❌ Код ещё не подтверждён. Сначала введи код из письма."


class ResetStep(str, Enum):
    AWAITING_EMAIL = "reset_email"
    AWAITING_OTP = "reset_otp"
    AWAITING_NEW_PASSWORD = "reset_password"
    COMPLETE = "reset_complete"


class Landing(str, Enum):
    HOME = "home"
    LOGIN = "login"


@dataclass(frozen=True)
class Notice:
    kind: str  # "error" | "info" | "success"
    text: str


@dataclass(frozen=True)
class StepOutcome:
    step: ResetStep
    notice: Optional[Notice] = None
    landing: Optional[Landing] = None
    redirected: bool = False

    @property
    def ok(self) -> bool:
        return self.notice is None or self.notice.kind != "error"


def _is_code(text: str) -> bool:
    t = (text or "").strip()
    return t.isdigit() and 4 <= len(t) <= 8


def _error(step: ResetStep, text: str, redirected: bool = False) -> StepOutcome:
    return StepOutcome(step=step, notice=Notice("error", text), redirected=redirected)


def _succeeded(error: CanonicalError) -> bool:
    return 200 <= error.status < 300


def _backend_error(step: ResetStep, error: CanonicalError) -> StepOutcome:
    if error.is_transport:
        return _error(step, NETWORK_ERROR)
    return _error(step, f"❌ {error.message}")


class ResetFlowStore:
    """Ephemeral reset state of one scope, expires after ``ttl_sec``."""

    def __init__(self, storage: Storage, scope: str, ttl_sec: int = 1800):
        self.storage = storage
        self.scope = scope
        self.ttl = ttl_sec

    @property
    def key(self) -> str:
        return f"reset:{self.scope}"

    async def get(self) -> ResetFlowState:
        return await load_model(self.storage, self.key, ResetFlowState) or ResetFlowState()

    async def set(self, state: ResetFlowState) -> None:
        await save_model(self.storage, self.key, state, ttl_sec=self.ttl)

    async def clear(self) -> None:
        await self.storage.delete(self.key)

    async def clear_otp(self) -> None:
        state = await self.get()
        if state.email is None:
            await self.clear()
            return
        await self.set(ResetFlowState(email=state.email))


class ResetFlowController:
    """Password reset: email -> one-time code -> new password -> auto-login.

    Each step is handled on its own, possibly in another process, so the
    controller keeps nothing in memory between calls: every operation reads
    the flow state from the store first. Local validation always finishes
    before a request is sent, and the store is only written after the
    request has settled.
    """

    def __init__(
        self,
        client: ApiClient,
        store: ResetFlowStore,
        bridge: SessionBridge,
        min_password_length: int = 6,
    ):
        self.client = client
        self.store = store
        self.bridge = bridge
        self.min_password_length = min_password_length

    async def current_step(self) -> ResetStep:
        state = await self.store.get()
        if not state.email:
            return ResetStep.AWAITING_EMAIL
        if not state.verified_otp:
            return ResetStep.AWAITING_OTP
        return ResetStep.AWAITING_NEW_PASSWORD

    async def enter(self, step: ResetStep) -> StepOutcome:
        if step in (ResetStep.AWAITING_EMAIL, ResetStep.COMPLETE):
            return StepOutcome(step=step)
        state = await self.store.get()
        if not state.email:
            return _error(ResetStep.AWAITING_EMAIL, EMAIL_MISSING, redirected=True)
        if step == ResetStep.AWAITING_NEW_PASSWORD and not state.verified_otp:
            return _error(ResetStep.AWAITING_OTP, OTP_MISSING, redirected=True)
        return StepOutcome(step=step)

    async def restart(self) -> StepOutcome:
        await self.store.clear()
        return StepOutcome(step=ResetStep.AWAITING_EMAIL)

    async def request_reset(self, email: str) -> StepOutcome:
        email = (email or "").strip()
        if not email or "@" not in email:
            return _error(ResetStep.AWAITING_EMAIL, "❌ Введи корректный email.")

        res = await self.client.safe_request_reset_password(email)
        if isinstance(res, Err):
            return _backend_error(ResetStep.AWAITING_EMAIL, res.error)

        await self.store.set(ResetFlowState(email=email))
        logger.info("Password reset requested for %s", self.store.scope)
        text = res.value.message or "Код для сброса пароля отправлен на почту."
        return StepOutcome(step=ResetStep.AWAITING_OTP, notice=Notice("info", f"📧 {text}"))

    async def resend_code(self) -> StepOutcome:
        guard = await self.enter(ResetStep.AWAITING_OTP)
        if guard.redirected:
            return guard
        state = await self.store.get()

        res = await self.client.safe_request_reset_password(state.email)
        if isinstance(res, Err):
            return _backend_error(ResetStep.AWAITING_OTP, res.error)

        await self.store.set(ResetFlowState(email=state.email))
        return StepOutcome(step=ResetStep.AWAITING_OTP, notice=Notice("info", "📧 Новый код отправлен."))

    async def verify_otp(self, code: str) -> StepOutcome:
        guard = await self.enter(ResetStep.AWAITING_OTP)
        if guard.redirected:
            return guard
        code = (code or "").strip()
        if not _is_code(code):
            return _error(ResetStep.AWAITING_OTP, "❌ Код должен состоять из 4–8 цифр.")

        res = await self.client.safe_verify_reset_password_token(code)
        if isinstance(res, Err):
            return _backend_error(ResetStep.AWAITING_OTP, res.error)

        # email перечитываем: за время запроса его могли сменить
        state = await self.store.get()
        if not state.email:
            return _error(ResetStep.AWAITING_EMAIL, EMAIL_MISSING, redirected=True)
        await self.store.set(ResetFlowState(email=state.email, verified_otp=code))
        return StepOutcome(step=ResetStep.AWAITING_NEW_PASSWORD, notice=Notice("success", "✅ Код подтверждён."))

    async def confirm_reset(self, new_password: str, confirm_password: str) -> StepOutcome:
        step = ResetStep.AWAITING_NEW_PASSWORD
        state = await self.store.get()

        if not state.email:
            return _error(ResetStep.AWAITING_EMAIL, EMAIL_MISSING, redirected=True)
        if not new_password or not confirm_password:
            return _error(step, "❌ Введи новый пароль и его подтверждение.")
        if new_password != confirm_password:
            return _error(step, "❌ Пароли не совпадают.")
        if len(new_password) < self.min_password_length:
            return _error(step, f"❌ Пароль должен быть не короче {self.min_password_length} символов.")
        if not state.verified_otp:
            return _error(ResetStep.AWAITING_OTP, OTP_MISSING, redirected=True)

        res = await self.client.safe_verify_reset_password(state.email, state.verified_otp, new_password)
        if isinstance(res, Err) and not _succeeded(res.error):
            if not res.error.is_transport:
                # отклонённый код нельзя использовать повторно
                await self.store.clear_otp()
            logger.info("Password reset rejected for %s: %s", self.store.scope, res.error.status)
            return _backend_error(step, res.error)

        # 2xx: пароль сменён, даже если ответ не разобрался
        await self.store.clear()
        logger.info("Password reset completed for %s", self.store.scope)
        tokens = None if isinstance(res, Err) else res.value.tokens()
        return await self._auto_login(tokens)

    async def _auto_login(self, tokens: Optional[TokenPair]) -> StepOutcome:
        if tokens is None:
            logger.info("No tokens after password reset for %s, manual login required", self.store.scope)
            ok = False
        else:
            try:
                ok = await self.bridge.establish_session(tokens)
            except Exception:
                logger.exception("Auto-login after password reset failed for %s", self.store.scope)
                ok = False

        if ok:
            return StepOutcome(
                step=ResetStep.COMPLETE,
                notice=Notice("success", "🎉 Пароль успешно изменён! Вы авторизованы."),
                landing=Landing.HOME,
            )
        return StepOutcome(
            step=ResetStep.COMPLETE,
            notice=Notice("info", "⚠️ Пароль изменён. Войди с новым паролем, чтобы продолжить."),
            landing=Landing.LOGIN,
        )
