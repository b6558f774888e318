from __future__ import annotations

import logging
from typing import Dict, List

from .api_client import ApiClient
from .errors import Err
from .models import ChatSession
from .reset_flow import (
    NETWORK_ERROR,
    Landing,
    ResetFlowController,
    ResetFlowStore,
    ResetStep,
    StepOutcome,
)
from .session_bridge import TokenManagerBridge
from .storage import Storage, load_model, save_model
from .tokens import TokenManager

logger = logging.getLogger(__name__)

MENU = "menu"
LOGIN = "login"
RESET_VIEWS = {s.value for s in ResetStep if s != ResetStep.COMPLETE}

PROMPTS = {
    LOGIN: "Введи: <email> <пароль>",
    ResetStep.AWAITING_EMAIL.value: "Введи email, указанный при регистрации:",
    ResetStep.AWAITING_OTP.value: "Введи код из письма (новый код: /resend):",
    ResetStep.AWAITING_NEW_PASSWORD.value: "Введи новый пароль и повтор через пробел: <пароль> <повтор>",
}

HELP = [
    "Доступные команды:",
    "/login <email> <пароль> — вход",
    "/reset — сброс пароля",
    "/me — статус",
    "/refresh — обновить сессию",
    "/logout — выход",
    "/cancel — отменить текущее действие",
]


def _cmd(text: str) -> str:
    t = (text or "").strip()
    if not t.startswith("/"):
        return ""
    return t.split()[0].lower()


class BotService:
    """Chat front door. Every message is a fresh page load: the current
    view is read from storage, never from memory."""

    def __init__(
        self,
        storage: Storage,
        client: ApiClient,
        login_ttl_sec: int = 600,
        reset_ttl_sec: int = 1800,
        min_password_length: int = 6,
    ):
        self.storage = storage
        self.client = client
        self.login_ttl = login_ttl_sec
        self.reset_ttl = reset_ttl_sec
        self.min_password_length = min_password_length
        # refresh держим single-flight на чат, поэтому менеджеры кешируются
        self._tokens: Dict[int, TokenManager] = {}

    def tokens(self, chat_id: int) -> TokenManager:
        tm = self._tokens.get(chat_id)
        if tm is None:
            tm = TokenManager(self.storage, self.client, scope=str(chat_id))
            self._tokens[chat_id] = tm
        return tm

    def reset_flow(self, chat_id: int) -> ResetFlowController:
        return ResetFlowController(
            self.client,
            ResetFlowStore(self.storage, str(chat_id), self.reset_ttl),
            TokenManagerBridge(self.tokens(chat_id)),
            min_password_length=self.min_password_length,
        )

    async def handle(self, chat_id: int, text: str) -> List[str]:
        text = (text or "").strip()
        cmd = _cmd(text)
        view = await self._load_view(chat_id)

        if cmd in ("/start", "/menu", "/help"):
            return HELP

        if cmd == "/cancel":
            if view in RESET_VIEWS:
                await self.reset_flow(chat_id).restart()
            await self._save_view(chat_id, MENU)
            return ["Действие отменено."]

        if cmd == "/reset":
            await self.reset_flow(chat_id).restart()
            return ["Сброс пароля."] + await self._open_view(chat_id, ResetStep.AWAITING_EMAIL.value)

        if cmd == "/resend":
            outcome = await self.reset_flow(chat_id).resend_code()
            return await self._apply(chat_id, view, outcome)

        if cmd == "/login":
            parts = text.split(maxsplit=2)
            if len(parts) == 3:
                return await self._login(chat_id, parts[1], parts[2])
            return await self._open_view(chat_id, LOGIN)

        if cmd == "/logout":
            await self.tokens(chat_id).clear_tokens()
            await self._save_view(chat_id, MENU)
            return ["Сеанс завершён."]

        if cmd == "/refresh":
            if await self.tokens(chat_id).refresh():
                return ["🔄 Сессия обновлена."]
            return ["Сессия истекла. Войди заново: /login или /reset"]

        if cmd == "/me":
            if await self.tokens(chat_id).get_access_token():
                return ["Статус: Авторизован ✅"]
            if view in RESET_VIEWS:
                return ["Статус: Идёт сброс пароля."]
            return ["Статус: Не авторизован."]

        if cmd:
            return ["Неизвестная команда. /help"]

        if view == LOGIN:
            email, _, password = text.partition(" ")
            if not email or not password.strip():
                return [PROMPTS[LOGIN]]
            return await self._login(chat_id, email, password.strip())

        if view in RESET_VIEWS:
            return await self._reset_input(chat_id, ResetStep(view), text)

        if not await self.tokens(chat_id).get_access_token():
            return ["Ты не авторизован.", "Варианты: /login или /reset"]
        return ["Я понимаю только команды 🙂", "Команды: /help"]

    async def _reset_input(self, chat_id: int, step: ResetStep, text: str) -> List[str]:
        flow = self.reset_flow(chat_id)
        guard = await flow.enter(step)
        if guard.redirected:
            return await self._apply(chat_id, step.value, guard)

        if step == ResetStep.AWAITING_EMAIL:
            outcome = await flow.request_reset(text)
        elif step == ResetStep.AWAITING_OTP:
            outcome = await flow.verify_otp(text)
        else:
            new_password, _, confirm_password = text.partition(" ")
            outcome = await flow.confirm_reset(new_password, confirm_password.strip())
        return await self._apply(chat_id, step.value, outcome)

    async def _apply(self, chat_id: int, view: str, outcome: StepOutcome) -> List[str]:
        messages = [outcome.notice.text] if outcome.notice else []

        if outcome.step == ResetStep.COMPLETE:
            if outcome.landing == Landing.HOME:
                await self._save_view(chat_id, MENU)
                return messages + ["Команды: /me, /logout, /help"]
            return messages + await self._open_view(chat_id, LOGIN)

        if outcome.step.value != view:
            return messages + await self._open_view(chat_id, outcome.step.value)
        await self._save_view(chat_id, view)
        return messages

    async def _login(self, chat_id: int, email: str, password: str) -> List[str]:
        res = await self.client.safe_login(email, password)
        if isinstance(res, Err):
            if res.error.is_transport:
                return [NETWORK_ERROR]
            return [f"❌ {res.error.message}"]
        await self.tokens(chat_id).set_tokens(res.value.access_token, res.value.refresh_token, res.value.expires_in)
        await self._save_view(chat_id, MENU)
        return ["✅ Вы авторизованы!", "Команды: /me, /logout, /help"]

    async def _open_view(self, chat_id: int, view: str) -> List[str]:
        messages: List[str] = []
        if view in RESET_VIEWS:
            guard = await self.reset_flow(chat_id).enter(ResetStep(view))
            if guard.redirected:
                messages.append(guard.notice.text)
                view = guard.step.value
        await self._save_view(chat_id, view)
        if view in PROMPTS:
            messages.append(PROMPTS[view])
        return messages

    async def _load_view(self, chat_id: int) -> str:
        s = await load_model(self.storage, f"chat:{chat_id}", ChatSession)
        return s.view if s else MENU

    async def _save_view(self, chat_id: int, view: str) -> None:
        await save_model(self.storage, f"chat:{chat_id}", ChatSession(view=view), ttl_sec=self.login_ttl)
