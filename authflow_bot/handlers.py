from __future__ import annotations

import logging

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext

from .botlogic_api import BotLogicAPI
from .keyboards import main_menu_kb, section_auth_kb, section_reset_kb
from .states import InputState

router = Router()
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "👋 Привет! Я помогу войти в аккаунт или восстановить пароль.\n\n"
    "Навигация:\n"
    "• /menu — открыть меню\n"
    "• /reset — сброс пароля\n"
    "• /me — статус\n"
    "• /cancel — отменить текущее действие\n"
)

# ========= helpers =========

async def _set_action(state: FSMContext, action: str, prompt: str, extra: dict | None = None):
    data = {"action": action, "prompt": prompt}
    if extra:
        data.update(extra)

    await state.update_data(**data)
    await state.set_state(InputState.waiting_value)


async def _send_botlogic(msg: Message, api: BotLogicAPI, text: str):
    chat_id = msg.chat.id
    try:
        resp = await api.send_text(chat_id, text)

        if not resp:
            await msg.answer("✅ Готово.")
            return

        for line in resp:
            await msg.answer(line)

    except Exception as e:
        # текст не логируем: там может быть пароль или код
        logger.exception("BotLogic request failed. chat_id=%s error=%s", chat_id, e)
        await msg.answer("⚠️ Ошибка сервиса. Попробуй ещё раз чуть позже.")


# ========= MAIN MENU =========

@router.message(Command("start"))
@router.message(Command("menu"))
async def start_menu(m: Message):
    await m.answer("Главное меню:", reply_markup=main_menu_kb())


@router.message(Command("help"))
@router.message(F.text == "ℹ️ Помощь")
async def help_menu(m: Message):
    await m.answer(HELP_TEXT)


@router.message(F.text == "🔐 Авторизация")
async def menu_auth(m: Message):
    await m.answer("Раздел: Авторизация", reply_markup=section_auth_kb())


@router.message(F.text == "🔑 Сброс пароля")
async def menu_reset(m: Message):
    await m.answer("Раздел: Сброс пароля", reply_markup=section_reset_kb())


@router.callback_query(F.data == "back:main")
async def back_main(c: CallbackQuery):
    await c.answer()
    await c.message.answer("Главное меню:", reply_markup=main_menu_kb())


# ========= AUTH buttons =========

@router.callback_query(F.data == "auth:login")
async def auth_login(c: CallbackQuery, state: FSMContext):
    await c.answer()
    await _set_action(state, "auth:login", "Введи: <email> <пароль>")
    await c.message.answer("Введи: <email> <пароль>")


@router.callback_query(F.data == "auth:me")
async def auth_me(c: CallbackQuery, api: BotLogicAPI):
    await c.answer()
    await _send_botlogic(c.message, api, "/me")


@router.callback_query(F.data == "auth:refresh")
async def auth_refresh(c: CallbackQuery, api: BotLogicAPI):
    await c.answer()
    await _send_botlogic(c.message, api, "/refresh")


@router.callback_query(F.data == "auth:logout")
async def auth_logout(c: CallbackQuery, api: BotLogicAPI):
    await c.answer()
    await _send_botlogic(c.message, api, "/logout")


# ========= RESET buttons =========
# шаги сброса живут в botlogic, сюда приходит только ввод пользователя

@router.callback_query(F.data == "reset:start")
async def reset_start(c: CallbackQuery, state: FSMContext, api: BotLogicAPI):
    await c.answer()
    await state.clear()
    await _send_botlogic(c.message, api, "/reset")


@router.callback_query(F.data == "reset:resend")
async def reset_resend(c: CallbackQuery, api: BotLogicAPI):
    await c.answer()
    await _send_botlogic(c.message, api, "/resend")


@router.callback_query(F.data == "reset:cancel")
async def reset_cancel(c: CallbackQuery, state: FSMContext, api: BotLogicAPI):
    await c.answer()
    await state.clear()
    await _send_botlogic(c.message, api, "/cancel")


# ========= INPUT =========

@router.message(InputState.waiting_value)
async def on_value(m: Message, state: FSMContext, api: BotLogicAPI):
    data = await state.get_data()
    action = data.get("action")
    raw = (m.text or "").strip()

    if action == "auth:login":
        cmd = f"/login {raw}"
    else:
        cmd = raw

    await state.clear()
    await _send_botlogic(m, api, cmd)


# ========= fallback =========

@router.message(F.text)
async def forward_text(m: Message, api: BotLogicAPI):
    await _send_botlogic(m, api, m.text)


@router.message()
async def any_fallback(m: Message):
    await m.answer("Я понимаю только текст и кнопки меню 🙂\nОткрой /menu")
