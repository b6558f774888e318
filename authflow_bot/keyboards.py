from aiogram.types import ReplyKeyboardMarkup, KeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def main_menu_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="🔐 Авторизация"), KeyboardButton(text="🔑 Сброс пароля")],
            [KeyboardButton(text="ℹ️ Помощь")],
        ],
        resize_keyboard=True,
    )


def section_auth_kb() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="Войти по email", callback_data="auth:login")
    b.button(text="Статус", callback_data="auth:me")
    b.button(text="Обновить сессию", callback_data="auth:refresh")
    b.button(text="Выйти", callback_data="auth:logout")
    b.button(text="⬅️ Назад", callback_data="back:main")
    b.adjust(1)
    return b.as_markup()


def section_reset_kb() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="Начать сброс пароля", callback_data="reset:start")
    b.button(text="Отправить код ещё раз", callback_data="reset:resend")
    b.button(text="Отменить", callback_data="reset:cancel")
    b.button(text="⬅️ Назад", callback_data="back:main")
    b.adjust(1)
    return b.as_markup()
