from aiogram.fsm.state import State, StatesGroup


class InputState(StatesGroup):
    waiting_value = State()
