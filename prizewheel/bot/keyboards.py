# prizewheel/bot/keyboards.py
from aiogram.types import ReplyKeyboardMarkup, KeyboardButton

BTN_SPIN = "🎡 Quay thưởng"
BTN_CLAIM = "🎁 Nhận mã quà"
BTN_BONUS = "➕ Thêm lượt quay"
BTN_STATUS = "ℹ️ Lượt còn lại"

def player_root_kb():
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=BTN_SPIN)],
            [KeyboardButton(text=BTN_CLAIM), KeyboardButton(text=BTN_BONUS)],
            [KeyboardButton(text=BTN_STATUS)],
        ],
        resize_keyboard=True
    )
