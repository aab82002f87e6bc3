# prizewheel/bot/handlers.py
from __future__ import annotations

import logging
from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command
from aiogram.types import Message

from ..anti_fraud import looks_like_fake, rate_limiter
from ..config import RATE_LIMIT_PER_MINUTE
from ..coordinator import ClaimReceipt, SpinCoordinator, SpinOutcome, build_coordinator
from ..errors import (
    AllocationRaceError, BonusAlreadyGrantedError, NoEligiblePrizesError, NoPendingPrizeError,
    NotAWinError, ParticipantNotFoundError, PrizeWheelError, QuotaExhaustedError, RegistrationError,
)
from ..participants import register_or_touch
from ..quota import SpinAvailability
from .keyboards import BTN_BONUS, BTN_CLAIM, BTN_SPIN, BTN_STATUS, player_root_kb

router = Router()
log = logging.getLogger(__name__)

# ------------------------
# Coordinator (swapped out in tests)
# ------------------------
_COORDINATOR: Optional[SpinCoordinator] = None

def get_coordinator() -> SpinCoordinator:
    global _COORDINATOR
    if _COORDINATOR is None:
        _COORDINATOR = build_coordinator()
    return _COORDINATOR

def set_coordinator(coordinator: Optional[SpinCoordinator]) -> None:
    global _COORDINATOR
    _COORDINATOR = coordinator

# ------------------------
# Texts
# ------------------------
ERROR_TEXT = {
    ParticipantNotFoundError.code: "⚠️ Bạn chưa đăng ký. Gõ /start để bắt đầu.",
    RegistrationError.code: "⚠️ Không thể đăng ký tài khoản này.",
    QuotaExhaustedError.code: "⛔ Bạn đã hết lượt quay hôm nay. Hãy thử ➕ Thêm lượt quay hoặc quay lại vào ngày mai!",
    BonusAlreadyGrantedError.code: "⚠️ Bạn đã nhận lượt quay thêm hôm nay rồi.",
    AllocationRaceError.code: "⏳ Quá nhiều người đang quay, vui lòng thử lại.",
    NoPendingPrizeError.code: "🎡 Bạn chưa quay. Bấm 🎡 Quay thưởng trước nhé!",
    NotAWinError.code: "😢 Lượt quay gần nhất chưa trúng quà, không có mã để nhận.",
    NoEligiblePrizesError.code: "🛠 Vòng quay đang tạm dừng. Vui lòng quay lại sau.",
}
RATE_LIMITED_TEXT = "⏳ Bạn thao tác quá nhanh, chờ một chút nhé."
FAKE_TEXT = "⛔ Tài khoản này không thể tham gia."

def error_text(e: PrizeWheelError) -> str:
    return ERROR_TEXT.get(e.code, "⚠️ Có lỗi xảy ra, vui lòng thử lại.")

def format_spin(out: SpinOutcome) -> str:
    if not out.is_win:
        return f"🎡 Ô số {out.slot_index}: <b>{out.title}</b>"
    return (
        f"🎉 Chúc mừng! Bạn trúng <b>{out.title}</b> (ô số {out.slot_index}).\n"
        f"Bấm {BTN_CLAIM} để lấy mã."
    )

def format_claim(receipt: ClaimReceipt) -> str:
    return f"🎁 Mã quà của bạn: <code>{receipt.code}</code>\nQuà: <b>{receipt.title}</b>"

def format_status(av: SpinAvailability) -> str:
    bonus = "còn" if av.can_claim_bonus else "đã dùng"
    return f"ℹ️ Lượt quay còn lại hôm nay: <b>{av.spins_remaining}</b>\nLượt thêm: {bonus}"

def external_id_of(user) -> str:
    return f"tg:{user.id}"

def resolve_participant(message: Message) -> Optional[str]:
    """Return the participant id for the sender, registering on first contact."""
    user = message.from_user
    if looks_like_fake(user):
        return None
    coord = get_coordinator()
    return register_or_touch(
        coord.session_factory,
        name=user.first_name or user.username or str(user.id),
        external_id=external_id_of(user),
        base_spins=coord.quota.base_spins,
    )

# ------------------------
# /start
# ------------------------
@router.message(Command("start"))
async def start(message: Message):
    pid = resolve_participant(message)
    if pid is None:
        await message.answer(FAKE_TEXT)
        return
    log.info("Telegram user %s -> participant %s", message.from_user.id, pid)
    await message.answer(
        "🎡 Chào mừng đến vòng quay may mắn!\nMỗi ngày bạn có 1 lượt quay miễn phí.",
        reply_markup=player_root_kb(),
    )

# ------------------------
# PLAYER ACTIONS
# ------------------------
@router.message(F.text == BTN_SPIN)
async def spin(message: Message):
    if not rate_limiter.allow(f"tg-spin:{message.from_user.id}", RATE_LIMIT_PER_MINUTE, 60):
        await message.answer(RATE_LIMITED_TEXT)
        return
    pid = resolve_participant(message)
    if pid is None:
        await message.answer(FAKE_TEXT)
        return
    try:
        out = get_coordinator().spin(pid)
    except PrizeWheelError as e:
        await message.answer(error_text(e))
        return
    await message.answer(format_spin(out))

@router.message(F.text == BTN_CLAIM)
async def claim(message: Message):
    if not rate_limiter.allow(f"tg-claim:{message.from_user.id}", RATE_LIMIT_PER_MINUTE, 60):
        await message.answer(RATE_LIMITED_TEXT)
        return
    pid = resolve_participant(message)
    if pid is None:
        await message.answer(FAKE_TEXT)
        return
    try:
        receipt = get_coordinator().claim(pid)
    except PrizeWheelError as e:
        await message.answer(error_text(e))
        return
    await message.answer(format_claim(receipt))

@router.message(F.text == BTN_BONUS)
async def bonus(message: Message):
    pid = resolve_participant(message)
    if pid is None:
        await message.answer(FAKE_TEXT)
        return
    try:
        get_coordinator().grant_bonus(pid)
    except PrizeWheelError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"✅ Bạn được thêm 1 lượt quay hôm nay! Bấm {BTN_SPIN}.")

@router.message(F.text == BTN_STATUS)
async def status(message: Message):
    pid = resolve_participant(message)
    if pid is None:
        await message.answer(FAKE_TEXT)
        return
    await message.answer(format_status(get_coordinator().availability(pid)))
