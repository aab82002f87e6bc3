"""Prize catalog and one-time seeding of the prize slots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .config import NO_WIN_KIND
from .models import PrizeSlot

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotConfig:
    slot_index: int
    kind: str
    title: str
    total: Optional[int]  # None = unlimited
    weight: int
    enabled: bool = True


# Wheel order matters: slot_index is the segment the client animates to.
PRIZE_SLOTS: list[SlotConfig] = [
    SlotConfig(0, "FIRST", "Vợt Aspire (Giải nhất)", 1, 0),
    SlotConfig(1, "SECOND", "Giày Pickleball Aspire", 2, 3),
    SlotConfig(2, "THIRD", "Balo Pickleball", 5, 8),
    SlotConfig(3, "FOURTH", "Bóng Pickleball", 10, 15),
    SlotConfig(4, "VOUCHER_15", "Voucher 15%", 30, 100),
    SlotConfig(5, "VOUCHER_10", "Voucher 10%", 50, 150),
    SlotConfig(6, NO_WIN_KIND, "Chúc may mắn lần sau", None, 0),
    SlotConfig(7, NO_WIN_KIND, "Chúc may mắn lần sau", None, 30),
]


def seed_prize_slots(db: Session, catalog: Iterable[SlotConfig] = PRIZE_SLOTS, force: bool = False) -> int:
    """Insert the catalog if the table is empty (or always, when forced).

    Returns the number of slots inserted. Caller commits.
    """
    existing = db.execute(select(func.count()).select_from(PrizeSlot)).scalar_one()
    if existing and not force:
        return 0

    if existing:
        log.warning("Force reseed: dropping %s prize slots", existing)
        db.execute(delete(PrizeSlot))

    count = 0
    for s in catalog:
        if s.weight < 0:
            raise ValueError(f"slot {s.slot_index}: weight must be >= 0")
        if s.total is not None and s.total < 0:
            raise ValueError(f"slot {s.slot_index}: stock must be >= 0")
        db.add(PrizeSlot(
            slot_index=s.slot_index,
            kind=s.kind,
            title=s.title,
            total_stock=s.total,
            remaining_stock=s.total,
            weight=s.weight,
            enabled=s.enabled,
        ))
        count += 1
    db.flush()
    log.info("Seeded %s prize slots", count)
    return count
