"""Weighted, depleting prize inventory.

Selection reads every eligible slot once per spin; only the winner's own
stock is re-checked, by a conditional UPDATE that refuses to go below zero.
A stale view of the other slots therefore never over-allocates anything.
"""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from .errors import NoEligiblePrizesError, StockRaceError
from .models import PrizeSlot

log = logging.getLogger(__name__)


class PrizeInventory:
    def __init__(self, rng: Optional[random.Random] = None):
        # any uniform source works; tests pass a seeded random.Random
        self.rng = rng or random.SystemRandom()

    def eligible_slots(self, db: Session) -> list[PrizeSlot]:
        stmt = (
            select(PrizeSlot)
            .where(
                PrizeSlot.enabled.is_(True),
                or_(PrizeSlot.remaining_stock.is_(None), PrizeSlot.remaining_stock > 0),
            )
            .order_by(PrizeSlot.slot_index)
        )
        return list(db.execute(stmt).scalars().all())

    def pick(self, slots: Sequence[PrizeSlot]) -> PrizeSlot:
        """Weighted roulette over ``slots`` (already filtered and ordered)."""
        weighted = [s for s in slots if s.weight > 0]
        total = sum(s.weight for s in weighted)
        if total <= 0:
            raise NoEligiblePrizesError(
                f"total weight is 0 across {len(slots)} eligible slot(s)"
            )

        r = self.rng.random() * total
        for slot in weighted:
            r -= slot.weight
            if r <= 0:
                return slot
        # float rounding can leave a sliver past the last slot
        return weighted[-1]

    def reserve(self, db: Session, slot: PrizeSlot) -> PrizeSlot:
        """Take one unit of ``slot``; unlimited slots pass through untouched."""
        if not slot.is_limited:
            return slot

        res = db.execute(
            update(PrizeSlot)
            .where(PrizeSlot.id == slot.id, PrizeSlot.remaining_stock > 0)
            .values(remaining_stock=PrizeSlot.remaining_stock - 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            log.warning("Stock race on slot %s (%s)", slot.slot_index, slot.kind)
            raise StockRaceError(f"slot {slot.slot_index} ran out during allocation")

        db.refresh(slot)
        return slot

    def select_and_reserve(self, db: Session) -> PrizeSlot:
        slot = self.pick(self.eligible_slots(db))
        return self.reserve(db, slot)

    def snapshot(self, db: Session) -> list[PrizeSlot]:
        return list(db.execute(select(PrizeSlot).order_by(PrizeSlot.slot_index)).scalars().all())
