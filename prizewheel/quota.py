"""Per-participant daily spin quota.

The counter resets lazily: ``free_spins`` is only meaningful for the day
stored in ``quota_day``; any other day reads as the base allotment. Both
mutations below apply that rollover and their change in one conditional
UPDATE, so two concurrent requests can never both spend the last spin or
both take the bonus.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from .clock import ReferenceClock
from .config import BASE_DAILY_SPINS
from .errors import BonusAlreadyGrantedError, QuotaExhaustedError
from .models import Participant


@dataclass(frozen=True)
class SpinAvailability:
    spins_remaining: int
    can_claim_bonus: bool


class QuotaTracker:
    def __init__(self, clock: ReferenceClock, base_spins: int = BASE_DAILY_SPINS):
        self.clock = clock
        self.base_spins = base_spins

    def _effective_spins(self, today):
        return case(
            (Participant.quota_day == today, Participant.free_spins),
            else_=self.base_spins,
        )

    def consume_spin(self, db: Session, participant: Participant) -> int:
        """Spend one spin for today. Returns spins left; caller commits."""
        today = self.clock.today()
        res = db.execute(
            update(Participant)
            .where(Participant.id == participant.id, self._effective_spins(today) > 0)
            .values(free_spins=self._effective_spins(today) - 1, quota_day=today)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise QuotaExhaustedError()
        db.refresh(participant)
        return participant.free_spins

    def grant_bonus(self, db: Session, participant: Participant) -> int:
        """Add today's one extra spin. Returns spins left; caller commits."""
        today = self.clock.today()
        res = db.execute(
            update(Participant)
            .where(
                Participant.id == participant.id,
                or_(Participant.bonus_day.is_(None), Participant.bonus_day != today),
            )
            .values(
                free_spins=self._effective_spins(today) + 1,
                quota_day=today,
                bonus_day=today,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise BonusAlreadyGrantedError()
        db.refresh(participant)
        return participant.free_spins

    def peek(self, participant: Participant) -> SpinAvailability:
        today = self.clock.today()
        spins = participant.free_spins if participant.quota_day == today else self.base_spins
        return SpinAvailability(
            spins_remaining=max(spins, 0),
            can_claim_bonus=participant.bonus_day != today,
        )
