"""Spin and claim orchestration.

A spin is one database transaction: spend a quota unit, draw and reserve a
slot, record it as the participant's pending prize. If the reservation loses
a stock race the whole transaction rolls back (the quota unit comes back)
and the draw is retried a bounded number of times.

A claim mints at most one code per participant per reference day and
consumes the pending prize, so one winning spin never yields two codes. The
``(participant_id, claim_day)`` unique constraint settles concurrent
double-submits: the loser rolls back and returns the winner's code.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .clock import ReferenceClock
from .config import (
    BASE_DAILY_SPINS, CLAIM_CODE_LENGTH, CLAIM_CODE_PREFIX, NO_WIN_KIND, SPIN_RACE_RETRIES,
)
from .errors import (
    AllocationRaceError, NoEligiblePrizesError, NoPendingPrizeError, NotAWinError,
    ParticipantNotFoundError, StockRaceError,
)
from .inventory import PrizeInventory
from .models import Claim, Participant, PrizeSlot, SpinRecord
from .quota import QuotaTracker, SpinAvailability

log = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 5


def make_code(prefix: str = CLAIM_CODE_PREFIX, length: int = CLAIM_CODE_LENGTH) -> str:
    return prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class SpinOutcome:
    category: str
    title: str
    slot_index: int
    is_win: bool


@dataclass(frozen=True)
class ClaimReceipt:
    code: str
    title: str
    category: str
    created: bool = True  # False when today's existing code was returned


class SpinCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ReferenceClock] = None,
        inventory: Optional[PrizeInventory] = None,
        quota: Optional[QuotaTracker] = None,
        race_retries: int = SPIN_RACE_RETRIES,
        no_win_kind: str = NO_WIN_KIND,
        code_factory: Callable[[], str] = make_code,
    ):
        self.session_factory = session_factory
        self.clock = clock or ReferenceClock()
        self.inventory = inventory or PrizeInventory()
        self.quota = quota or QuotaTracker(self.clock, BASE_DAILY_SPINS)
        self.race_retries = race_retries
        self.no_win_kind = no_win_kind
        self.code_factory = code_factory

    # ------------------------
    # helpers
    # ------------------------
    @staticmethod
    def _participant(db: Session, participant_id: str) -> Participant:
        p = db.get(Participant, participant_id) if participant_id else None
        if p is None:
            raise ParticipantNotFoundError()
        return p

    def _receipt(self, claim: Claim, created: bool) -> ClaimReceipt:
        return ClaimReceipt(code=claim.code, title=claim.title, category=claim.kind, created=created)

    def _existing_claim(self, db: Session, participant_id: str, day) -> Optional[Claim]:
        return db.execute(
            select(Claim).where(Claim.participant_id == participant_id, Claim.claim_day == day)
        ).scalars().first()

    # ------------------------
    # spin
    # ------------------------
    def _spin_once(self, participant_id: str) -> SpinOutcome:
        with self.session_factory() as db, db.begin():
            p = self._participant(db, participant_id)
            self.quota.consume_spin(db, p)
            try:
                slot = self.inventory.select_and_reserve(db)
            except NoEligiblePrizesError as e:
                log.critical("Campaign misconfigured, no prize can be drawn: %s", e)
                raise

            now = self.clock.now()
            p.last_prize_slot_id = slot.id
            p.last_spin_at = now
            db.add(SpinRecord(
                participant_id=p.id,
                slot_id=slot.id,
                kind=slot.kind,
                reference_day=self.clock.today(),
                spun_at=now,
            ))
            outcome = SpinOutcome(
                category=slot.kind,
                title=slot.title,
                slot_index=slot.slot_index,
                is_win=slot.kind != self.no_win_kind,
            )
        return outcome

    def spin(self, participant_id: str) -> SpinOutcome:
        attempts = self.race_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                outcome = self._spin_once(participant_id)
            except StockRaceError:
                # transaction already rolled back, quota unit restored
                log.warning("Spin %s/%s for %s lost a stock race", attempt, attempts, participant_id)
                continue
            if outcome.is_win:
                log.info("Participant %s won %s (slot %s)", participant_id, outcome.category, outcome.slot_index)
            return outcome
        raise AllocationRaceError()

    # ------------------------
    # quota passthroughs
    # ------------------------
    def grant_bonus(self, participant_id: str) -> dict:
        with self.session_factory() as db, db.begin():
            p = self._participant(db, participant_id)
            self.quota.grant_bonus(db, p)
        return {"granted": True}

    def availability(self, participant_id: str) -> SpinAvailability:
        with self.session_factory() as db:
            return self.quota.peek(self._participant(db, participant_id))

    # ------------------------
    # claim
    # ------------------------
    def claim(self, participant_id: str) -> ClaimReceipt:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.code_factory()
            try:
                return self._claim_once(participant_id, code)
            except IntegrityError:
                # either a concurrent claim for today committed first, or the code collided
                with self.session_factory() as db:
                    existing = self._existing_claim(db, participant_id, self.clock.today())
                    if existing is not None:
                        return self._receipt(existing, created=False)
                    if db.get(Claim, code) is None:
                        raise
                log.warning("Claim code collision for %s, regenerating", participant_id)
        raise RuntimeError("could not generate a unique claim code")

    def _claim_once(self, participant_id: str, code: str) -> ClaimReceipt:
        today = self.clock.today()
        with self.session_factory() as db, db.begin():
            p = self._participant(db, participant_id)
            if p.last_claim_day == today:
                existing = self._existing_claim(db, p.id, today)
                if existing is not None:
                    return self._receipt(existing, created=False)

            # a claim consumes the pending prize
            if p.last_prize_slot_id is None:
                raise NoPendingPrizeError()

            slot = db.get(PrizeSlot, p.last_prize_slot_id)
            if slot is None:
                raise NoPendingPrizeError()
            if slot.kind == self.no_win_kind:
                raise NotAWinError()

            claim = Claim(
                code=code,
                participant_id=p.id,
                slot_id=slot.id,
                kind=slot.kind,
                title=slot.title,
                claim_day=today,
                created_at=self.clock.now(),
            )
            db.add(claim)
            p.last_claim_day = today
            p.last_prize_slot_id = None
            db.flush()
            receipt = self._receipt(claim, created=True)

        log.info("Issued code %s to %s for %s", receipt.code, participant_id, receipt.category)
        return receipt


def build_coordinator(session_factory: Optional[sessionmaker] = None) -> SpinCoordinator:
    if session_factory is None:
        from .db import SessionLocal
        session_factory = SessionLocal
    return SpinCoordinator(session_factory)
