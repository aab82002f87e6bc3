"""Spin and claim orchestration tests."""

import logging

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from prizewheel.coordinator import CODE_ALPHABET, make_code
from prizewheel.errors import (
    AllocationRaceError, NoEligiblePrizesError, NoPendingPrizeError, NotAWinError,
    ParticipantNotFoundError, QuotaExhaustedError, StockRaceError,
)
from prizewheel.inventory import PrizeInventory
from prizewheel.models import Claim, Participant, PrizeSlot, SpinRecord
from prizewheel.prizes import SlotConfig
from prizewheel.redemption import RedemptionDesk


class RacingInventory(PrizeInventory):
    """Loses the stock race a fixed number of times before behaving."""

    def __init__(self, losses, rng):
        super().__init__(rng)
        self.losses = losses
        self.calls = 0

    def select_and_reserve(self, db):
        self.calls += 1
        slot = super().select_and_reserve(db)
        if self.calls <= self.losses:
            raise StockRaceError()
        return slot


def _count(session_factory, model):
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def win_coordinator(make_coordinator, seed_slots, fixed_rng):
    """Draw of 0.0 always lands on the first weighted slot (VOUCHER)."""
    seed_slots()
    return make_coordinator(rng=fixed_rng(0.0))


@pytest.fixture
def lose_coordinator(make_coordinator, seed_slots, fixed_rng):
    seed_slots()
    return make_coordinator(rng=fixed_rng(0.99))


class TestSpin:
    def test_unknown_participant(self, win_coordinator):
        with pytest.raises(ParticipantNotFoundError):
            win_coordinator.spin("nope")

    def test_winning_spin(self, win_coordinator, register, load, slot_by_kind, session_factory):
        pid = register()
        out = win_coordinator.spin(pid)

        assert out.category == "VOUCHER"
        assert out.title == "Voucher 10%"
        assert out.slot_index == 0
        assert out.is_win is True

        slot = slot_by_kind("VOUCHER")
        assert slot.remaining_stock == 4
        p = load(Participant, pid)
        assert p.last_prize_slot_id == slot.id
        assert p.last_spin_at is not None
        assert _count(session_factory, SpinRecord) == 1

    def test_losing_spin_is_a_valid_outcome(self, lose_coordinator, register):
        out = lose_coordinator.spin(register())
        assert out.category == "LOSE"
        assert out.is_win is False

    def test_spin_bonus_spin_scenario(self, win_coordinator, register, load):
        pid = register()
        win_coordinator.spin(pid)
        with pytest.raises(QuotaExhaustedError):
            win_coordinator.spin(pid)

        win_coordinator.grant_bonus(pid)
        assert load(Participant, pid).free_spins == 1
        win_coordinator.spin(pid)
        assert load(Participant, pid).free_spins == 0

    def test_accepted_spins_never_exceed_base_plus_bonus(self, win_coordinator, register, session_factory):
        pid = register()
        win_coordinator.grant_bonus(pid)
        accepted = 0
        for _ in range(5):
            try:
                win_coordinator.spin(pid)
                accepted += 1
            except QuotaExhaustedError:
                pass
        assert accepted == 2
        assert _count(session_factory, SpinRecord) == 2

    def test_single_stock_race_is_retried(self, make_coordinator, seed_slots, fixed_rng, register, load, slot_by_kind):
        seed_slots()
        inv = RacingInventory(losses=1, rng=fixed_rng(0.0))
        coord = make_coordinator(inventory=inv)
        pid = register()

        out = coord.spin(pid)
        assert out.category == "VOUCHER"
        assert inv.calls == 2
        assert load(Participant, pid).free_spins == 0
        # the rolled-back attempt must not have consumed stock
        assert slot_by_kind("VOUCHER").remaining_stock == 4

    def test_persistent_race_escalates_and_rolls_back(
            self, make_coordinator, seed_slots, fixed_rng, register, load, slot_by_kind, session_factory):
        seed_slots()
        inv = RacingInventory(losses=10, rng=fixed_rng(0.0))
        coord = make_coordinator(inventory=inv)
        pid = register()

        with pytest.raises(AllocationRaceError):
            coord.spin(pid)

        assert inv.calls == 2  # one retry only
        p = load(Participant, pid)
        assert p.free_spins == 1
        assert p.quota_day is None
        assert p.last_prize_slot_id is None
        assert slot_by_kind("VOUCHER").remaining_stock == 5
        assert _count(session_factory, SpinRecord) == 0

    def test_no_eligible_prizes_is_critical_and_keeps_quota(
            self, make_coordinator, seed_slots, register, load, caplog):
        seed_slots([SlotConfig(0, "FIRST", "Racket", 1, 0), SlotConfig(1, "LOSE", "Lose", None, 0)])
        coord = make_coordinator()
        pid = register()

        with caplog.at_level(logging.CRITICAL, logger="prizewheel.coordinator"):
            with pytest.raises(NoEligiblePrizesError):
                coord.spin(pid)
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)
        assert load(Participant, pid).free_spins == 1

    def test_exhausted_stock_falls_through_to_other_slots(
            self, make_coordinator, seed_slots, fixed_rng, register, session_factory):
        seed_slots([SlotConfig(0, "LAST", "Last unit", 1, 100), SlotConfig(1, "LOSE", "Lose", None, 1)])
        coord = make_coordinator(rng=fixed_rng(0.0))
        first, second = register(), register()

        assert coord.spin(first).category == "LAST"
        assert coord.spin(second).category == "LOSE"
        with session_factory() as db:
            assert db.execute(select(PrizeSlot.remaining_stock).where(PrizeSlot.kind == "LAST")).scalar_one() == 0


class TestClaim:
    def test_unknown_participant(self, win_coordinator):
        with pytest.raises(ParticipantNotFoundError):
            win_coordinator.claim("nope")

    def test_claim_without_spin(self, win_coordinator, register):
        with pytest.raises(NoPendingPrizeError):
            win_coordinator.claim(register())

    def test_no_win_never_produces_a_claim(self, lose_coordinator, register, session_factory):
        pid = register()
        lose_coordinator.spin(pid)
        with pytest.raises(NotAWinError):
            lose_coordinator.claim(pid)
        assert _count(session_factory, Claim) == 0

    def test_claim_issues_code(self, win_coordinator, register, load, clock):
        pid = register()
        win_coordinator.spin(pid)
        receipt = win_coordinator.claim(pid)

        assert receipt.code.startswith("GIFT-")
        assert len(receipt.code) == len("GIFT-") + 8
        assert receipt.title == "Voucher 10%"
        assert receipt.category == "VOUCHER"
        assert receipt.created is True

        claim = load(Claim, receipt.code)
        assert claim.participant_id == pid
        assert claim.claim_day == clock.today()
        assert load(Participant, pid).last_claim_day == clock.today()

    def test_claim_is_idempotent_within_a_day(self, win_coordinator, register, session_factory):
        pid = register()
        win_coordinator.spin(pid)
        first = win_coordinator.claim(pid)
        second = win_coordinator.claim(pid)

        assert second.code == first.code
        assert second.created is False
        assert _count(session_factory, Claim) == 1

    def test_same_day_reclaim_returns_existing_code_after_later_spin(
            self, make_coordinator, seed_slots, fixed_rng, register, session_factory):
        seed_slots()
        pid = register()
        first = make_coordinator(rng=fixed_rng(0.0))
        first.spin(pid)
        code = first.claim(pid).code

        first.grant_bonus(pid)
        losing = make_coordinator(rng=fixed_rng(0.99))
        losing.spin(pid)
        assert losing.claim(pid).code == code
        assert _count(session_factory, Claim) == 1

    def test_wins_on_different_days_get_different_codes(self, win_coordinator, register, now, session_factory):
        pid = register()
        win_coordinator.spin(pid)
        day1 = win_coordinator.claim(pid)

        now.advance(days=1)
        win_coordinator.spin(pid)
        day2 = win_coordinator.claim(pid)

        assert day1.code != day2.code
        assert _count(session_factory, Claim) == 2

    def test_one_win_is_not_claimed_again_next_day(
            self, win_coordinator, register, now, load, slot_by_kind, session_factory):
        pid = register()
        win_coordinator.spin(pid)
        win_coordinator.claim(pid)
        assert load(Participant, pid).last_prize_slot_id is None

        now.advance(days=1)
        with pytest.raises(NoPendingPrizeError):
            win_coordinator.claim(pid)
        assert _count(session_factory, Claim) == 1
        assert slot_by_kind("VOUCHER").remaining_stock == 4

    def test_claim_keeps_title_captured_at_issuance(self, win_coordinator, register, session_factory):
        pid = register()
        win_coordinator.spin(pid)
        receipt = win_coordinator.claim(pid)
        with session_factory() as db:
            db.execute(update(PrizeSlot).where(PrizeSlot.kind == "VOUCHER").values(title="Renamed"))
            db.commit()

        view = RedemptionDesk(session_factory).check_code(receipt.code)
        assert view.title == "Voucher 10%"

    def test_code_collision_is_regenerated(self, make_coordinator, seed_slots, fixed_rng, register):
        seed_slots()
        codes = iter(["GIFT-AAAA2222", "GIFT-AAAA2222", "GIFT-BBBB3333"])
        coord = make_coordinator(rng=fixed_rng(0.0), code_factory=lambda: next(codes))
        a, b = register(), register()
        coord.spin(a)
        coord.spin(b)

        assert coord.claim(a).code == "GIFT-AAAA2222"
        assert coord.claim(b).code == "GIFT-BBBB3333"

    def test_other_integrity_errors_are_not_retried(self, win_coordinator, register, monkeypatch):
        pid = register()
        win_coordinator.spin(pid)
        calls = []

        def broken_claim(participant_id, code):
            calls.append(code)
            raise IntegrityError("INSERT INTO claims", {}, Exception("FOREIGN KEY constraint failed"))

        monkeypatch.setattr(win_coordinator, "_claim_once", broken_claim)
        with pytest.raises(IntegrityError):
            win_coordinator.claim(pid)
        assert len(calls) == 1


def test_make_code_alphabet():
    code = make_code("GIFT-", 8)
    assert code.startswith("GIFT-")
    assert all(ch in CODE_ALPHABET for ch in code[5:])
