"""Pytest configuration and fixtures.

Every test gets its own file-backed SQLite database (so thread-level
concurrency tests hit a real shared store) and a reference clock pinned to
10:00 on 2026-03-10 at UTC+7.
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from prizewheel.anti_fraud import rate_limiter
from prizewheel.clock import ReferenceClock
from prizewheel.coordinator import SpinCoordinator
from prizewheel.db import create_schema, make_engine, make_session_factory
from prizewheel.inventory import PrizeInventory
from prizewheel.models import Participant, PrizeSlot
from prizewheel.participants import register_or_touch
from prizewheel.prizes import SlotConfig, seed_prize_slots
from prizewheel.quota import QuotaTracker


class FakeNow:
    """Callable ``now`` that tests can move forward."""

    def __init__(self, start: datetime):
        self.value = start

    def __call__(self) -> datetime:
        return self.value

    def advance(self, **kwargs) -> None:
        self.value += timedelta(**kwargs)


class FixedRandom:
    """Always draws the same point; thread-safe stand-in for random.Random."""

    def __init__(self, value: float = 0.0):
        self.value = value

    def random(self) -> float:
        return self.value


WIN_OR_LOSE = [
    SlotConfig(0, "VOUCHER", "Voucher 10%", 5, 50),
    SlotConfig(1, "LOSE", "Better luck next time", None, 50),
]


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{(tmp_path / 'wheel.sqlite3').as_posix()}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def now():
    # 10:00 local time at UTC+7
    return FakeNow(datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def clock(now):
    return ReferenceClock(7, now_fn=now)


@pytest.fixture
def seed_slots(session_factory):
    def _seed(slots=WIN_OR_LOSE):
        with session_factory() as db:
            seed_prize_slots(db, slots)
            db.commit()
    return _seed


@pytest.fixture
def make_coordinator(session_factory, clock):
    def _make(rng=None, inventory=None, **kwargs):
        inventory = inventory or PrizeInventory(rng or random.Random(7))
        return SpinCoordinator(
            session_factory,
            clock=clock,
            inventory=inventory,
            quota=QuotaTracker(clock, base_spins=1),
            **kwargs,
        )
    return _make


@pytest.fixture
def register(session_factory):
    counter = {"n": 0}

    def _register(name="Lan", phone=None):
        counter["n"] += 1
        return register_or_touch(session_factory, name, phone=phone or f"09000000{counter['n']:02d}")
    return _register


@pytest.fixture
def load(session_factory):
    """Fresh read of a row, outside any test session."""
    def _load(model, key):
        with session_factory() as db:
            return db.get(model, key)
    return _load


@pytest.fixture
def slot_by_kind(session_factory):
    def _get(kind):
        from sqlalchemy import select
        with session_factory() as db:
            return db.execute(select(PrizeSlot).where(PrizeSlot.kind == kind)).scalars().first()
    return _get


@pytest.fixture
def set_participant(session_factory):
    def _set(pid, **fields):
        with session_factory() as db:
            p = db.get(Participant, pid)
            for k, v in fields.items():
                setattr(p, k, v)
            db.commit()
    return _set


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def fixed_rng():
    return FixedRandom
