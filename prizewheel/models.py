from sqlalchemy import String, Integer, DateTime, Date, Boolean, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime
from .clock import utcnow
from .db import Base

class Participant(Base):
    __tablename__ = "participants"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    phone: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)  # e.g. tg:<user id>
    sex: Mapped[str] = mapped_column(String(16), default="other")
    job: Mapped[str] = mapped_column(String(64), default="other")
    free_spins: Mapped[int] = mapped_column(Integer, default=1)
    quota_day: Mapped[date | None] = mapped_column(Date, nullable=True)  # day free_spins belongs to
    bonus_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_claim_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_prize_slot_id: Mapped[int | None] = mapped_column(ForeignKey("prize_slots.id"), nullable=True)
    last_spin_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (CheckConstraint("free_spins >= 0", name="ck_free_spins_non_negative"),)

class PrizeSlot(Base):
    __tablename__ = "prize_slots"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slot_index: Mapped[int] = mapped_column(Integer, unique=True)
    kind: Mapped[str] = mapped_column(String(32))
    title: Mapped[str] = mapped_column(String(200))
    total_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL = unlimited
    remaining_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight: Mapped[int] = mapped_column(Integer, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        CheckConstraint("weight >= 0", name="ck_weight_non_negative"),
        CheckConstraint(
            "(total_stock IS NULL AND remaining_stock IS NULL) OR "
            "(total_stock IS NOT NULL AND remaining_stock IS NOT NULL "
            "AND remaining_stock >= 0 AND remaining_stock <= total_stock)",
            name="ck_stock_bounds",
        ),
    )

    @property
    def is_limited(self) -> bool:
        return self.total_stock is not None

class Claim(Base):
    __tablename__ = "claims"
    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    participant_id: Mapped[str] = mapped_column(ForeignKey("participants.id"))
    slot_id: Mapped[int] = mapped_column(ForeignKey("prize_slots.id"))
    # captured at issuance, survives later slot edits
    kind: Mapped[str] = mapped_column(String(32))
    title: Mapped[str] = mapped_column(String(200))
    claim_day: Mapped[date] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (UniqueConstraint("participant_id", "claim_day", name="uq_claim_per_day"),)

class SpinRecord(Base):
    __tablename__ = "spin_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_id: Mapped[str] = mapped_column(ForeignKey("participants.id"), index=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("prize_slots.id"))
    kind: Mapped[str] = mapped_column(String(32))
    reference_day: Mapped[date] = mapped_column(Date)
    spun_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
