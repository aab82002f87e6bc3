"""Admin-side code desk: look up, redeem, list and export claims."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from .clock import ReferenceClock
from .errors import AlreadyRedeemedError, ClaimNotFoundError
from .models import Claim, Participant

log = logging.getLogger(__name__)

CSV_HEADER = ["Tên", "SĐT", "Thời gian chơi", "Mã quà", "Trạng thái"]
STATUS_REDEEMED = "ĐÃ NHẬN"
STATUS_PENDING = "CHƯA"


@dataclass(frozen=True)
class ClaimView:
    code: str
    kind: str
    title: str
    participant_id: str
    name: str
    phone: Optional[str]
    created_at: datetime
    redeemed_at: Optional[datetime]
    redeemed_by: Optional[str]

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "prizeKey": self.kind,
            "title": self.title,
            "participantId": self.participant_id,
            "name": self.name,
            "phone": self.phone,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "redeemedAt": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "redeemedBy": self.redeemed_by,
        }


@dataclass(frozen=True)
class PlayerRow:
    name: str
    phone: Optional[str]
    created_at: datetime
    code: Optional[str]
    redeemed_at: Optional[datetime]

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "code": self.code,
            "redeemedAt": self.redeemed_at.isoformat() if self.redeemed_at else None,
        }


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class RedemptionDesk:
    def __init__(self, session_factory: sessionmaker, clock: Optional[ReferenceClock] = None):
        self.session_factory = session_factory
        self.clock = clock or ReferenceClock()

    def check_code(self, code: str) -> ClaimView:
        with self.session_factory() as db:
            row = db.execute(
                select(Claim, Participant)
                .join(Participant, Participant.id == Claim.participant_id)
                .where(Claim.code == normalize_code(code))
            ).first()
            if row is None:
                raise ClaimNotFoundError()
            c, p = row
            return ClaimView(
                code=c.code, kind=c.kind, title=c.title,
                participant_id=p.id, name=p.name, phone=p.phone,
                created_at=c.created_at, redeemed_at=c.redeemed_at, redeemed_by=c.redeemed_by,
            )

    def redeem_code(self, code: str, redeemed_by: str = "ADMIN") -> ClaimView:
        code = normalize_code(code)
        with self.session_factory() as db, db.begin():
            res = db.execute(
                update(Claim)
                .where(Claim.code == code, Claim.redeemed_at.is_(None))
                .values(redeemed_at=self.clock.now(), redeemed_by=redeemed_by)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                exists = db.execute(select(Claim.code).where(Claim.code == code)).first()
                if exists is None:
                    raise ClaimNotFoundError()
                raise AlreadyRedeemedError()
        log.info("Code %s redeemed by %s", code, redeemed_by)
        return self.check_code(code)

    def list_players(self) -> list[PlayerRow]:
        with self.session_factory() as db:
            rows = db.execute(
                select(Participant.name, Participant.phone, Participant.created_at, Claim.code, Claim.redeemed_at)
                .outerjoin(Claim, Claim.participant_id == Participant.id)
                .order_by(Participant.created_at.desc(), Claim.created_at)
            ).all()
        return [PlayerRow(*r) for r in rows]

    def _local(self, ts: Optional[datetime]) -> Optional[datetime]:
        if ts is None:
            return None
        if ts.tzinfo is None:
            # sqlite hands back naive values; they are stored as UTC
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(self.clock.tz)

    def export_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADER)
        for r in self.list_players():
            local = self._local(r.created_at)
            writer.writerow([
                r.name,
                r.phone or "",
                local.strftime("%Y-%m-%d %H:%M:%S") if local else "",
                r.code or "",
                STATUS_REDEEMED if r.redeemed_at else STATUS_PENDING,
            ])
        return buf.getvalue()
