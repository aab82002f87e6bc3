"""Participant registration with dedupe by phone or external identity."""

from __future__ import annotations

import logging
import re
import secrets
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .clock import utcnow
from .config import BASE_DAILY_SPINS
from .errors import RegistrationError
from .models import Participant

log = logging.getLogger(__name__)

_PHONE_STRIP_RE = re.compile(r"[\s\-().]")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    cleaned = _PHONE_STRIP_RE.sub("", phone.strip())
    return cleaned or None


def new_participant_id() -> str:
    return secrets.token_urlsafe(9)  # 12 chars


def _find_existing(db, phone, external_id) -> Optional[Participant]:
    conds = []
    if phone:
        conds.append(Participant.phone == phone)
    if external_id:
        conds.append(Participant.external_id == external_id)
    return db.execute(select(Participant).where(or_(*conds))).scalars().first()


def register_or_touch(
    session_factory: sessionmaker,
    name: str,
    phone: Optional[str] = None,
    external_id: Optional[str] = None,
    sex: Optional[str] = None,
    job: Optional[str] = None,
    base_spins: int = BASE_DAILY_SPINS,
) -> str:
    """Return the id of the participant with this phone/external id, creating it if needed."""
    name = (name or "").strip()
    phone = normalize_phone(phone)
    external_id = (external_id or "").strip() or None
    if not name or not (phone or external_id):
        raise RegistrationError()

    with session_factory() as db:
        old = _find_existing(db, phone, external_id)
        if old:
            return old.id

        p = Participant(
            id=new_participant_id(),
            name=name[:128],
            phone=phone,
            external_id=external_id,
            sex=(sex or "other")[:16],
            job=(job or "other")[:64],
            free_spins=base_spins,
            created_at=utcnow(),
        )
        pid = p.id
        db.add(p)
        try:
            db.commit()
        except IntegrityError:
            # same phone / external id registered concurrently
            db.rollback()
            old = _find_existing(db, phone, external_id)
            if old is None:
                raise
            return old.id

    log.info("Registered participant %s", pid)
    return pid
