import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from ..anti_fraud import SimpleRateLimit, rate_limiter
from ..config import ADMIN_KEY, FORCE_RESEED, RATE_LIMIT_PER_MINUTE
from ..coordinator import SpinCoordinator, build_coordinator
from ..db import SessionLocal, create_schema, engine
from ..errors import AdminAuthError, PrizeWheelError, RateLimitedError
from ..participants import register_or_touch
from ..prizes import seed_prize_slots
from ..redemption import RedemptionDesk

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    create_schema(engine)
    with SessionLocal() as db:
        seed_prize_slots(db, force=FORCE_RESEED)
        db.commit()
    yield


app = FastAPI(title="Prize wheel", lifespan=lifespan)

_coordinator: Optional[SpinCoordinator] = None


# ------------------------
# Dependencies (overridden in tests)
# ------------------------
def get_coordinator() -> SpinCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator(SessionLocal)
    return _coordinator


def get_desk(coordinator: SpinCoordinator = Depends(get_coordinator)) -> RedemptionDesk:
    return RedemptionDesk(coordinator.session_factory, coordinator.clock)


def get_rate_limiter() -> SimpleRateLimit:
    return rate_limiter


def get_admin_key() -> str:
    return ADMIN_KEY


def require_admin(request: Request, admin_key: str = Depends(get_admin_key)) -> None:
    key = request.query_params.get("key") or request.headers.get("x-admin-key") or ""
    if not admin_key or not hmac.compare_digest(key.encode(), admin_key.encode()):
        raise AdminAuthError()


def throttle(scope: str, participant_id: str, limiter: SimpleRateLimit) -> None:
    if not limiter.allow(f"{scope}:{participant_id}", RATE_LIMIT_PER_MINUTE, 60):
        log.warning("Rate limited %s for %s", scope, participant_id)
        raise RateLimitedError()


@app.exception_handler(PrizeWheelError)
async def prize_wheel_error(_request: Request, exc: PrizeWheelError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.code, "message": exc.message},
    )


# ------------------------
# Payloads
# ------------------------
class RegisterIn(BaseModel):
    name: str = ""
    phone: str = ""
    sex: Optional[str] = None
    job: Optional[str] = None


class ParticipantIn(BaseModel):
    participantId: str = ""


# ------------------------
# Game API
# ------------------------
@app.get("/", response_class=PlainTextResponse)
def root():
    return "Prize wheel backend running"


@app.post("/register")
def register(body: RegisterIn, coordinator: SpinCoordinator = Depends(get_coordinator)):
    pid = register_or_touch(
        coordinator.session_factory, body.name, phone=body.phone, sex=body.sex, job=body.job,
        base_spins=coordinator.quota.base_spins,
    )
    return {"ok": True, "participantId": pid}


@app.post("/spin")
def spin(
        body: ParticipantIn,
        coordinator: SpinCoordinator = Depends(get_coordinator),
        limiter: SimpleRateLimit = Depends(get_rate_limiter),
):
    throttle("spin", body.participantId, limiter)
    out = coordinator.spin(body.participantId)
    return {
        "ok": True,
        "prizeKey": out.category,
        "title": out.title,
        "spinIndex": out.slot_index,
        "isWin": out.is_win,
    }


@app.post("/bonus")
def bonus(
        body: ParticipantIn,
        coordinator: SpinCoordinator = Depends(get_coordinator),
        limiter: SimpleRateLimit = Depends(get_rate_limiter),
):
    throttle("bonus", body.participantId, limiter)
    res = coordinator.grant_bonus(body.participantId)
    return {"ok": True, **res}


@app.get("/status/{participant_id}")
def status(participant_id: str, coordinator: SpinCoordinator = Depends(get_coordinator)):
    av = coordinator.availability(participant_id)
    return {"ok": True, "spinsRemaining": av.spins_remaining, "canClaimBonus": av.can_claim_bonus}


@app.post("/claim")
def claim(
        body: ParticipantIn,
        coordinator: SpinCoordinator = Depends(get_coordinator),
        limiter: SimpleRateLimit = Depends(get_rate_limiter),
):
    throttle("claim", body.participantId, limiter)
    receipt = coordinator.claim(body.participantId)
    return {"ok": True, "code": receipt.code, "title": receipt.title, "prizeKey": receipt.category}


# ------------------------
# Admin API
# ------------------------
@app.get("/admin/api/check/{code}", dependencies=[Depends(require_admin)])
def admin_check(code: str, desk: RedemptionDesk = Depends(get_desk)):
    return {"ok": True, "claim": desk.check_code(code).as_dict()}


@app.post("/admin/api/redeem/{code}", dependencies=[Depends(require_admin)])
def admin_redeem(code: str, desk: RedemptionDesk = Depends(get_desk)):
    return {"ok": True, "claim": desk.redeem_code(code).as_dict()}


@app.get("/admin/api/players", dependencies=[Depends(require_admin)])
def admin_players(desk: RedemptionDesk = Depends(get_desk)):
    return [r.as_dict() for r in desk.list_players()]


@app.get("/admin/api/export", dependencies=[Depends(require_admin)])
def admin_export(desk: RedemptionDesk = Depends(get_desk)):
    return Response(
        content=desk.export_csv(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=prizewheel_players.csv"},
    )


@app.get("/admin/api/slots", dependencies=[Depends(require_admin)])
def admin_slots(coordinator: SpinCoordinator = Depends(get_coordinator)):
    with coordinator.session_factory() as db:
        slots = coordinator.inventory.snapshot(db)
        return [
            {
                "spinIndex": s.slot_index,
                "prizeKey": s.kind,
                "title": s.title,
                "total": s.total_stock,
                "remaining": s.remaining_stock,
                "weight": s.weight,
                "enabled": s.enabled,
            }
            for s in slots
        ]
