import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .errors import (
    DispatchError,
    InvalidInput,
    NoResponderAvailable,
    NotAuthorized,
    RequestNotFound,
    RequestNotPending,
    StoreUnavailable,
)
from .geo import require_phone
from .kinds import kind_named
from .models import utcnow
from .notifications import build_sms_sender
from .projections import RequestStatusProjector, identity_of
from .repo import engine, init_db
from .schemas import (
    AcceptOut,
    AssignmentOut,
    AvailabilityIn,
    CitizenOut,
    CitizenProfileIn,
    CitizenStatusOut,
    CreateDispatchIn,
    CreateDispatchOut,
    DeclineOut,
    IdentityOut,
    OtpSendIn,
    OtpVerifyIn,
    ResponderActionIn,
    ResponderOut,
    ResponderProfileIn,
    ResponderRequestOut,
)
from .seed import seed
from .services import create_dispatch_engine
from .settings import settings
from .verification import build_verifier

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    NotAuthorized: status.HTTP_403_FORBIDDEN,
    RequestNotFound: status.HTTP_404_NOT_FOUND,
    NoResponderAvailable: status.HTTP_404_NOT_FOUND,
    RequestNotPending: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _point(lng: Optional[float], lat: Optional[float]):
    if lng is None and lat is None:
        return None
    if lng is None or lat is None:
        raise InvalidInput("lng and lat must be given together")
    return lng, lat


def _responder_out(responder) -> ResponderOut:
    return ResponderOut(
        phone=responder.phone,
        kind=responder.kind,
        verified=responder.verified,
        availability=responder.availability,
        lng=responder.lng,
        lat=responder.lat,
        profile=responder.profile or {},
    )


def create_app(bind=None, scheduler=None, sender=None, verifier=None, clock=utcnow) -> FastAPI:
    bind = bind or engine
    scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
    app.state.scheduler = scheduler
    app.state.clock = clock
    app.state.dispatch = create_dispatch_engine(bind, scheduler, sender or build_sms_sender(), clock=clock)
    app.state.projector = RequestStatusProjector(
        app.state.dispatch.store, app.state.dispatch.directory, app.state.dispatch.citizens
    )
    app.state.verifier = verifier or build_verifier()

    @app.on_event("startup")
    def on_startup():
        init_db(bind)
        if settings.SEED_DEMO_DATA:
            seed(bind)
        scheduler.add_job(
            app.state.dispatch.sweep_expired,
            "interval",
            seconds=settings.SWEEP_INTERVAL_SECONDS,
            id="sweep",
            replace_existing=True,
        )
        scheduler.start()
        logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started")

    @app.on_event("shutdown")
    def on_shutdown():
        if scheduler.running:
            scheduler.shutdown(wait=False)

    @app.exception_handler(DispatchError)
    def dispatch_error_handler(request: Request, exc: DispatchError):
        code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        headers = {"Retry-After": "1"} if isinstance(exc, StoreUnavailable) else None
        return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code}, headers=headers)

    @app.get("/health")
    def health():
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    @app.post("/dispatch", response_model=CreateDispatchOut)
    def post_dispatch(request: Request, body: CreateDispatchIn):
        assignment = request.app.state.dispatch.create(body.citizen_phone, body.service_type, body.lng, body.lat)
        return CreateDispatchOut(
            request_id=assignment.request_id,
            assignment=AssignmentOut(**assignment.__dict__),
        )

    @app.post("/dispatch/{request_id}/accept", response_model=AcceptOut)
    def post_accept(request: Request, request_id: int, body: ResponderActionIn):
        outcome = request.app.state.dispatch.accept(request_id, body.responder_phone)
        return AcceptOut(
            request_id=outcome.request_id,
            eta_minutes=outcome.eta_minutes,
            distance_meters=outcome.distance_meters,
        )

    @app.post("/dispatch/{request_id}/decline", response_model=DeclineOut)
    def post_decline(request: Request, request_id: int, body: ResponderActionIn):
        outcome = request.app.state.dispatch.decline(request_id, body.responder_phone)
        successor = AssignmentOut(**outcome.successor.__dict__) if outcome.successor else None
        return DeclineOut(request_id=outcome.request_id, reassigned=successor is not None, successor=successor)

    @app.get("/dispatch/{request_id}/status")
    def get_status(request: Request, request_id: int, responder_phone: Optional[str] = None):
        projector = request.app.state.projector
        now = request.app.state.clock()
        if responder_phone:
            return ResponderRequestOut(**projector.responder_view(request_id, responder_phone, now))
        return CitizenStatusOut(**projector.citizen_view(request_id, now))

    @app.get("/responders/{phone}/requests")
    def get_responder_requests(request: Request, phone: str):
        require_phone(phone)
        cards = request.app.state.projector.responder_inbox(phone, request.app.state.clock())
        return {"requests": [ResponderRequestOut(**card) for card in cards]}

    @app.put("/responders/{phone}/status", response_model=ResponderOut)
    def put_responder_status(request: Request, phone: str, body: AvailabilityIn):
        responder = request.app.state.dispatch.directory.update_availability(
            phone, body.availability, _point(body.lng, body.lat)
        )
        if responder is None:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "responder not found"})
        return _responder_out(responder)

    @app.put("/responders/{kind}/{phone}/profile", response_model=ResponderOut)
    def put_responder_profile(request: Request, kind: str, phone: str, body: ResponderProfileIn):
        responder = request.app.state.dispatch.directory.upsert_profile(
            kind_named(kind), phone, body.profile, _point(body.lng, body.lat)
        )
        return _responder_out(responder)

    @app.post("/responders/{kind}/otp/send")
    def post_otp_send(request: Request, kind: str, body: OtpSendIn):
        kind_named(kind)
        require_phone(body.phone)
        if not request.app.state.verifier.send_code(body.phone):
            return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": "failed to send OTP"})
        return {"success": True, "to": body.phone}

    @app.post("/responders/{kind}/otp/verify", response_model=ResponderOut)
    def post_otp_verify(request: Request, kind: str, body: OtpVerifyIn):
        responder_kind = kind_named(kind)
        require_phone(body.phone)
        if not request.app.state.verifier.check_code(body.phone, body.code):
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "invalid or expired OTP"})
        responder = request.app.state.dispatch.directory.mark_verified(responder_kind, body.phone)
        return _responder_out(responder)

    @app.put("/citizens/{phone}", response_model=CitizenOut)
    def put_citizen(request: Request, phone: str, body: CitizenProfileIn):
        data = body.model_dump(exclude={"emergency_contacts"})
        contacts = None
        if body.emergency_contacts is not None:
            contacts = [c.model_dump() for c in body.emergency_contacts]
        citizen = request.app.state.dispatch.citizens.upsert(phone, data, contacts)
        return CitizenOut(id=citizen.id, phone=citizen.phone, verified=citizen.verified)

    @app.post("/citizens/otp/send")
    def post_citizen_otp_send(request: Request, body: OtpSendIn):
        require_phone(body.phone)
        if not request.app.state.verifier.send_code(body.phone):
            return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": "failed to send OTP"})
        return {"success": True, "to": body.phone}

    @app.post("/citizens/otp/verify", response_model=CitizenOut)
    def post_citizen_otp_verify(request: Request, body: OtpVerifyIn):
        require_phone(body.phone)
        if not request.app.state.verifier.check_code(body.phone, body.code):
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "invalid or expired OTP"})
        citizen = request.app.state.dispatch.citizens.mark_verified(body.phone)
        return CitizenOut(id=citizen.id, phone=citizen.phone, verified=citizen.verified)

    @app.get("/identities/{phone}", response_model=IdentityOut)
    def get_identity(request: Request, phone: str):
        require_phone(phone)
        dispatch = request.app.state.dispatch
        return IdentityOut(**identity_of(phone, dispatch.citizens, dispatch.directory))

    return app


app = create_app()
