"""FastAPI frontend for ChoreKeeper.

Parents authenticate with their PIN and receive a session token kept in the
Starlette session cookie. Children open their view with a four digit access
code. Every endpoint answers with JSON so the app can sit behind any UI.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Form, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from ..api import ApiExporter
from ..exceptions import (
    AuthenticationError,
    ChoreKeeperError,
    InvalidSessionError,
    NotFoundError,
    ValidationError,
)
from ..models import ChoreInstance, ParticipantRating
from ..money import parse_to_cents
from ..ops import StructuredLogger
from ..rewards import preview_rewards, redistribute_efforts
from ..security import AuthManager
from ..service import ChoreKeeper
from .config import (
    CHILD_SESSION_KEY,
    DEFAULT_CURRENCY,
    LOG_PATH,
    MAX_PIN_ATTEMPTS,
    PIN_LOCKOUT_MINUTES,
    PIN_SALT,
    REMEMBER_ME_DAYS,
    SCHEDULER_ENABLED,
    SESSION_DURATION_DAYS,
    SESSION_SECRET,
    SESSION_TOKEN_KEY,
)
from .jobs import build_scheduler
from .persistence import SqlChoreStore

router = APIRouter()

_TRUTHY = {"1", "true", "on", "yes"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def keeper_for(request: Request) -> ChoreKeeper:
    return request.app.state.keeper


def exporter_for(keeper: ChoreKeeper) -> ApiExporter:
    settings = keeper.store.get_settings()
    return ApiExporter(currency=settings.currency if settings else DEFAULT_CURRENCY)


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in _TRUTHY


def _cents(raw: str) -> int:
    try:
        return parse_to_cents(raw)
    except ValueError as exc:
        raise ValidationError(f"Cannot read an amount from {raw!r}.") from exc


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"Expected a whole number, got {raw!r}.") from exc


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(f"Expected a number, got {raw!r}.") from exc


def _prefixed_fields(form, prefix: str) -> Dict[str, str]:
    """Collect ``prefix<child_id>`` form fields into ``{child_id: value}``."""

    return {
        key[len(prefix):]: str(value)
        for key, value in form.multi_items()
        if key.startswith(prefix) and key != prefix and str(value).strip()
    }


def _efforts(form) -> Dict[str, float]:
    return {child_id: _optional_float(value) or 0.0 for child_id, value in _prefixed_fields(form, "effort_").items()}


def require_parent(request: Request) -> None:
    token = request.session.get(SESSION_TOKEN_KEY)
    if not keeper_for(request).verify_session(token):
        request.session.pop(SESSION_TOKEN_KEY, None)
        raise InvalidSessionError()


def require_child(request: Request) -> str:
    child_id = request.session.get(CHILD_SESSION_KEY)
    if not child_id:
        raise InvalidSessionError()
    keeper_for(request).get_child(child_id)
    return child_id


def _instance_payload(keeper: ChoreKeeper, instance: ChoreInstance) -> Dict[str, object]:
    schedule = keeper.store.get_schedule(instance.scheduled_chore_id)
    template = keeper.store.get_template(schedule.template_id) if schedule else None
    return exporter_for(keeper).instance(
        instance,
        keeper.store.participants_for(instance.id),
        template=template,
    )


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": type(exc).__name__, "detail": str(exc)}, status_code=status_code)


# ---------------------------------------------------------------------------
# Setup and parent authentication
# ---------------------------------------------------------------------------
@router.post("/setup")
def setup(request: Request, pin: str = Form(...), currency: Optional[str] = Form(None)) -> JSONResponse:
    settings = keeper_for(request).initialize_settings(pin, currency=currency)
    return JSONResponse({"currency": settings.currency}, status_code=201)


@router.post("/login")
def login(request: Request, pin: str = Form(...), remember_me: Optional[str] = Form(None)) -> JSONResponse:
    session = keeper_for(request).login(pin, remember_me=_flag(remember_me))
    request.session[SESSION_TOKEN_KEY] = session.token
    return JSONResponse({"expires_at": session.expires_at.isoformat()})


@router.post("/logout")
def logout(request: Request) -> JSONResponse:
    token = request.session.pop(SESSION_TOKEN_KEY, None)
    if token:
        keeper_for(request).logout(token)
    return JSONResponse({"ok": True})


@router.get("/session")
def session_status(request: Request) -> JSONResponse:
    token = request.session.get(SESSION_TOKEN_KEY)
    return JSONResponse({"authenticated": keeper_for(request).verify_session(token)})


@router.get("/settings")
def read_settings(request: Request) -> JSONResponse:
    require_parent(request)
    settings = keeper_for(request).get_settings()
    return JSONResponse({"currency": settings.currency, "session_duration_days": settings.session_duration_days})


@router.post("/settings")
def write_settings(
    request: Request,
    currency: Optional[str] = Form(None),
    session_duration_days: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    settings = keeper_for(request).update_settings(
        currency=currency,
        session_duration_days=_optional_int(session_duration_days),
    )
    return JSONResponse({"currency": settings.currency, "session_duration_days": settings.session_duration_days})


@router.post("/settings/pin")
def change_pin(request: Request, current_pin: str = Form(...), new_pin: str = Form(...)) -> JSONResponse:
    require_parent(request)
    keeper_for(request).change_pin(current_pin, new_pin)
    return JSONResponse({"ok": True})


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------
@router.get("/children")
def list_children(request: Request) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    exporter = exporter_for(keeper)
    return JSONResponse([exporter.child(child) for child in keeper.list_children()])


@router.post("/children")
def create_child(request: Request, name: str = Form(...), avatar_emoji: str = Form("🙂")) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    child = keeper.create_child(name, avatar_emoji=avatar_emoji)
    return JSONResponse(exporter_for(keeper).child(child), status_code=201)


@router.post("/children/{child_id}")
def update_child(
    request: Request,
    child_id: str,
    name: Optional[str] = Form(None),
    avatar_emoji: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    child = keeper.update_child(child_id, name=name, avatar_emoji=avatar_emoji)
    return JSONResponse(exporter_for(keeper).child(child))


@router.post("/children/{child_id}/access_code")
def regenerate_access_code(request: Request, child_id: str) -> JSONResponse:
    require_parent(request)
    return JSONResponse({"access_code": keeper_for(request).regenerate_access_code(child_id)})


@router.post("/children/{child_id}/delete")
def delete_child(request: Request, child_id: str) -> JSONResponse:
    require_parent(request)
    keeper_for(request).remove_child(child_id)
    return JSONResponse({"ok": True})


@router.get("/children/{child_id}/ledger")
def child_ledger(request: Request, child_id: str) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    exporter = exporter_for(keeper)
    return JSONResponse([exporter.balance_entry(entry) for entry in keeper.balance_history(child_id)])


@router.post("/children/{child_id}/withdraw")
def withdraw(request: Request, child_id: str, amount: str = Form(...), note: str = Form("")) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    entry = keeper.withdraw(child_id, _cents(amount), note)
    return JSONResponse(exporter_for(keeper).balance_entry(entry))


@router.post("/children/{child_id}/adjust")
def adjust_balance(request: Request, child_id: str, amount: str = Form(...), note: str = Form("")) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    entry = keeper.adjust_balance(child_id, _cents(amount), note)
    return JSONResponse(exporter_for(keeper).balance_entry(entry))


@router.post("/children/{child_id}/balance")
def set_balance(request: Request, child_id: str, amount: str = Form(...), note: str = Form("Balance set")) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    keeper.set_balance(child_id, _cents(amount), note)
    return JSONResponse(exporter_for(keeper).child(keeper.get_child(child_id)))


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
@router.get("/templates")
def list_templates(request: Request) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    exporter = exporter_for(keeper)
    return JSONResponse([exporter.template(template) for template in keeper.list_templates()])


@router.post("/templates")
def create_template(
    request: Request,
    name: str = Form(...),
    default_reward: str = Form("0"),
    icon: str = Form("🧹"),
    description: str = Form(""),
) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    template = keeper.create_template(name, default_reward=_cents(default_reward), icon=icon, description=description)
    return JSONResponse(exporter_for(keeper).template(template), status_code=201)


@router.post("/templates/{template_id}")
def update_template(
    request: Request,
    template_id: str,
    name: Optional[str] = Form(None),
    default_reward: Optional[str] = Form(None),
    icon: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    template = keeper.update_template(
        template_id,
        name=name,
        default_reward=_cents(default_reward) if default_reward else None,
        icon=icon,
        description=description,
    )
    return JSONResponse(exporter_for(keeper).template(template))


@router.post("/templates/{template_id}/delete")
def delete_template(request: Request, template_id: str) -> JSONResponse:
    require_parent(request)
    keeper_for(request).remove_template(template_id)
    return JSONResponse({"ok": True})


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------
@router.get("/schedules")
def list_schedules(request: Request) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    exporter = exporter_for(keeper)
    return JSONResponse([exporter.schedule(schedule) for schedule in keeper.list_schedules()])


@router.post("/schedules")
def create_schedule(
    request: Request,
    template_id: str = Form(...),
    schedule_type: str = Form(...),
    start_date: str = Form(...),
    child_ids: List[str] = Form(default=[]),
    days: List[int] = Form(default=[]),
    end_date: Optional[str] = Form(None),
    reward: Optional[str] = Form(None),
    is_joined: Optional[str] = Form(None),
    is_optional: Optional[str] = Form(None),
    max_pickups_per_period: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    schedule = keeper.create_schedule(
        template_id,
        child_ids,
        schedule_type=schedule_type,
        start_date=start_date,
        end_date=end_date or None,
        days=days or None,
        reward=_cents(reward) if reward else None,
        is_joined=_flag(is_joined),
        is_optional=_flag(is_optional),
        max_pickups_per_period=_optional_int(max_pickups_per_period),
    )
    return JSONResponse(exporter_for(keeper).schedule(schedule), status_code=201)


@router.post("/schedules/{schedule_id}/toggle")
def toggle_schedule(request: Request, schedule_id: str) -> JSONResponse:
    require_parent(request)
    return JSONResponse({"is_active": keeper_for(request).toggle_schedule(schedule_id)})


@router.post("/schedules/{schedule_id}/delete")
def delete_schedule(request: Request, schedule_id: str) -> JSONResponse:
    require_parent(request)
    keeper_for(request).remove_schedule(schedule_id)
    return JSONResponse({"ok": True})


@router.post("/jobs/daily")
def daily_jobs(request: Request, on: Optional[str] = Form(None)) -> JSONResponse:
    require_parent(request)
    return JSONResponse(keeper_for(request).run_daily_jobs(on or None))


# ---------------------------------------------------------------------------
# Instances and rating
# ---------------------------------------------------------------------------
@router.get("/instances")
def instances_for_date(request: Request, on: Optional[str] = None) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    return JSONResponse([_instance_payload(keeper, instance) for instance in keeper.instances_for_date(on)])


@router.get("/review")
def pending_review(request: Request, limit: int = 20) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    return JSONResponse([_instance_payload(keeper, instance) for instance in keeper.pending_review(limit)])


@router.get("/history")
def history(request: Request, child_id: Optional[str] = None, limit: int = 50) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    return JSONResponse(
        [_instance_payload(keeper, instance) for instance in keeper.history(child_id=child_id, limit=limit)]
    )


@router.get("/instances/{instance_id}")
def read_instance(request: Request, instance_id: str) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    return JSONResponse(_instance_payload(keeper, keeper.get_instance(instance_id)))


@router.get("/instances/{instance_id}/preview")
def reward_preview(request: Request, instance_id: str, effort_percent: Optional[float] = None) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    instance = keeper.get_instance(instance_id)
    participants = keeper.participants(instance_id)
    preview = preview_rewards(instance.total_reward, len(participants), instance.is_joined, effort_percent)
    return JSONResponse(exporter_for(keeper).reward_preview(preview))


@router.post("/efforts/redistribute")
async def redistribute(request: Request) -> JSONResponse:
    require_parent(request)
    form = await request.form()
    changed_id = str(form.get("changed_id") or "")
    new_value = _optional_float(form.get("new_value"))
    efforts = _efforts(form)
    if not changed_id or new_value is None:
        raise ValidationError("changed_id and new_value are required.")
    return JSONResponse(redistribute_efforts(efforts, changed_id, new_value))


@router.post("/instances/{instance_id}/done")
def parent_mark_done(request: Request, instance_id: str, child_id: str = Form(...)) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    participant = keeper.mark_done(instance_id, child_id)
    return JSONResponse(exporter_for(keeper).participant(participant))


@router.post("/instances/{instance_id}/undone")
def parent_unmark_done(request: Request, instance_id: str, child_id: str = Form(...)) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    participant = keeper.unmark_done(instance_id, child_id)
    return JSONResponse(exporter_for(keeper).participant(participant))


@router.post("/instances/{instance_id}/missed")
def mark_missed(request: Request, instance_id: str) -> JSONResponse:
    require_parent(request)
    keeper = keeper_for(request)
    return JSONResponse(_instance_payload(keeper, keeper.mark_missed(instance_id)))


@router.post("/instances/{instance_id}/rate")
def rate_instance(
    request: Request,
    instance_id: str,
    quality: str = Form(...),
    notes: Optional[str] = Form(None),
    force_complete: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    earned = keeper_for(request).rate_instance(
        instance_id, quality, notes=notes, force_complete=_flag(force_complete)
    )
    return JSONResponse({"earned": earned})


@router.post("/instances/{instance_id}/rate_joined")
async def rate_joined(request: Request, instance_id: str) -> JSONResponse:
    require_parent(request)
    form = await request.form()
    earned = keeper_for(request).rate_joined(
        instance_id,
        str(form.get("quality") or ""),
        _efforts(form),
        notes=form.get("notes") or None,
        force_complete=_flag(form.get("force_complete")),
    )
    return JSONResponse({"earned": earned})


@router.post("/instances/{instance_id}/rate_participant")
def rate_participant(
    request: Request,
    instance_id: str,
    child_id: str = Form(...),
    quality: str = Form(...),
    effort_percent: Optional[str] = Form(None),
) -> JSONResponse:
    require_parent(request)
    result = keeper_for(request).rate_participant(
        instance_id, child_id, quality, effort_percent=_optional_float(effort_percent)
    )
    return JSONResponse({"earned_reward": result.earned_reward, "all_rated": result.all_rated})


@router.post("/instances/{instance_id}/rate_all")
async def rate_all(request: Request, instance_id: str) -> JSONResponse:
    """Rate several participants from ``quality_<child_id>`` and ``effort_<child_id>`` fields."""

    require_parent(request)
    form = await request.form()
    efforts = _prefixed_fields(form, "effort_")
    ratings = [
        ParticipantRating(child_id=child_id, quality=quality, effort_percent=_optional_float(efforts.get(child_id)))
        for child_id, quality in _prefixed_fields(form, "quality_").items()
    ]
    earned = keeper_for(request).rate_all_participants(instance_id, ratings, notes=form.get("notes") or None)
    return JSONResponse({"earned": earned})


# ---------------------------------------------------------------------------
# Child view
# ---------------------------------------------------------------------------
@router.post("/kid/login")
def kid_login(request: Request, access_code: str = Form(...)) -> JSONResponse:
    keeper = keeper_for(request)
    child = keeper.child_by_access_code(access_code.strip())
    if child is None:
        raise InvalidSessionError("Unknown access code.")
    request.session[CHILD_SESSION_KEY] = child.id
    return JSONResponse(exporter_for(keeper).child(child, include_access_code=False))


@router.post("/kid/logout")
def kid_logout(request: Request) -> JSONResponse:
    request.session.pop(CHILD_SESSION_KEY, None)
    return JSONResponse({"ok": True})


@router.get("/kid/chores")
def kid_chores(request: Request, on: Optional[str] = None) -> JSONResponse:
    child_id = require_child(request)
    keeper = keeper_for(request)
    target = on or keeper.today()
    return JSONResponse(
        [_instance_payload(keeper, instance) for instance, _ in keeper.instances_for_child(child_id, target)]
    )


@router.get("/kid/optional")
def kid_optional(request: Request) -> JSONResponse:
    child_id = require_child(request)
    keeper = keeper_for(request)
    exporter = exporter_for(keeper)
    return JSONResponse(
        [
            {**exporter.schedule(schedule), "pickups": count}
            for schedule, count in keeper.available_optional(child_id)
        ]
    )


@router.post("/kid/pickup")
def kid_pickup(request: Request, schedule_id: str = Form(...)) -> JSONResponse:
    child_id = require_child(request)
    keeper = keeper_for(request)
    return JSONResponse(_instance_payload(keeper, keeper.pickup_optional(child_id, schedule_id)))


@router.post("/kid/done")
def kid_done(request: Request, instance_id: str = Form(...)) -> JSONResponse:
    child_id = require_child(request)
    keeper = keeper_for(request)
    return JSONResponse(exporter_for(keeper).participant(keeper.mark_done(instance_id, child_id)))


@router.post("/kid/undone")
def kid_undone(request: Request, instance_id: str = Form(...)) -> JSONResponse:
    child_id = require_child(request)
    keeper = keeper_for(request)
    return JSONResponse(exporter_for(keeper).participant(keeper.unmark_done(instance_id, child_id)))


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
def default_keeper() -> ChoreKeeper:
    return ChoreKeeper(
        SqlChoreStore(),
        auth=AuthManager(
            salt=PIN_SALT,
            max_attempts=MAX_PIN_ATTEMPTS,
            lockout_minutes=PIN_LOCKOUT_MINUTES,
            remember_days=REMEMBER_ME_DAYS,
        ),
        logger=StructuredLogger(path=LOG_PATH),
        default_currency=DEFAULT_CURRENCY,
        default_session_days=SESSION_DURATION_DAYS,
    )


def create_app(keeper: ChoreKeeper | None = None, *, start_scheduler: bool = SCHEDULER_ENABLED) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        scheduler = build_scheduler(app.state.keeper) if start_scheduler else None
        app.state.scheduler = scheduler
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None and scheduler.running:
                scheduler.shutdown(wait=False)

    app = FastAPI(title="ChoreKeeper", lifespan=lifespan)
    app.add_middleware(
        SessionMiddleware,
        secret_key=SESSION_SECRET,
        same_site="lax",
        max_age=None,
    )
    app.state.keeper = keeper or default_keeper()

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(AuthenticationError)
    async def _unauthorized(request: Request, exc: AuthenticationError) -> JSONResponse:
        return _error_response(401, exc)

    @app.exception_handler(ChoreKeeperError)
    async def _chorekeeper_error(request: Request, exc: ChoreKeeperError) -> JSONResponse:
        return _error_response(400, exc)

    app.include_router(router)
    return app


_APP: FastAPI | None = None


def get_app() -> FastAPI:
    global _APP
    if _APP is None:
        _APP = create_app()
    return _APP


__all__ = ["create_app", "default_keeper", "get_app", "router"]
