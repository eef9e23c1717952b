from __future__ import annotations

import hmac
import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, Depends, Form, Header, HTTPException, UploadFile, File, Query, BackgroundTasks
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, RedirectResponse, JSONResponse, FileResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from .settings import settings
from .db import init_db, get_session, new_session
from .logging_config import setup_logging
from . import content, mailer, models, records, uploads
from .auth import (
    CurrentAdmin,
    get_current_admin,
    admin_required,
    full_admin_required,
    super_admin_required,
    assert_can_access_chapter,
    set_login_cookie,
    clear_login_cookie,
    ROLES,
    AuthCookieMiddleware,
)
from .audit import list_audit_logs, AUDIT_ENTITY_TYPES
from .calendar_feed import CACHE_CONTROL, build_calendar, upcoming_feed_events
from .ccn import get_ccn_client
from .chapters import (
    all_chapter_slugs,
    ensure_chapters,
    get_chapter_by_db_slug,
    get_chapter_info,
    get_results_chapter_info,
    list_chapters,
    results_description,
)
from .completion import complete_due_events
from .control_cards import Control, Organizer, build_control_cards_pdf, parse_controls
from .errors import MembershipError, user_message
from .schemas import (
    AdminUserCreate,
    EventCreate,
    NewsCreate,
    PermanentRegistrationData,
    RegistrationData,
    ResultCreate,
    ResultUpdate,
    RiderCreate,
    RiderMergeData,
    RouteCreate,
)
from .services import admins as admin_service
from .services import events as event_service
from .services import my_rides as my_rides_service
from .services import news as news_service
from .services import registration as registration_service
from .services import results as result_service
from .services import rider_results as rider_result_service
from .services import riders as rider_service
from .services import routes as route_service
from .services.registration import PERMANENT_LEAD_DAYS
from .utils import club_today, format_event_date, format_event_time, format_event_type, format_finish_time

logger = logging.getLogger(__name__)

HERE = Path(__file__).resolve().parent

app = FastAPI(title="Randonneurs Ontario")

app.add_middleware(AuthCookieMiddleware)

app.mount("/static", StaticFiles(directory=str(HERE / "static")), name="static")
templates = Jinja2Templates(directory=str(HERE / "templates"))

templates.env.filters["event_date"] = format_event_date
templates.env.filters["event_time"] = format_event_time
templates.env.filters["event_type"] = format_event_type
templates.env.filters["finish_time"] = format_finish_time
templates.env.filters["markdown"] = content.render_markdown
templates.env.globals["nav_chapters"] = [get_chapter_info(s) for s in all_chapter_slugs()]
templates.env.globals["current_season"] = settings.CURRENT_SEASON


@app.on_event("startup")
def _startup() -> None:
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE or None)
    init_db()
    s = new_session()
    try:
        ensure_chapters(s)
        admin_service.ensure_super_admin(s, settings)
    finally:
        s.close()


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    path = request.url.path
    if path.startswith("/api/") or "application/json" in request.headers.get("accept", ""):
        return await http_exception_handler(request, exc)
    if exc.status_code == 401 and path.startswith("/admin"):
        return RedirectResponse(url="/admin/login", status_code=302)
    return templates.TemplateResponse(
        request, "error.html",
        {"request": request, "status_code": exc.status_code, "detail": exc.detail},
        status_code=exc.status_code,
    )


def _int_or_none(value: Optional[str]) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid number: {value}")


def _filter_int(value: Optional[str]) -> Optional[int]:
    # list filters come from the query string; junk means no filter
    try:
        return _int_or_none(value)
    except ValueError:
        return None


def _fail(session, exc: Exception, default: str = "An unexpected error occurred") -> str:
    session.rollback()
    return user_message(exc, default)

# ---------------------------
# Public pages
# ---------------------------

@app.get("/", response_class=HTMLResponse)
def home(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "home.html",
        {
            "request": request,
            "events": event_service.upcoming_events(session),
            "news": news_service.published_news(session, limit=3),
        },
    )

@app.get("/calendar", response_class=HTMLResponse)
def calendar_index(request: Request):
    return templates.TemplateResponse(request, "calendar_index.html", {"request": request})

@app.get("/calendar/permanents", response_class=HTMLResponse)
def calendar_permanents(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "calendar_permanents.html",
        {"request": request, "events": event_service.upcoming_permanents(session)},
    )

@app.get("/calendar/{chapter}", response_class=HTMLResponse)
def calendar_chapter(chapter: str, request: Request, session=Depends(get_session)):
    info = get_chapter_info(chapter)
    if not info:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return templates.TemplateResponse(
        request, "calendar_chapter.html",
        {"request": request, "chapter": info, "events": event_service.upcoming_events_by_chapter(session, chapter)},
    )

@app.get("/routes/{chapter}", response_class=HTMLResponse)
def routes_page(chapter: str, request: Request, session=Depends(get_session)):
    info = get_chapter_info(chapter)
    if not info:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return templates.TemplateResponse(
        request, "routes.html",
        {"request": request, "chapter": info, "collections": route_service.routes_by_chapter(session, chapter)},
    )

@app.get("/riders", response_class=HTMLResponse)
def riders_page(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "riders.html", {"request": request, "riders": rider_service.all_riders(session)},
    )

@app.get("/riders/{slug}", response_class=HTMLResponse)
def rider_page(slug: str, request: Request, session=Depends(get_session)):
    rider = rider_service.get_rider_by_slug(session, slug)
    if not rider:
        raise HTTPException(status_code=404, detail="Rider not found")
    return templates.TemplateResponse(
        request, "rider.html",
        {"request": request, "rider": rider, "years": rider_service.rider_results(session, slug)},
    )

@app.get("/records", response_class=HTMLResponse)
def records_page(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "records.html",
        {
            "request": request,
            "lifetime": records.lifetime_records(session),
            "seasons": records.season_records(session),
            "current_distance": records.current_season_distance(session),
            "club": records.club_achievements(session),
            "routes": records.route_records(session),
            "pbp": records.pbp_records(session),
            "granite_anvil": records.granite_anvil_records(session),
        },
    )

@app.get("/news", response_class=HTMLResponse)
def news_page(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "news.html", {"request": request, "news": news_service.published_news(session)},
    )

@app.get("/my-rides", response_class=HTMLResponse)
def my_rides_form(request: Request):
    return templates.TemplateResponse(
        request, "my_rides.html", {"request": request, "rides": None, "email": "", "error": None},
    )

@app.post("/my-rides", response_class=HTMLResponse)
def my_rides_submit(request: Request, email: str = Form(""), session=Depends(get_session)):
    try:
        rides = my_rides_service.my_upcoming_rides(session, email)
    except Exception as e:
        return templates.TemplateResponse(
            request, "my_rides.html",
            {"request": request, "rides": None, "email": email, "error": _fail(session, e)},
            status_code=400,
        )
    return templates.TemplateResponse(
        request, "my_rides.html", {"request": request, "rides": rides, "email": email, "error": None},
    )

# ---------------------------
# Results
# ---------------------------

@app.get("/results", response_class=HTMLResponse)
def results_index(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "results_index.html",
        {"request": request, "chapters": result_service.chapters_with_years(session)},
    )

def _submission_page(request: Request, session, token: str, error: Optional[str] = None,
                     message: Optional[str] = None, status_code: int = 200):
    try:
        submission = rider_result_service.get_result_by_token(session, token)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return templates.TemplateResponse(
        request, "result_submit.html",
        {"request": request, "token": token, "s": submission, "error": error, "message": message},
        status_code=status_code,
    )

@app.get("/results/submit/{token}", response_class=HTMLResponse)
def result_submit_form(token: str, request: Request, ok: Optional[str] = None, session=Depends(get_session)):
    return _submission_page(request, session, token, message="Thanks, your result has been saved." if ok else None)

@app.post("/results/submit/{token}")
def result_submit(
    token: str,
    request: Request,
    status: str = Form(...),
    finish_time: str = Form(""),
    gpx_url: str = Form(""),
    notes: str = Form(""),
    session=Depends(get_session),
):
    try:
        rider_result_service.submit_rider_result(session, token, status, finish_time, gpx_url, notes)
    except Exception as e:
        return _submission_page(request, session, token, error=_fail(session, e), status_code=400)
    return RedirectResponse(url=f"/results/submit/{token}?ok=1", status_code=302)

@app.post("/results/submit/{token}/upload")
async def result_upload(
    token: str,
    request: Request,
    file_type: str = Form(...),
    file: UploadFile = File(...),
    session=Depends(get_session),
):
    data = await file.read()
    try:
        rider_result_service.upload_result_file(session, token, file_type, file.filename, file.content_type, data)
    except Exception as e:
        return _submission_page(request, session, token, error=_fail(session, e, "Failed to upload file"), status_code=400)
    return RedirectResponse(url=f"/results/submit/{token}", status_code=302)

@app.post("/results/submit/{token}/files/{file_type}/delete")
def result_file_delete(token: str, file_type: str, request: Request, session=Depends(get_session)):
    try:
        rider_result_service.delete_result_file(session, token, file_type)
    except Exception as e:
        return _submission_page(request, session, token, error=_fail(session, e), status_code=400)
    return RedirectResponse(url=f"/results/submit/{token}", status_code=302)

@app.get("/results/{year}/{chapter}", response_class=HTMLResponse)
def results_chapter(year: int, chapter: str, request: Request, session=Depends(get_session)):
    info = get_results_chapter_info(chapter)
    if not info:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return templates.TemplateResponse(
        request, "results_chapter.html",
        {
            "request": request,
            "chapter": info,
            "description": results_description(chapter),
            "year": year,
            "years": result_service.available_years(session, chapter),
            "events": result_service.chapter_results(session, chapter, year),
        },
    )

# ---------------------------
# Registration
# ---------------------------

def _permanent_form(request: Request, session, error: Optional[str] = None, form: Optional[dict] = None,
                    membership_error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "register_permanent.html",
        {
            "request": request,
            "routes": route_service.active_routes(session),
            "min_date": (club_today() + timedelta(days=PERMANENT_LEAD_DAYS)).isoformat(),
            "form": form or {},
            "error": error,
            "membership_error": membership_error,
        },
        status_code=status_code,
    )

def _match_page(request: Request, event_slug: str, outcome):
    return templates.TemplateResponse(
        request, "register_match.html",
        {"request": request, "event_slug": event_slug, "candidates": outcome.candidates, "pending": outcome.pending},
    )

@app.get("/register/permanent", response_class=HTMLResponse)
def register_permanent_form(request: Request, session=Depends(get_session)):
    return _permanent_form(request, session)

@app.post("/register/permanent")
def register_permanent_submit(
    request: Request,
    background_tasks: BackgroundTasks,
    route_id: str = Form(""),
    ride_date: str = Form(""),
    start_time: str = Form("08:00"),
    start_location: str = Form(""),
    direction: str = Form("as_posted"),
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    share_registration: Optional[str] = Form(None),
    notes: str = Form(""),
    emergency_contact_name: str = Form(""),
    emergency_contact_phone: str = Form(""),
    client=Depends(get_ccn_client),
    session=Depends(get_session),
):
    form = dict(
        ride_date=ride_date, start_time=start_time, start_location=start_location, direction=direction,
        first_name=first_name, last_name=last_name, email=email, gender=gender or None,
        share_registration=bool(share_registration), notes=notes,
        emergency_contact_name=emergency_contact_name, emergency_contact_phone=emergency_contact_phone,
    )
    try:
        outcome = registration_service.register_for_permanent(
            session, PermanentRegistrationData(route_id=_int_or_none(route_id), **form), client=client,
        )
    except MembershipError as e:
        return _permanent_form(request, session, str(e), {**form, "route_id": route_id}, e.variant, status_code=400)
    except Exception as e:
        return _permanent_form(
            request, session, _fail(session, e, "Registration failed. Please try again."),
            {**form, "route_id": route_id}, status_code=400,
        )

    if outcome.needs_rider_match:
        event = event_service.get_event(session, outcome.pending.event_id)
        return _match_page(request, event.slug, outcome)
    background_tasks.add_task(mailer.send_quietly, outcome.email)
    return RedirectResponse(url=f"/register/{outcome.registration.event.slug}?registered=1", status_code=302)

def _event_page(request: Request, session, slug: str, error: Optional[str] = None, form: Optional[dict] = None,
                membership_error: Optional[str] = None, status_code: int = 200):
    event = event_service.get_event_by_slug(session, slug)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return templates.TemplateResponse(
        request, "register_event.html",
        {
            "request": request,
            "event": event,
            "riders": event_service.registered_riders(session, event.id),
            "registered": request.query_params.get("registered") == "1",
            "form": form or {},
            "error": error,
            "membership_error": membership_error,
        },
        status_code=status_code,
    )

@app.get("/register/{slug}", response_class=HTMLResponse)
def register_event_form(slug: str, request: Request, session=Depends(get_session)):
    return _event_page(request, session, slug)

@app.post("/register/{slug}")
def register_event_submit(
    slug: str,
    request: Request,
    background_tasks: BackgroundTasks,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    share_registration: Optional[str] = Form(None),
    notes: str = Form(""),
    emergency_contact_name: str = Form(""),
    emergency_contact_phone: str = Form(""),
    client=Depends(get_ccn_client),
    session=Depends(get_session),
):
    event = event_service.get_event_by_slug(session, slug)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    form = dict(
        first_name=first_name, last_name=last_name, email=email, gender=gender or None,
        share_registration=bool(share_registration), notes=notes,
        emergency_contact_name=emergency_contact_name, emergency_contact_phone=emergency_contact_phone,
    )
    try:
        outcome = registration_service.register_for_event(
            session, RegistrationData(event_id=event.id, **form), client=client,
        )
    except MembershipError as e:
        return _event_page(request, session, slug, str(e), form, e.variant, status_code=400)
    except Exception as e:
        return _event_page(
            request, session, slug, _fail(session, e, "Registration failed. Please try again."), form, status_code=400,
        )

    if outcome.needs_rider_match:
        return _match_page(request, slug, outcome)
    background_tasks.add_task(mailer.send_quietly, outcome.email)
    return RedirectResponse(url=f"/register/{slug}?registered=1", status_code=302)

@app.post("/register/{slug}/match")
def register_match_submit(
    slug: str,
    request: Request,
    background_tasks: BackgroundTasks,
    event_id: int = Form(...),
    selected_rider_id: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    share_registration: Optional[str] = Form(None),
    notes: str = Form(""),
    emergency_contact_name: str = Form(""),
    emergency_contact_phone: str = Form(""),
    client=Depends(get_ccn_client),
    session=Depends(get_session),
):
    form = dict(
        first_name=first_name, last_name=last_name, email=email, gender=gender or None,
        share_registration=bool(share_registration), notes=notes,
        emergency_contact_name=emergency_contact_name, emergency_contact_phone=emergency_contact_phone,
    )
    try:
        outcome = registration_service.complete_registration_with_rider(
            session,
            RegistrationData(event_id=event_id, **form),
            # "new" means none of the candidates
            _int_or_none(selected_rider_id) if selected_rider_id != "new" else None,
            client=client,
        )
    except MembershipError as e:
        return _event_page(request, session, slug, str(e), form, e.variant, status_code=400)
    except Exception as e:
        return _event_page(
            request, session, slug, _fail(session, e, "Registration failed. Please try again."), form, status_code=400,
        )
    background_tasks.add_task(mailer.send_quietly, outcome.email)
    return RedirectResponse(url=f"/register/{slug}?registered=1", status_code=302)

# ---------------------------
# Uploaded files
# ---------------------------

@app.get("/uploads/{path:path}")
def uploaded_file(path: str):
    try:
        target = uploads.resolve_upload(path)
    except ValueError:
        raise HTTPException(status_code=404, detail="File not found")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(target)

# ---------------------------
# API
# ---------------------------

@app.get("/api/calendar/{chapter}")
def calendar_feed(chapter: str, session=Depends(get_session)):
    slug = chapter[:-4] if chapter.endswith(".ics") else chapter
    info = get_chapter_info(slug)
    if not info:
        return JSONResponse(
            {"error": f"Invalid chapter. Valid chapters: {', '.join(all_chapter_slugs())}"},
            status_code=404,
        )
    db_chapter = get_chapter_by_db_slug(session, info.db_slug)
    events = upcoming_feed_events(session, db_chapter.id) if db_chapter else []
    return Response(
        content=build_calendar(info, events),
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{slug}-calendar.ics"',
            "Cache-Control": CACHE_CONTROL,
        },
    )

@app.get("/api/cron/complete-events")
def cron_complete_events(authorization: Optional[str] = Header(default=None), session=Depends(get_session)):
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured")
        return JSONResponse({"error": "Server configuration error"}, status_code=500)
    if not hmac.compare_digest(authorization or "", f"Bearer {settings.CRON_SECRET}"):
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    report = complete_due_events(session)
    logger.info("Cron checked %s events, completed %s", report.checked, report.completed)
    return report.as_dict()

@app.get("/api/riders/search", dependencies=[Depends(admin_required)])
def riders_search(q: str = "", session=Depends(get_session)):
    return [
        {"id": r.id, "slug": r.slug, "first_name": r.first_name, "last_name": r.last_name, "email": r.email}
        for r in rider_service.search_riders(session, q)
    ]

from .csv_export import router as csv_router
app.include_router(csv_router, prefix="/api", tags=["csv"])

# ---------------------------
# Admin auth
# ---------------------------

@app.get("/admin/login", response_class=HTMLResponse)
def login_form(request: Request, admin=Depends(get_current_admin)):
    if admin:
        return RedirectResponse(url="/admin", status_code=302)
    return templates.TemplateResponse(request, "admin/login.html", {"request": request, "error": None})

@app.post("/admin/login")
def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    session=Depends(get_session),
):
    a = admin_service.authenticate_admin(session, email=email.strip(), password=password)
    if not a:
        logger.warning("Failed admin login for %s", email.strip())
        return templates.TemplateResponse(
            request, "admin/login.html", {"request": request, "error": "Invalid email or password."}, status_code=401,
        )
    set_login_cookie(request, admin_id=a.id, email=a.email, name=a.name, role=a.role, chapter_id=a.chapter_id)
    return RedirectResponse(url="/admin", status_code=302)

@app.post("/admin/logout")
def logout(request: Request):
    clear_login_cookie(request)
    return RedirectResponse(url="/admin/login", status_code=302)

@app.get("/admin", response_class=HTMLResponse)
def dashboard(request: Request, admin=Depends(get_current_admin), session=Depends(get_session)):
    if not admin:
        return RedirectResponse(url="/admin/login", status_code=302)
    chapter_id = admin.chapter_id if admin.is_chapter_admin else None
    upcoming = [
        row for row in event_service.admin_event_list(session, chapter_id=chapter_id, status="scheduled")
        if row.event.event_date >= club_today()
    ]
    return templates.TemplateResponse(
        request, "admin/dashboard.html",
        {
            "request": request,
            "admin": admin,
            "upcoming": list(reversed(upcoming))[:10],
            "completed": event_service.admin_event_list(session, chapter_id=chapter_id, status="completed")[:10],
            "logs": list_audit_logs(session, limit=10) if admin.is_full_admin else [],
        },
    )

# ---------------------------
# Admin events
# ---------------------------

def _admin_chapters(session, admin: CurrentAdmin):
    chapters = list_chapters(session)
    if admin.is_chapter_admin:
        chapters = [c for c in chapters if c.id == admin.chapter_id]
    return chapters

def _event_for(session, admin: CurrentAdmin, event_id: int):
    e = event_service.get_event(session, event_id)
    if not e:
        raise HTTPException(status_code=404, detail="Event not found")
    assert_can_access_chapter(admin, e.chapter_id)
    return e

def _event_form(request: Request, session, admin: CurrentAdmin, event=None, form: Optional[dict] = None,
                error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/event_form.html",
        {
            "request": request,
            "admin": admin,
            "event": event,
            "form": form or {},
            "chapters": _admin_chapters(session, admin),
            "routes": route_service.active_routes(session),
            "event_types": event_service.EVENT_TYPES,
            "error": error,
        },
        status_code=status_code,
    )

def _event_payload(name, chapter_id, route_id, event_type, distance_km, event_date, start_time,
                   start_location, description, image_url, collection) -> EventCreate:
    return EventCreate(
        name=name,
        chapter_id=_int_or_none(chapter_id),
        route_id=_int_or_none(route_id),
        event_type=event_type,
        distance_km=_int_or_none(distance_km),
        event_date=event_date.strip(),
        start_time=start_time,
        start_location=start_location,
        description=description,
        image_url=image_url.strip() or None,
        collection=collection.strip() or None,
    )

@app.get("/admin/events", response_class=HTMLResponse)
def admin_events(
    request: Request,
    chapter_id: str = Query(default=""),
    status: str = Query(default=""),
    season: str = Query(default=""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    chapter = admin.chapter_id if admin.is_chapter_admin else _filter_int(chapter_id)
    rows = event_service.admin_event_list(session, chapter_id=chapter, status=status or None, season=_filter_int(season))
    return templates.TemplateResponse(
        request, "admin/events.html",
        {
            "request": request,
            "admin": admin,
            "rows": rows,
            "chapters": _admin_chapters(session, admin),
            "statuses": event_service.EVENT_STATUSES,
            "filters": {"chapter_id": chapter, "status": status, "season": season},
        },
    )

@app.get("/admin/events/new", response_class=HTMLResponse)
def admin_event_new_form(request: Request, admin: CurrentAdmin = Depends(admin_required), session=Depends(get_session)):
    return _event_form(request, session, admin)

@app.post("/admin/events/new")
def admin_event_new_submit(
    request: Request,
    name: str = Form(""),
    chapter_id: str = Form(""),
    route_id: str = Form(""),
    event_type: str = Form("brevet"),
    distance_km: str = Form(""),
    event_date: str = Form(""),
    start_time: str = Form(""),
    start_location: str = Form(""),
    description: str = Form(""),
    image_url: str = Form(""),
    collection: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    form = dict(name=name, chapter_id=chapter_id, route_id=route_id, event_type=event_type, distance_km=distance_km,
                event_date=event_date, start_time=start_time, start_location=start_location,
                description=description, image_url=image_url, collection=collection)
    try:
        payload = _event_payload(**form)
        assert_can_access_chapter(admin, payload.chapter_id)
        e = event_service.create_event(session, admin, payload)
    except HTTPException:
        raise
    except Exception as e:
        return _event_form(request, session, admin, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/events/{e.id}", status_code=302)

@app.get("/admin/events/{event_id}", response_class=HTMLResponse)
def admin_event_detail(
    event_id: int,
    request: Request,
    error: Optional[str] = None,
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    e = _event_for(session, admin, event_id)
    return templates.TemplateResponse(
        request, "admin/event_detail.html",
        {
            "request": request,
            "admin": admin,
            "event": e,
            "registrations": event_service.event_registrations(session, event_id),
            "results": result_service.event_results(session, event_id),
            "statuses": event_service.EVENT_STATUSES,
            "error": error,
        },
    )

@app.get("/admin/events/{event_id}/edit", response_class=HTMLResponse)
def admin_event_edit_form(event_id: int, request: Request, admin: CurrentAdmin = Depends(admin_required),
                          session=Depends(get_session)):
    e = _event_for(session, admin, event_id)
    form = dict(name=e.name, chapter_id=e.chapter_id, route_id=e.route_id, event_type=e.event_type,
                distance_km=e.distance_km, event_date=e.event_date.isoformat(), start_time=e.start_time or "",
                start_location=e.start_location or "", description=e.description or "",
                image_url=e.image_url or "", collection=e.collection or "")
    return _event_form(request, session, admin, event=e, form=form)

@app.post("/admin/events/{event_id}/edit")
def admin_event_edit_submit(
    event_id: int,
    request: Request,
    name: str = Form(""),
    chapter_id: str = Form(""),
    route_id: str = Form(""),
    event_type: str = Form("brevet"),
    distance_km: str = Form(""),
    event_date: str = Form(""),
    start_time: str = Form(""),
    start_location: str = Form(""),
    description: str = Form(""),
    image_url: str = Form(""),
    collection: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    e = _event_for(session, admin, event_id)
    form = dict(name=name, chapter_id=chapter_id, route_id=route_id, event_type=event_type, distance_km=distance_km,
                event_date=event_date, start_time=start_time, start_location=start_location,
                description=description, image_url=image_url, collection=collection)
    try:
        payload = _event_payload(**form)
        assert_can_access_chapter(admin, payload.chapter_id)
        event_service.update_event(session, admin, event_id, payload)
    except HTTPException:
        raise
    except Exception as ex:
        return _event_form(request, session, admin, event=e, form=form, error=_fail(session, ex), status_code=400)
    return RedirectResponse(url=f"/admin/events/{event_id}", status_code=302)

def _event_detail_error(request: Request, session, admin: CurrentAdmin, event_id: int, message: str):
    e = _event_for(session, admin, event_id)
    return templates.TemplateResponse(
        request, "admin/event_detail.html",
        {
            "request": request,
            "admin": admin,
            "event": e,
            "registrations": event_service.event_registrations(session, event_id),
            "results": result_service.event_results(session, event_id),
            "statuses": event_service.EVENT_STATUSES,
            "error": message,
        },
        status_code=400,
    )

@app.post("/admin/events/{event_id}/status")
def admin_event_status(
    event_id: int,
    request: Request,
    status: str = Form(...),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    _event_for(session, admin, event_id)
    try:
        event_service.update_event_status(session, admin, event_id, status)
    except Exception as e:
        return _event_detail_error(request, session, admin, event_id, _fail(session, e))
    return RedirectResponse(url=f"/admin/events/{event_id}", status_code=302)

@app.post("/admin/events/{event_id}/submit")
def admin_event_submit_results(
    event_id: int,
    request: Request,
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    _event_for(session, admin, event_id)
    try:
        event_service.submit_event_results(session, admin, event_id)
    except Exception as e:
        return _event_detail_error(request, session, admin, event_id, _fail(session, e))
    return RedirectResponse(url=f"/admin/events/{event_id}", status_code=302)

@app.post("/admin/events/{event_id}/delete")
def admin_event_delete(
    event_id: int,
    request: Request,
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    _event_for(session, admin, event_id)
    try:
        event_service.delete_event(session, admin, event_id)
    except Exception as e:
        return _event_detail_error(request, session, admin, event_id, _fail(session, e))
    return RedirectResponse(url="/admin/events", status_code=302)

@app.get("/admin/events/{event_id}/control-cards", response_class=HTMLResponse)
def admin_control_cards_form(event_id: int, request: Request, admin: CurrentAdmin = Depends(admin_required),
                             session=Depends(get_session)):
    e = _event_for(session, admin, event_id)
    profile = admin_service.get_admin(session, admin.id)
    form = {
        "organizer_name": admin.name,
        "organizer_phone": (profile.phone if profile else "") or "",
        "organizer_email": admin.email,
        "controls": f"Start | 0\nFinish | {e.distance_km}",
    }
    return templates.TemplateResponse(
        request, "admin/control_cards.html",
        {"request": request, "admin": admin, "event": e, "form": form, "error": None},
    )

@app.post("/admin/events/{event_id}/control-cards")
def admin_control_cards_submit(
    event_id: int,
    request: Request,
    organizer_name: str = Form(""),
    organizer_phone: str = Form(""),
    organizer_email: str = Form(""),
    controls: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    e = _event_for(session, admin, event_id)
    riders = [reg.rider for reg in event_service.event_registrations(session, event_id) if reg.status == "registered"]
    try:
        pdf = build_control_cards_pdf(
            e,
            sorted(riders, key=lambda r: (r.last_name.lower(), r.first_name.lower())),
            parse_controls(controls),
            Organizer(organizer_name.strip(), organizer_phone.strip(), organizer_email.strip()),
        )
    except Exception as ex:
        form = dict(organizer_name=organizer_name, organizer_phone=organizer_phone,
                    organizer_email=organizer_email, controls=controls)
        return templates.TemplateResponse(
            request, "admin/control_cards.html",
            {"request": request, "admin": admin, "event": e, "form": form, "error": user_message(ex)},
            status_code=400,
        )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="control-cards-{e.slug}.pdf"'},
    )

# ---------------------------
# Admin results
# ---------------------------

def _results_manager(request: Request, session, admin: CurrentAdmin, event_id: int,
                     error: Optional[str] = None, status_code: int = 200):
    e = _event_for(session, admin, event_id)
    results = result_service.event_results(session, event_id)
    have = {r.rider_id for r in results}
    pending_riders = [
        reg.rider for reg in event_service.event_registrations(session, event_id)
        if reg.status == "registered" and reg.rider_id not in have
    ]
    return templates.TemplateResponse(
        request, "admin/event_results.html",
        {
            "request": request,
            "admin": admin,
            "event": e,
            "results": results,
            "unrecorded": pending_riders,
            "statuses": result_service.RESULT_STATUSES,
            "error": error,
        },
        status_code=status_code,
    )

@app.get("/admin/events/{event_id}/results", response_class=HTMLResponse)
def admin_event_results(event_id: int, request: Request, admin: CurrentAdmin = Depends(admin_required),
                        session=Depends(get_session)):
    return _results_manager(request, session, admin, event_id)

@app.post("/admin/events/{event_id}/results")
def admin_event_result_add(
    event_id: int,
    request: Request,
    rider_id: str = Form(""),
    status: str = Form("finished"),
    finish_time: str = Form(""),
    team_name: str = Form(""),
    note: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    _event_for(session, admin, event_id)
    try:
        rid = _int_or_none(rider_id)
        if not rid:
            raise ValueError("Rider is required")
        result_service.create_result(session, admin, ResultCreate(
            event_id=event_id, rider_id=rid, status=status, finish_time=finish_time, team_name=team_name, note=note,
        ))
    except Exception as e:
        return _results_manager(request, session, admin, event_id, _fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/events/{event_id}/results", status_code=302)

@app.post("/admin/events/{event_id}/results/bulk")
def admin_event_results_bulk(
    event_id: int,
    request: Request,
    rider_id: list[int] = Form(default=[]),
    status: list[str] = Form(default=[]),
    finish_time: list[str] = Form(default=[]),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    _event_for(session, admin, event_id)
    try:
        if not (len(rider_id) == len(status) == len(finish_time)):
            raise ValueError("Malformed results form")
        rows = [
            ResultCreate(event_id=event_id, rider_id=rid, status=st, finish_time=ft)
            for rid, st, ft in zip(rider_id, status, finish_time)
            if st
        ]
        result_service.create_bulk_results(session, admin, event_id, rows)
    except Exception as e:
        return _results_manager(request, session, admin, event_id, _fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/events/{event_id}/results", status_code=302)

def _result_event_id(session, admin: CurrentAdmin, result_id: int) -> int:
    r = session.get(models.Result, result_id)
    if not r:
        raise HTTPException(status_code=404, detail="Result not found")
    _event_for(session, admin, r.event_id)
    return r.event_id

@app.post("/admin/results/{result_id}/edit")
def admin_result_edit(
    result_id: int,
    request: Request,
    status: str = Form(...),
    finish_time: str = Form(""),
    team_name: str = Form(""),
    note: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    event_id = _result_event_id(session, admin, result_id)
    try:
        result_service.update_result(session, admin, result_id, ResultUpdate(
            status=status, finish_time=finish_time, team_name=team_name, note=note,
        ))
    except Exception as e:
        return _results_manager(request, session, admin, event_id, _fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/events/{event_id}/results", status_code=302)

@app.post("/admin/results/{result_id}/delete")
def admin_result_delete(result_id: int, request: Request, admin: CurrentAdmin = Depends(admin_required),
                        session=Depends(get_session)):
    event_id = _result_event_id(session, admin, result_id)
    try:
        result_service.delete_result(session, admin, result_id)
    except Exception as e:
        return _results_manager(request, session, admin, event_id, _fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/events/{event_id}/results", status_code=302)

@app.get("/admin/results", response_class=HTMLResponse)
def admin_results(
    request: Request,
    season: str = Query(default=""),
    status: str = Query(default=""),
    chapter_id: str = Query(default=""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    chapter = admin.chapter_id if admin.is_chapter_admin else _filter_int(chapter_id)
    season_value = _filter_int(season) or settings.CURRENT_SEASON
    return templates.TemplateResponse(
        request, "admin/results.html",
        {
            "request": request,
            "admin": admin,
            "results": result_service.list_results(session, season=season_value, status=status or None,
                                                   chapter_id=chapter),
            "chapters": _admin_chapters(session, admin),
            "statuses": result_service.RESULT_STATUSES,
            "filters": {"season": season_value, "status": status, "chapter_id": chapter},
        },
    )

# ---------------------------
# Admin routes
# ---------------------------

def _route_form(request: Request, session, admin: CurrentAdmin, route=None, form: Optional[dict] = None,
                error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/route_form.html",
        {"request": request, "admin": admin, "route": route, "form": form or {},
         "chapters": list_chapters(session), "error": error},
        status_code=status_code,
    )

def _route_payload(name, slug, chapter_id, distance_km, collection, description, rwgps_id, cue_sheet_url,
                   notes, is_active) -> RouteCreate:
    return RouteCreate(
        name=name,
        slug=slug.strip() or None,
        chapter_id=_int_or_none(chapter_id),
        distance_km=_int_or_none(distance_km),
        collection=collection.strip() or None,
        description=description.strip() or None,
        rwgps_id=rwgps_id.strip() or None,
        cue_sheet_url=cue_sheet_url.strip() or None,
        notes=notes.strip() or None,
        is_active=bool(is_active),
    )

@app.get("/admin/routes", response_class=HTMLResponse)
def admin_routes(
    request: Request,
    chapter_id: str = Query(default=""),
    active: str = Query(default=""),
    q: str = Query(default=""),
    error: Optional[str] = None,
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    active_flag = {"active": True, "inactive": False}.get(active)
    routes = route_service.list_routes(session, chapter_id=_filter_int(chapter_id), active=active_flag, q=q or None)
    return templates.TemplateResponse(
        request, "admin/routes.html",
        {
            "request": request,
            "admin": admin,
            "routes": routes,
            "counts": route_service.route_event_counts(session, [r.id for r in routes]),
            "chapters": list_chapters(session),
            "filters": {"chapter_id": _filter_int(chapter_id), "active": active, "q": q},
            "error": error,
        },
    )

@app.get("/admin/routes/new", response_class=HTMLResponse)
def admin_route_new_form(request: Request, admin: CurrentAdmin = Depends(full_admin_required),
                         session=Depends(get_session)):
    return _route_form(request, session, admin, form={"is_active": True})

@app.post("/admin/routes/new")
def admin_route_new_submit(
    request: Request,
    name: str = Form(""),
    slug: str = Form(""),
    chapter_id: str = Form(""),
    distance_km: str = Form(""),
    collection: str = Form(""),
    description: str = Form(""),
    rwgps_id: str = Form(""),
    cue_sheet_url: str = Form(""),
    notes: str = Form(""),
    is_active: Optional[str] = Form(None),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    form = dict(name=name, slug=slug, chapter_id=chapter_id, distance_km=distance_km, collection=collection,
                description=description, rwgps_id=rwgps_id, cue_sheet_url=cue_sheet_url, notes=notes,
                is_active=is_active)
    try:
        route_service.create_route(session, admin, _route_payload(**form))
    except Exception as e:
        return _route_form(request, session, admin, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/routes", status_code=302)

@app.get("/admin/routes/merge", response_class=HTMLResponse)
def admin_routes_merge_form(
    request: Request,
    ids: list[int] = Query(default=[]),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    routes = [r for r in (route_service.get_route(session, rid) for rid in ids) if r]
    return templates.TemplateResponse(
        request, "admin/routes_merge.html",
        {"request": request, "admin": admin, "routes": routes,
         "counts": route_service.route_event_counts(session, [r.id for r in routes]), "error": None},
    )

@app.post("/admin/routes/merge")
def admin_routes_merge_submit(
    request: Request,
    route_ids: list[int] = Form(default=[]),
    target_id: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    try:
        target = _int_or_none(target_id)
        if not target:
            raise ValueError("Choose the route to keep")
        route_service.merge_routes(session, admin, target, route_ids)
    except Exception as e:
        message = _fail(session, e)
        routes = [r for r in (route_service.get_route(session, rid) for rid in route_ids) if r]
        return templates.TemplateResponse(
            request, "admin/routes_merge.html",
            {"request": request, "admin": admin, "routes": routes,
             "counts": route_service.route_event_counts(session, [r.id for r in routes]), "error": message},
            status_code=400,
        )
    return RedirectResponse(url=f"/admin/routes/{target}/edit", status_code=302)

@app.get("/admin/routes/{route_id}/edit", response_class=HTMLResponse)
def admin_route_edit_form(route_id: int, request: Request, admin: CurrentAdmin = Depends(full_admin_required),
                          session=Depends(get_session)):
    r = route_service.get_route(session, route_id)
    if not r:
        raise HTTPException(status_code=404, detail="Route not found")
    form = dict(name=r.name, slug=r.slug, chapter_id=r.chapter_id, distance_km=r.distance_km or "",
                collection=r.collection or "", description=r.description or "", rwgps_id=r.rwgps_id or "",
                cue_sheet_url=r.cue_sheet_url or "", notes=r.notes or "", is_active=r.is_active)
    return _route_form(request, session, admin, route=r, form=form)

@app.post("/admin/routes/{route_id}/edit")
def admin_route_edit_submit(
    route_id: int,
    request: Request,
    name: str = Form(""),
    slug: str = Form(""),
    chapter_id: str = Form(""),
    distance_km: str = Form(""),
    collection: str = Form(""),
    description: str = Form(""),
    rwgps_id: str = Form(""),
    cue_sheet_url: str = Form(""),
    notes: str = Form(""),
    is_active: Optional[str] = Form(None),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    r = route_service.get_route(session, route_id)
    if not r:
        raise HTTPException(status_code=404, detail="Route not found")
    form = dict(name=name, slug=slug, chapter_id=chapter_id, distance_km=distance_km, collection=collection,
                description=description, rwgps_id=rwgps_id, cue_sheet_url=cue_sheet_url, notes=notes,
                is_active=is_active)
    try:
        route_service.update_route(session, admin, route_id, _route_payload(**form))
    except Exception as e:
        return _route_form(request, session, admin, route=r, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/routes", status_code=302)

@app.post("/admin/routes/{route_id}/toggle")
def admin_route_toggle(route_id: int, admin: CurrentAdmin = Depends(full_admin_required),
                       session=Depends(get_session)):
    r = route_service.get_route(session, route_id)
    if not r:
        raise HTTPException(status_code=404, detail="Route not found")
    route_service.toggle_route_active(session, admin, route_id, not r.is_active)
    return RedirectResponse(url="/admin/routes", status_code=302)

@app.post("/admin/routes/{route_id}/delete")
def admin_route_delete(route_id: int, request: Request, admin: CurrentAdmin = Depends(full_admin_required),
                       session=Depends(get_session)):
    try:
        route_service.delete_route(session, admin, route_id)
    except Exception as e:
        return admin_routes(request, chapter_id="", active="", q="", error=_fail(session, e), admin=admin, session=session)
    return RedirectResponse(url="/admin/routes", status_code=302)

# ---------------------------
# Admin riders
# ---------------------------

@app.get("/admin/riders", response_class=HTMLResponse)
def admin_riders(request: Request, q: str = Query(default=""), admin: CurrentAdmin = Depends(full_admin_required),
                 session=Depends(get_session)):
    riders = rider_service.list_riders(session, q=q or None)
    return templates.TemplateResponse(
        request, "admin/riders.html",
        {"request": request, "admin": admin, "riders": riders, "q": q,
         "counts": rider_service.rider_counts(session, [r.id for r in riders])},
    )

def _rider_form(request: Request, admin: CurrentAdmin, rider=None, form: Optional[dict] = None,
                error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/rider_form.html",
        {"request": request, "admin": admin, "rider": rider, "form": form or {}, "genders": rider_service.GENDERS,
         "error": error},
        status_code=status_code,
    )

@app.get("/admin/riders/new", response_class=HTMLResponse)
def admin_rider_new_form(request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    return _rider_form(request, admin)

@app.post("/admin/riders/new")
def admin_rider_new_submit(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    form = dict(first_name=first_name, last_name=last_name, email=email, gender=gender or None)
    try:
        r = rider_service.create_rider(session, admin, RiderCreate(**form))
    except Exception as e:
        return _rider_form(request, admin, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/riders/{r.id}", status_code=302)

@app.get("/admin/riders/merge", response_class=HTMLResponse)
def admin_riders_merge_form(
    request: Request,
    ids: list[int] = Query(default=[]),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    riders = [r for r in (rider_service.get_rider(session, rid) for rid in ids) if r]
    return templates.TemplateResponse(
        request, "admin/riders_merge.html",
        {"request": request, "admin": admin, "riders": riders,
         "counts": rider_service.rider_counts(session, [r.id for r in riders]), "summary": None, "error": None},
    )

@app.post("/admin/riders/merge")
def admin_riders_merge_submit(
    request: Request,
    rider_ids: list[int] = Form(default=[]),
    target_id: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    try:
        target = _int_or_none(target_id)
        if not target:
            raise ValueError("Target rider must be one of the selected riders")
        data = None
        kept = rider_service.get_rider(session, target)
        if kept and (first_name or last_name or email or gender):
            # blank fields keep the target's current values
            data = RiderMergeData(
                first_name=first_name or kept.first_name,
                last_name=last_name or kept.last_name,
                email=email or kept.email,
                gender=gender or kept.gender,
            )
        rider_service.merge_riders(session, admin, target, rider_ids, data)
    except Exception as e:
        message = _fail(session, e)
        riders = [r for r in (rider_service.get_rider(session, rid) for rid in rider_ids) if r]
        return templates.TemplateResponse(
            request, "admin/riders_merge.html",
            {"request": request, "admin": admin, "riders": riders,
             "counts": rider_service.rider_counts(session, [r.id for r in riders]), "summary": None,
             "error": message},
            status_code=400,
        )
    return RedirectResponse(url=f"/admin/riders/{target}", status_code=302)

@app.get("/admin/riders/{rider_id}", response_class=HTMLResponse)
def admin_rider_detail(rider_id: int, request: Request, admin: CurrentAdmin = Depends(full_admin_required),
                       session=Depends(get_session)):
    r = rider_service.get_rider(session, rider_id)
    if not r:
        raise HTTPException(status_code=404, detail="Rider not found")
    form = dict(first_name=r.first_name, last_name=r.last_name, email=r.email or "", gender=r.gender or "")
    return _rider_form(request, admin, rider=r, form=form)

@app.post("/admin/riders/{rider_id}")
def admin_rider_update(
    rider_id: int,
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    r = rider_service.get_rider(session, rider_id)
    if not r:
        raise HTTPException(status_code=404, detail="Rider not found")
    form = dict(first_name=first_name, last_name=last_name, email=email, gender=gender or None)
    try:
        rider_service.update_rider(session, admin, rider_id, RiderCreate(**form))
    except Exception as e:
        return _rider_form(request, admin, rider=r, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url=f"/admin/riders/{rider_id}", status_code=302)

# ---------------------------
# Admin news
# ---------------------------

def _news_form(request: Request, admin: CurrentAdmin, item=None, form: Optional[dict] = None,
               error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/news_form.html",
        {"request": request, "admin": admin, "item": item, "form": form or {}, "error": error},
        status_code=status_code,
    )

@app.get("/admin/news", response_class=HTMLResponse)
def admin_news(request: Request, admin: CurrentAdmin = Depends(full_admin_required), session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "admin/news.html", {"request": request, "admin": admin, "items": news_service.all_news(session)},
    )

@app.get("/admin/news/new", response_class=HTMLResponse)
def admin_news_new_form(request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    return _news_form(request, admin)

@app.post("/admin/news/new")
def admin_news_new_submit(
    request: Request,
    title: str = Form(""),
    teaser: str = Form(""),
    body: str = Form(""),
    is_published: Optional[str] = Form(None),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    form = dict(title=title, teaser=teaser, body=body, is_published=bool(is_published))
    try:
        news_service.create_news_item(session, admin, NewsCreate(**form))
    except Exception as e:
        return _news_form(request, admin, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/news", status_code=302)

@app.get("/admin/news/{news_id}/edit", response_class=HTMLResponse)
def admin_news_edit_form(news_id: int, request: Request, admin: CurrentAdmin = Depends(full_admin_required),
                         session=Depends(get_session)):
    item = news_service.get_news_item(session, news_id)
    if not item:
        raise HTTPException(status_code=404, detail="News item not found")
    form = dict(title=item.title, teaser=item.teaser or "", body=item.body, is_published=item.is_published)
    return _news_form(request, admin, item=item, form=form)

@app.post("/admin/news/{news_id}/edit")
def admin_news_edit_submit(
    news_id: int,
    request: Request,
    title: str = Form(""),
    teaser: str = Form(""),
    body: str = Form(""),
    is_published: Optional[str] = Form(None),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    item = news_service.get_news_item(session, news_id)
    if not item:
        raise HTTPException(status_code=404, detail="News item not found")
    form = dict(title=title, teaser=teaser, body=body, is_published=bool(is_published))
    try:
        news_service.update_news_item(session, admin, news_id, NewsCreate(**form))
    except Exception as e:
        return _news_form(request, admin, item=item, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/news", status_code=302)

@app.post("/admin/news/{news_id}/delete")
def admin_news_delete(news_id: int, admin: CurrentAdmin = Depends(full_admin_required), session=Depends(get_session)):
    try:
        news_service.delete_news_item(session, admin, news_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RedirectResponse(url="/admin/news", status_code=302)

# ---------------------------
# Admin pages
# ---------------------------

def _page_form(request: Request, admin: CurrentAdmin, form: dict, is_new: bool,
               error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/page_form.html",
        {"request": request, "admin": admin, "form": form, "is_new": is_new, "error": error},
        status_code=status_code,
    )

@app.get("/admin/pages", response_class=HTMLResponse)
def admin_pages(request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    return templates.TemplateResponse(
        request, "admin/pages.html", {"request": request, "admin": admin, "pages": content.list_pages()},
    )

@app.get("/admin/pages/new", response_class=HTMLResponse)
def admin_page_new_form(request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    return _page_form(request, admin, {}, is_new=True)

@app.post("/admin/pages/new")
def admin_page_new_submit(
    request: Request,
    slug: str = Form(""),
    title: str = Form(""),
    description: str = Form(""),
    body: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    form = dict(slug=slug, title=title, description=description, content=body)
    try:
        if content.get_page(slug.strip()):
            raise ValueError("A page with this slug already exists")
        content.save_page(session, admin, slug, title, description, body)
    except Exception as e:
        return _page_form(request, admin, form, is_new=True, error=user_message(e), status_code=400)
    return RedirectResponse(url="/admin/pages", status_code=302)

@app.get("/admin/pages/{slug}/edit", response_class=HTMLResponse)
def admin_page_edit_form(slug: str, request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    page = content.get_page(slug)
    if not page:
        raise HTTPException(status_code=404, detail="Page not found")
    form = dict(slug=page.slug, title=page.title, description=page.description, content=page.content)
    return _page_form(request, admin, form, is_new=False)

@app.post("/admin/pages/{slug}/edit")
def admin_page_edit_submit(
    slug: str,
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    body: str = Form(""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    form = dict(slug=slug, title=title, description=description, content=body)
    try:
        content.save_page(session, admin, slug, title, description, body)
    except Exception as e:
        return _page_form(request, admin, form, is_new=False, error=user_message(e), status_code=400)
    return RedirectResponse(url="/admin/pages", status_code=302)

# ---------------------------
# User management (super admin only)
# ---------------------------

def _user_form(request: Request, session, admin: CurrentAdmin, user=None, form: Optional[dict] = None,
               error: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/user_form.html",
        {"request": request, "admin": admin, "user": user, "form": form or {}, "roles": ROLES,
         "chapters": list_chapters(session), "error": error},
        status_code=status_code,
    )

@app.get("/admin/users", response_class=HTMLResponse)
def admin_users(request: Request, error: Optional[str] = None, admin: CurrentAdmin = Depends(super_admin_required),
                session=Depends(get_session)):
    return templates.TemplateResponse(
        request, "admin/users.html",
        {"request": request, "admin": admin, "users": admin_service.list_admins(session), "error": error},
    )

@app.get("/admin/users/new", response_class=HTMLResponse)
def admin_user_new_form(request: Request, admin: CurrentAdmin = Depends(super_admin_required),
                        session=Depends(get_session)):
    return _user_form(request, session, admin, form={"role": "admin"})

@app.post("/admin/users/new")
def admin_user_new_submit(
    request: Request,
    email: str = Form(""),
    name: str = Form(""),
    password: str = Form(""),
    role: str = Form("admin"),
    chapter_id: str = Form(""),
    phone: str = Form(""),
    admin: CurrentAdmin = Depends(super_admin_required),
    session=Depends(get_session),
):
    form = dict(email=email, name=name, role=role, chapter_id=chapter_id, phone=phone)
    try:
        admin_service.create_admin_user(session, admin, AdminUserCreate(
            email=email, name=name, password=password, role=role, chapter_id=_int_or_none(chapter_id), phone=phone,
        ))
    except Exception as e:
        return _user_form(request, session, admin, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/users", status_code=302)

@app.get("/admin/users/{user_id}/edit", response_class=HTMLResponse)
def admin_user_edit_form(user_id: int, request: Request, admin: CurrentAdmin = Depends(super_admin_required),
                         session=Depends(get_session)):
    u = admin_service.get_admin(session, user_id)
    if not u:
        raise HTTPException(status_code=404, detail="Admin user not found")
    form = dict(email=u.email, name=u.name, role=u.role, chapter_id=u.chapter_id, phone=u.phone or "")
    return _user_form(request, session, admin, user=u, form=form)

@app.post("/admin/users/{user_id}/edit")
def admin_user_edit_submit(
    user_id: int,
    request: Request,
    name: str = Form(""),
    role: str = Form("admin"),
    chapter_id: str = Form(""),
    phone: str = Form(""),
    admin: CurrentAdmin = Depends(super_admin_required),
    session=Depends(get_session),
):
    u = admin_service.get_admin(session, user_id)
    if not u:
        raise HTTPException(status_code=404, detail="Admin user not found")
    form = dict(email=u.email, name=name, role=role, chapter_id=chapter_id, phone=phone)
    try:
        admin_service.update_admin_user(session, admin, user_id, name, role, _int_or_none(chapter_id), phone)
    except Exception as e:
        return _user_form(request, session, admin, user=u, form=form, error=_fail(session, e), status_code=400)
    return RedirectResponse(url="/admin/users", status_code=302)

@app.post("/admin/users/{user_id}/password")
def admin_user_password(
    user_id: int,
    request: Request,
    new_password: str = Form(""),
    admin: CurrentAdmin = Depends(super_admin_required),
    session=Depends(get_session),
):
    try:
        admin_service.reset_admin_password(session, admin, user_id, new_password)
    except Exception as e:
        return admin_users(request, error=_fail(session, e), admin=admin, session=session)
    return RedirectResponse(url="/admin/users", status_code=302)

@app.post("/admin/users/{user_id}/delete")
def admin_user_delete(user_id: int, request: Request, admin: CurrentAdmin = Depends(super_admin_required),
                      session=Depends(get_session)):
    try:
        admin_service.delete_admin_user(session, admin, user_id)
    except Exception as e:
        return admin_users(request, error=_fail(session, e), admin=admin, session=session)
    return RedirectResponse(url="/admin/users", status_code=302)

# ---------------------------
# Admin logs, settings, uploads
# ---------------------------

@app.get("/admin/logs", response_class=HTMLResponse)
def admin_logs(
    request: Request,
    entity_type: str = Query(default=""),
    admin: CurrentAdmin = Depends(full_admin_required),
    session=Depends(get_session),
):
    return templates.TemplateResponse(
        request, "admin/logs.html",
        {
            "request": request,
            "admin": admin,
            "logs": list_audit_logs(session, limit=200, entity_type=entity_type or None),
            "entity_types": AUDIT_ENTITY_TYPES,
            "entity_type": entity_type,
        },
    )

def _settings_page(request: Request, session, admin: CurrentAdmin, error: Optional[str] = None,
                   message: Optional[str] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request, "admin/settings.html",
        {"request": request, "admin": admin, "profile": admin_service.get_admin(session, admin.id),
         "error": error, "message": message},
        status_code=status_code,
    )

@app.get("/admin/settings", response_class=HTMLResponse)
def admin_settings(request: Request, ok: Optional[str] = None, admin: CurrentAdmin = Depends(admin_required),
                   session=Depends(get_session)):
    return _settings_page(request, session, admin, message="Profile saved." if ok else None)

@app.post("/admin/settings")
def admin_settings_submit(
    request: Request,
    name: str = Form(""),
    phone: str = Form(""),
    new_password: str = Form(""),
    admin: CurrentAdmin = Depends(admin_required),
    session=Depends(get_session),
):
    try:
        a = admin_service.update_profile(session, admin, name, phone, new_password or None)
    except Exception as e:
        return _settings_page(request, session, admin, error=_fail(session, e), status_code=400)
    # the cookie carries the display name
    set_login_cookie(request, admin_id=a.id, email=a.email, name=a.name, role=a.role, chapter_id=a.chapter_id)
    return RedirectResponse(url="/admin/settings?ok=1", status_code=302)

@app.get("/admin/uploads", response_class=HTMLResponse)
def admin_uploads_form(request: Request, admin: CurrentAdmin = Depends(full_admin_required)):
    return templates.TemplateResponse(
        request, "admin/uploads.html",
        {"request": request, "admin": admin, "stored": None, "allowed": uploads.ADMIN_ALLOWED_LABEL, "error": None},
    )

@app.post("/admin/uploads", response_class=HTMLResponse)
async def admin_uploads_submit(request: Request, file: UploadFile = File(...),
                               admin: CurrentAdmin = Depends(full_admin_required)):
    data = await file.read()
    try:
        stored = uploads.upload_admin_file(file.filename, file.content_type, data)
    except Exception as e:
        return templates.TemplateResponse(
            request, "admin/uploads.html",
            {"request": request, "admin": admin, "stored": None, "allowed": uploads.ADMIN_ALLOWED_LABEL,
             "error": user_message(e, "Failed to upload file")},
            status_code=400,
        )
    logger.info("%s uploaded %s", admin.email, stored.path)
    return templates.TemplateResponse(
        request, "admin/uploads.html",
        {"request": request, "admin": admin, "stored": stored, "allowed": uploads.ADMIN_ALLOWED_LABEL, "error": None},
    )

# ---------------------------
# Content pages (keep last: catches every single-segment path)
# ---------------------------

@app.get("/{slug}", response_class=HTMLResponse)
def content_page(slug: str, request: Request):
    page = content.get_page(slug)
    if not page:
        raise HTTPException(status_code=404, detail="Page not found")
    return templates.TemplateResponse(request, "page.html", {"request": request, "page": page})
