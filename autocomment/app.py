import json
import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from . import store
from .auth import COOKIE_NAME, SessionError, extract_session_token, issue_session_token, verify_session_token
from .db import init_db, make_engine, make_sessionmaker
from .pages import FRONTEND_DIR, render_page
from .poll import PollAborted, PollJob
from .settings import Settings, settings as default_settings
from .youtube import ClientError, YouTubeClient

log = logging.getLogger(__name__)

LANDING_PAGE = "/"
CREATE_PAGE = "/create.html"
MAX_COMMENT_LENGTH = 10000


def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_db(request: Request):
    db = request.app.state.sessionmaker()
    try:
        yield db
    finally:
        db.close()

def get_youtube(request: Request) -> YouTubeClient:
    return request.app.state.youtube

def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)

def _landing_page(settings: Settings, frontend_dir: str):
    return render_page("index.html", {
        "GOOGLE_CLIENT_ID": settings.CLIENT_ID,
        "GOOGLE_REDIRECT_URI": settings.REDIRECT_URL,
    }, frontend_dir)

async def read_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if "application/json" in request.headers.get("Content-Type", ""):
        try:
            data = json.loads(raw or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))

def require_session(request: Request, settings: Settings = Depends(get_settings)) -> Optional[Dict[str, str]]:
    token = extract_session_token(request)
    if not token:
        return None
    try:
        return verify_session_token(token, settings.SESSION_SECRET)
    except SessionError as e:
        log.warning("Invalid session token: %s", e)
        return None


def create_app(settings: Optional[Settings] = None, frontend_dir: str = FRONTEND_DIR) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="AutoComment")
    app.state.settings = settings

    @app.on_event("startup")
    def startup():
        settings.ensure_complete()
        engine = make_engine(settings.DATABASE_URL)
        init_db(engine)
        app.state.engine = engine
        app.state.sessionmaker = make_sessionmaker(engine)
        app.state.youtube = YouTubeClient(
            client_id=settings.CLIENT_ID,
            client_secret=settings.CLIENT_SECRET,
            redirect_uri=settings.REDIRECT_URL,
            api_key=settings.YOUTUBE_API_KEY,
            timeout=settings.HTTP_TIMEOUT,
        )
        log.info("Started, database %s", engine.url.render_as_string(hide_password=True))

    @app.on_event("shutdown")
    def shutdown():
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            engine.dispose()
            log.info("Database connections closed")

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def index(
        code: Optional[str] = None,
        error: Optional[str] = None,
        db: Session = Depends(get_db),
        youtube: YouTubeClient = Depends(get_youtube),
    ):
        if error:
            log.warning("OAuth consent failed: %s", error)
            return _landing_page(settings, frontend_dir)
        if not code:
            return _landing_page(settings, frontend_dir)

        try:
            tokens = youtube.exchange_code(code)
            me = youtube.get_my_channel(tokens.access_token)
        except ClientError as e:
            log.error("Failed to sign in with YouTube: %s", e)
            return _landing_page(settings, frontend_dir)

        if tokens.refresh_token is not None:
            store.upsert_user(db, user_id=me.id, username=me.title, refresh_token=tokens.refresh_token)

        response = _redirect(CREATE_PAGE)
        response.set_cookie(
            COOKIE_NAME,
            issue_session_token(me.id, me.title, settings.SESSION_SECRET, settings.SESSION_TTL),
            max_age=settings.SESSION_TTL,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )
        log.info("User %s (%s) signed in", me.id, me.title)
        return response

    @app.get("/index.html")
    def landing():
        # the static copy still holds the raw placeholders
        return _landing_page(settings, frontend_dir)

    @app.post("/create")
    def create(
        payload: Dict[str, Any] = Depends(read_body),
        session: Optional[Dict[str, str]] = Depends(require_session),
        db: Session = Depends(get_db),
        youtube: YouTubeClient = Depends(get_youtube),
    ):
        if session is None:
            return _redirect(LANDING_PAGE)
        if store.get_user(db, session["id"]) is None:
            # signed in without a stored refresh token, consent again
            log.warning("User %s has no stored credentials", session["id"])
            return _redirect(LANDING_PAGE)

        handle = str(payload.get("channel") or "").strip()
        comment = str(payload.get("comment") or "").strip()
        if not handle:
            return _redirect(f"{CREATE_PAGE}?error=invalid_channel")
        if not comment:
            return _redirect(f"{CREATE_PAGE}?error=empty_comment")
        if len(comment) > MAX_COMMENT_LENGTH:
            return _redirect(f"{CREATE_PAGE}?error=comment_too_long")

        try:
            channel_id = youtube.find_channel_id(handle)
        except ClientError as e:
            log.error("Failed to look up channel %s: %s", handle, e)
            return _redirect(f"{CREATE_PAGE}?error=invalid_channel")
        if channel_id is None:
            return _redirect(f"{CREATE_PAGE}?error=invalid_channel")

        try:
            latest = youtube.get_latest_video_id(channel_id)
        except ClientError as e:
            log.error("Failed to fetch latest video of %s: %s", channel_id, e)
            return _redirect(CREATE_PAGE)

        store.add_channel_if_absent(db, channel_id=channel_id, handle=handle, latest=latest)
        store.add_comment(db, comment=comment, user_id=session["id"], channel_id=channel_id)
        log.info("User %s queued a comment for channel %s (%s)", session["id"], channel_id, handle)
        return render_page("confirmation.html", {"CHANNEL_NAME": handle}, frontend_dir)

    # TODO: /poll is reachable by anyone who can reach the service; restrict it once the scheduler is known.
    @app.post("/poll")
    def poll(
        db: Session = Depends(get_db),
        youtube: YouTubeClient = Depends(get_youtube),
    ):
        job = PollJob(db, youtube, continue_on_post_error=settings.POLL_CONTINUE_ON_POST_ERROR)
        try:
            report = job.run()
        except PollAborted as e:
            return JSONResponse({**e.report.as_dict(), "detail": e.reason}, status_code=502)
        return report.as_dict()

    # Mount frontend last so the API routes above take precedence
    if os.path.isdir(frontend_dir):
        app.mount("/", StaticFiles(directory=frontend_dir, html=True), name="frontend")

    return app


app = create_app()
