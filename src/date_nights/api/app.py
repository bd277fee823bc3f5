"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID, uuid4

from fastapi import Depends, FastAPI, File, Form, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse, RedirectResponse

from date_nights.api.models import MagicLinkRequest, StatusResponse, TimelineSnapshot
from date_nights.app_logging import configure_logging
from date_nights.containers import AppContainer, BrowsingContext
from date_nights.domain.couples import JoinState
from date_nights.domain.errors import DateNightsError
from date_nights.domain.models import PhotoUpload
from date_nights.services.landing import LandingFlow
from date_nights.services.timeline import TimelineView


def get_context(request: Request) -> BrowsingContext:
    """Return the calling visitor's browsing context."""
    container: AppContainer = request.app.state.container
    return container.context_for(request.state.visitor_id)


def _snapshot_response(view: TimelineView, status_code: int | None = None) -> JSONResponse:
    if status_code is None:
        if not view.is_authed:
            status_code = status.HTTP_401_UNAUTHORIZED
        elif view.join_state == JoinState.FULL:
            status_code = status.HTTP_403_FORBIDDEN
        else:
            status_code = status.HTTP_200_OK
    snapshot = TimelineSnapshot.from_view(view)
    return JSONResponse(snapshot.model_dump(mode="json"), status_code=status_code)


def _landing_response(landing: LandingFlow) -> Response:
    if landing.redirect_to is not None:
        return RedirectResponse(landing.redirect_to, status_code=status.HTTP_303_SEE_OTHER)
    body = StatusResponse(
        status="busy" if landing.busy else "idle", message=landing.status
    )
    return JSONResponse(body.model_dump(mode="json"))


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    cookie_name = container.settings.visitor_cookie_name

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.middleware("http")
    async def assign_visitor(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        visitor_id = request.cookies.get(cookie_name)
        is_new = not visitor_id
        request.state.visitor_id = visitor_id or str(uuid4())
        response = await call_next(request)
        if is_new:
            response.set_cookie(
                cookie_name, request.state.visitor_id, httponly=True, samesite="lax"
            )
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/start")
    async def start_timeline(
        context: BrowsingContext = Depends(get_context),
    ) -> Response:
        """Start a new timeline if the visitor is already signed in."""
        landing = context.landing_flow()
        await landing.open()
        return _landing_response(landing)

    @app.post("/auth/magic-link")
    async def landing_magic_link(
        payload: MagicLinkRequest, context: BrowsingContext = Depends(get_context)
    ) -> Response:
        """Email a link that starts a new timeline after sign-in."""
        landing = context.landing_flow()
        await landing.send_magic_link(payload.email)
        return _landing_response(landing)

    @app.get("/auth/callback")
    async def auth_callback(
        request: Request, context: BrowsingContext = Depends(get_context)
    ) -> Response:
        """Complete a magic link sign-in and route to the right timeline."""
        result = await context.callback_flow().run(str(request.url))
        if result.redirect_to is None:
            logger.info("Auth callback did not sign in: %s", result.message)
            body = StatusResponse(status="error", message=result.message)
            return JSONResponse(
                body.model_dump(mode="json"),
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        return RedirectResponse(result.redirect_to, status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/auth/sign-out")
    async def sign_out(context: BrowsingContext = Depends(get_context)) -> StatusResponse:
        """Sign out and drop this visitor's timeline state."""
        try:
            await context.sign_in.sign_out()
        except DateNightsError as exc:
            logger.warning("Sign-out failed: %s", exc.message)
            return StatusResponse(status="error", message=exc.message)
        context.reset()
        return StatusResponse(status="ok")

    @app.get("/t/{couple_id}")
    async def timeline(
        couple_id: UUID, context: BrowsingContext = Depends(get_context)
    ) -> JSONResponse:
        """Return the timeline, joining and loading on first view."""
        view = context.timeline(couple_id)
        if not view.session_ready or not view.is_authed:
            await view.open()
        elif view.join_state == JoinState.JOINED:
            await view.load_entries()
        return _snapshot_response(view)

    @app.post("/t/{couple_id}/retry")
    async def retry_join(
        couple_id: UUID, context: BrowsingContext = Depends(get_context)
    ) -> JSONResponse:
        """Run joining again after an error or timeout."""
        view = context.timeline(couple_id)
        if view.join_state != JoinState.FULL:
            await view.retry()
        return _snapshot_response(view)

    @app.post("/t/{couple_id}/magic-link")
    async def timeline_magic_link(
        couple_id: UUID,
        payload: MagicLinkRequest,
        context: BrowsingContext = Depends(get_context),
    ) -> JSONResponse:
        """Email a link that signs in and returns to this timeline."""
        view = context.timeline(couple_id)
        await view.send_magic_link(payload.email)
        return _snapshot_response(view, status_code=status.HTTP_200_OK)

    @app.post("/t/{couple_id}/entries")
    async def add_entry(
        couple_id: UUID,
        entry_date: date = Form(...),
        title: str = Form(...),
        photo: UploadFile | None = File(None),
        context: BrowsingContext = Depends(get_context),
    ) -> JSONResponse:
        """Save a dated entry with an optional photo."""
        view = context.timeline(couple_id)
        if view.join_state != JoinState.JOINED:
            return _snapshot_response(view, status_code=status.HTTP_409_CONFLICT)
        upload = None
        if photo is not None and photo.filename:
            upload = PhotoUpload(
                file_name=photo.filename,
                content=await photo.read(),
                content_type=photo.content_type,
            )
        entry = await view.add_entry(entry_date, title, upload)
        if entry is None:
            return _snapshot_response(view, status_code=status.HTTP_400_BAD_REQUEST)
        return _snapshot_response(view, status_code=status.HTTP_201_CREATED)

    return app
