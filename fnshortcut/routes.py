"""
fn-shortcut - Control API Routes
================================
HTTP endpoints behind the control page.

Route groups:
    /register, /login  - Password setup and login (set the session cookie)
    /logs, /logs/sse   - Log snapshot and live Server-Sent Events stream
    /install, /restore - Start a procedure in the background (session required)
    /status            - Live readiness check

JSON bodies follow the appliance convention {"success": bool, "message": str}.
Errors are raised as HTTPException and rendered by the handler in main.py.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from fnshortcut.auth import (
    MIN_PASSWORD_LENGTH,
    SESSION_COOKIE,
    CredentialStore,
    SessionRegistry,
    require_session,
)
from fnshortcut.installer import InstallManager
from fnshortcut.logs import LogBroadcaster


# =============================================================================
# Response Models (Pydantic)
# =============================================================================

class ActionResponse(BaseModel):
    """Outcome of a command; message only accompanies failures."""
    success: bool
    message: str | None = None

class LogsResponse(BaseModel):
    """Buffered log lines, oldest first."""
    logs: list[str] = Field(default_factory=list)

class ReadyResponse(BaseModel):
    """Whether the enhancer is live on the desktop."""
    ready: bool


def format_event(line: str) -> str:
    """Encode one log line as a Server-Sent Events message."""
    return "".join(f"data: {part}\n" for part in line.split("\n")) + "\n"


# =============================================================================
# Router Factory
# =============================================================================

def create_router(
    credentials: CredentialStore,
    sessions: SessionRegistry,
    broadcaster: LogBroadcaster,
    installer: InstallManager,
    min_password_length: int = MIN_PASSWORD_LENGTH,
) -> APIRouter:
    """
    Create the control API router.

    Args:
        credentials:         Stores and verifies the admin password.
        sessions:            Issues and validates session tokens.
        broadcaster:         Log buffer and live fan-out.
        installer:           Install/restore engine.
        min_password_length: Registration password policy.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter()

    # Shorthand for the session dependency
    auth = Depends(require_session(sessions))

    def _open_session(response: Response) -> None:
        token = sessions.create()
        response.set_cookie(
            SESSION_COOKIE,
            token,
            max_age=int(sessions.lifetime),
            path="/",
            httponly=True,
        )

    def _dispatch(action: str, background_tasks: BackgroundTasks) -> ActionResponse:
        ticket = installer.claim(action)
        if ticket is None:
            running = installer.current or "another operation"
            raise HTTPException(status_code=409, detail=f"Busy: {running} is still running")
        background_tasks.add_task(installer.run, action, ticket)
        return ActionResponse(success=True)

    # =========================================================================
    # AUTH ROUTES
    # =========================================================================
    # Plain (sync) handlers: key derivation is CPU-bound and runs in the threadpool

    @router.post("/register", response_model=ActionResponse, response_model_exclude_none=True)
    def register(response: Response, password: str = Form(default="")):
        """
        First-time setup: set the admin password and log in.
        """
        if len(password) < min_password_length:
            raise HTTPException(
                status_code=400,
                detail=f"Password must be at least {min_password_length} characters",
            )
        if credentials.is_registered():
            raise HTTPException(status_code=400, detail="Password already set")

        if not credentials.save(credentials.hash_password(password)):
            raise HTTPException(status_code=500, detail="Failed to save password")

        _open_session(response)
        broadcaster.append("Admin password set")
        return ActionResponse(success=True)

    @router.post("/login", response_model=ActionResponse, response_model_exclude_none=True)
    def login(response: Response, password: str = Form(default="")):
        """
        Log in with the admin password.
        """
        record = credentials.load()
        if record is None:
            raise HTTPException(status_code=401, detail="Password not set")
        if not credentials.verify(password, record):
            raise HTTPException(status_code=401, detail="Wrong password")

        _open_session(response)
        return ActionResponse(success=True)

    # =========================================================================
    # LOG ROUTES
    # =========================================================================

    @router.get("/logs", response_model=LogsResponse)
    async def get_logs():
        """Snapshot of the buffered log lines."""
        return LogsResponse(logs=broadcaster.snapshot())

    @router.get("/logs/sse")
    async def stream_logs():
        """
        Live log stream: replays the buffer, then pushes new lines until the
        client disconnects.
        """
        async def event_stream():
            subscription = broadcaster.subscribe()
            try:
                async for line in subscription:
                    yield format_event(line)
            finally:
                subscription.close()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    # =========================================================================
    # ENGINE ROUTES
    # =========================================================================

    @router.post(
        "/install",
        response_model=ActionResponse,
        response_model_exclude_none=True,
        dependencies=[auth],
    )
    async def install(background_tasks: BackgroundTasks):
        """
        Apply the enhancer. Answers immediately; progress goes to the log.
        """
        return _dispatch("install", background_tasks)

    @router.post(
        "/restore",
        response_model=ActionResponse,
        response_model_exclude_none=True,
        dependencies=[auth],
    )
    async def restore(background_tasks: BackgroundTasks):
        """
        Revert the enhancer. Answers immediately; progress goes to the log.
        """
        return _dispatch("restore", background_tasks)

    @router.get("/status", response_model=ReadyResponse)
    def status():
        """Readiness recomputed from the live web root."""
        return ReadyResponse(ready=installer.check_ready())

    return router
