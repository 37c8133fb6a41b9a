"""
fn-shortcut - FastAPI Application
=================================
Creates and configures the web application behind the control console.

Responsibilities:
    - Load configuration and build the service objects (credential store,
      session registry, log broadcaster, install manager)
    - Register the control API routes
    - Render the page at "/" (register, login or control page)
    - Map HTTP errors to the appliance response conventions:
      unknown routes -> 404 plain text, everything else -> JSON
      {"success": false, "message": ...}

All state lives on the objects created here (also exposed on app.state);
nothing is module-global, so each create_app() call is independent.
"""

import os
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import Cookie, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from fnshortcut import __version__
from fnshortcut.auth import SESSION_COOKIE, CredentialStore, SessionRegistry
from fnshortcut.config import ConfigManager
from fnshortcut.installer import CommandRestarter, InstallManager
from fnshortcut.logs import LogBroadcaster
from fnshortcut.routes import create_router


STARTUP_NOTICES = (
    "1. Note: this app may conflict with other apps that modify the desktop "
    "home page (such as Fndesk). Export their configuration before pressing "
    "\"Install service\".",
    "2. If anything goes wrong, press \"System restore\" at any time to revert "
    "the configuration.",
)


def create_app(
    project_dir: str | None = None,
    config: dict | None = None,
    restart: Callable | None = None,
) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        project_dir: Directory holding config.yaml. If None, the parent of
                     this package is used.
        config:      Pre-loaded configuration (skips ConfigManager).
        restart:     Replacement for the service restart action.

    Returns:
        Configured FastAPI application ready to run with uvicorn.
    """
    # -- Resolve configuration -------------------------------------------------
    if project_dir is None:
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if config is None:
        config = ConfigManager(project_dir).load()

    paths = config["paths"]
    templates_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "web", "templates")

    # -- Initialize services ---------------------------------------------------
    broadcaster = LogBroadcaster(
        max_lines=config["logs"]["max_lines"],
        timezone=config["logs"].get("timezone"),
        queue_size=config["logs"].get("subscriber_queue", 1000),
    )
    if "_config_error" in config:
        broadcaster.append(f"Config error, using defaults: {config['_config_error']}")

    credentials = CredentialStore(
        paths["data_dir"],
        rounds=config["auth"]["kdf_rounds"],
        log=broadcaster.append,
    )
    sessions = SessionRegistry(lifetime_hours=config["auth"]["session_hours"])
    installer = InstallManager(
        broadcaster,
        web_root=paths["web_root"],
        resource_dir=paths["resource_dir"],
        assets_dir=paths["assets_dir"],
        restart=restart or CommandRestarter(
            config["service"]["restart_command"],
            timeout=config["service"].get("restart_timeout"),
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        port = config["web"]["port"]
        broadcaster.append(f"fn-shortcut service started, port: {port}", with_timestamp=False)
        for notice in STARTUP_NOTICES:
            broadcaster.append(notice, with_timestamp=False)
        yield

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="fn-shortcut",
        description="Installer console for the desktop file manager enhancer",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    templates = Jinja2Templates(directory=templates_dir)

    # -- Store services on app state -------------------------------------------
    app.state.config = config
    app.state.broadcaster = broadcaster
    app.state.credentials = credentials
    app.state.sessions = sessions
    app.state.installer = installer

    # -- Error rendering -------------------------------------------------------

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return PlainTextResponse("Not Found", status_code=404)
        return JSONResponse(
            {"success": False, "message": str(exc.detail)},
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"success": False, "message": "Invalid request"}, status_code=400)

    # -- Register API routes ---------------------------------------------------
    app.include_router(create_router(
        credentials=credentials,
        sessions=sessions,
        broadcaster=broadcaster,
        installer=installer,
        min_password_length=config["auth"]["min_password_length"],
    ))

    # -- Page route ------------------------------------------------------------

    @app.get("/")
    def index(request: Request, session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE)):
        """Registration page, login page or control page depending on state."""
        if not credentials.is_registered():
            page = "register.html"
        elif not sessions.validate(session_id):
            page = "login.html"
        else:
            page = "index.html"
        return templates.TemplateResponse(request, page, {"version": __version__})

    return app
