"""
fn-shortcut - Server Package
============================
Appliance-side installer that grafts FileManagerEnhancer.js into the NAS
desktop web front end, plus the control console used to apply or revert it.

This package provides:
- FastAPI web application serving the control page and JSON endpoints
- Single-admin password authentication with cookie sessions
- Live log broadcast (polling snapshot and Server-Sent Events)
- The install/restore engine that patches, packages and rolls back the web root

Architecture:
    main.py      -> FastAPI app creation, error handlers, page rendering
    auth.py      -> Credential store (bcrypt-pbkdf), session registry, route guard
    config.py    -> Read/write config.yaml, environment overrides
    routes.py    -> Control API endpoint handlers
    logs.py      -> Bounded log buffer and live subscriber fan-out
    installer.py -> Install/restore state machine and service restart action
    patcher.py   -> Entry HTML script-reference injection and removal
    files.py     -> Directory copy, permission and archive helpers
"""

__version__ = "1.0.0"
