# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "fastapi>=0.110",
#     "uvicorn>=0.29",
# ]
# ///
"""
AccessiList Checklist HTTP API.

REST endpoints over checklist_store:
  POST       /api/save          - Save a session blob
  GET        /api/restore       - Restore a session (?sessionKey=KEY)
  GET        /api/list          - List all sessions, newest first
  GET/DELETE /api/delete        - Delete a session (?session=KEY)
  POST       /api/instantiate   - Create a placeholder session (idempotent)
  GET        /api/types         - Checklist type catalogue
  GET        /api/health        - Liveness check

Every endpoint is also reachable under its legacy ``/php/api/<name>.php``
path. Responses use the envelope ``{success, timestamp, data|message}``.
"""

import json
import logging
import time
from pathlib import Path

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import checklist_store as store

log = logging.getLogger("checklist_api")


def send_error(message: str, status: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"success": False, "message": message, "timestamp": int(time.time())},
    )


def send_success(payload=None) -> JSONResponse:
    body = {"success": True, "timestamp": int(time.time())}
    if payload:
        body["data"] = payload
    return JSONResponse(content=body)


async def _json_body(request: Request):
    raw = await request.body()
    try:
        return json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def build_router(saves_dir: str | Path | None = None, types_file: str | Path | None = None) -> APIRouter:
    """Router bound to one saves directory and type catalogue."""
    router = APIRouter(tags=["checklist"])

    def _types() -> store.ChecklistTypes:
        return store.ChecklistTypes.load(types_file)

    async def save_session(request: Request):
        data = await _json_body(request)
        try:
            store.save(data, saves_dir=saves_dir, types=_types())
        except store.ChecklistError as e:
            return send_error(e.message, e.status)
        return send_success({"message": ""})

    async def restore_session(sessionKey: str = ""):
        try:
            return send_success(store.restore(sessionKey, saves_dir=saves_dir))
        except store.ChecklistError as e:
            return send_error(e.message, e.status)

    async def list_sessions():
        try:
            instances = store.list_sessions(saves_dir=saves_dir)
        except OSError as e:
            log.error("Failed to access saves directory: %s", e)
            return send_error("Failed to access saves directory", 500)
        return JSONResponse(content={"success": True, "timestamp": int(time.time()), "data": instances})

    async def delete_session(session: str = ""):
        try:
            store.delete(session, saves_dir=saves_dir)
        except store.ChecklistError as e:
            return send_error(e.message, e.status)
        return send_success({"message": "Instance deleted successfully"})

    async def instantiate_session(request: Request):
        if request.method != "POST":
            return send_error("Method not allowed", 405)
        data = await _json_body(request)
        try:
            created = store.instantiate(data, saves_dir=saves_dir, types=_types())
        except store.ChecklistError as e:
            return send_error(e.message, e.status)
        return send_success({"message": "Instance created" if created else "Instance already exists"})

    async def checklist_types():
        return send_success(_types().to_dict())

    async def health():
        return send_success({"status": "ok", "savesDir": str(saves_dir or store.SAVES_DIR)})

    routes = [
        ("save", save_session, ["POST"]),
        ("restore", restore_session, ["GET"]),
        ("list", list_sessions, ["GET"]),
        ("delete", delete_session, ["GET", "POST", "DELETE"]),
        ("instantiate", instantiate_session, ["GET", "POST", "PUT", "DELETE"]),
        ("types", checklist_types, ["GET"]),
        ("health", health, ["GET"]),
    ]
    for name, endpoint, methods in routes:
        router.add_api_route(f"/api/{name}", endpoint, methods=methods, name=name)
        router.add_api_route(
            f"/php/api/{name}.php", endpoint, methods=methods, name=f"{name}_php", include_in_schema=False
        )
    return router


def create_app(
    saves_dir: str | Path | None = None,
    types_file: str | Path | None = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Build the checklist API application."""
    app = FastAPI(
        title="AccessiList Checklist API",
        description="Save/restore storage for accessibility checklist sessions.",
        version="1.0.0",
    )
    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.include_router(build_router(saves_dir, types_file))
    log.debug("Checklist API created (saves=%s)", saves_dir or store.SAVES_DIR)
    return app


app = create_app()
