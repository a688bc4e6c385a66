"""FastAPI shell exposing the book dashboard to a browser front end."""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from dotenv import load_dotenv
import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.api import BookApi
from ..core.dashboard import Dashboard, DashboardState
from ..core.errors import DraftLocked, FormValidationError, SubmissionInProgress
from ..core.forms import Draft
from ..core.models import Book
from ..core.mutations import MutationResult

load_dotenv()

log = structlog.get_logger()

SESSION_TTL = int(os.environ.get("SESSION_TTL", "1800"))  # 30 minutes
MAX_SESSIONS = 500  # cap total sessions to bound memory


@dataclass
class Session:
    dashboard: Dashboard
    created_at: float = field(default_factory=time.time)
    touched_at: float = field(default_factory=time.time)


# In-memory session store
sessions: dict[str, Session] = {}

# Shared remote client; tests swap in one backed by a mock transport.
book_api = BookApi()


def _clean_expired() -> None:
    now = time.time()
    expired = [sid for sid, s in sessions.items() if now - s.touched_at > SESSION_TTL]
    for sid in expired:
        sessions.pop(sid, None)


def _get_session(session_id: str) -> Session | None:
    session = sessions.get(session_id)
    if not session:
        return None
    if time.time() - session.touched_at > SESSION_TTL:
        sessions.pop(session_id, None)
        return None
    session.touched_at = time.time()
    return session


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Session not found or expired."}, status_code=404)


def _draft_json(draft: Draft | None) -> dict | None:
    if draft is None:
        return None
    return {
        "mode": draft.mode,
        "bookId": draft.book_id,
        "fields": draft.fields,
        "errors": draft.visible_errors,
        "valid": draft.is_valid,
        "submitting": draft.submitting,
        "targetMissing": draft.target_missing,
    }


def _state_json(dashboard: Dashboard, state: DashboardState) -> dict:
    view = state.view
    pending = dashboard.pending_delete
    return {
        "status": state.entry.status.value,
        "loading": state.is_loading,
        "fetching": state.entry.is_fetching,
        "error": state.entry.error,
        "filters": {
            "searchTerm": state.filters.search_term,
            "genre": state.filters.selected_genre,
            "status": state.filters.selected_status,
            "page": state.filters.current_page,
        },
        "books": [book.to_json() for book in view.page_items],
        "totalCount": view.total_count,
        "totalPages": view.total_pages,
        "pageSize": view.page_size,
        "genres": list(view.available_genres),
        "statuses": list(view.available_statuses),
        "genreOptions": dashboard.genre_options(),
        "draft": _draft_json(dashboard.draft),
        "pendingDelete": pending.book.to_json() if pending else None,
    }


def _result_json(result: MutationResult) -> JSONResponse:
    if result.ok:
        return JSONResponse({"ok": True, "kind": result.kind, "bookId": result.book_id})
    return JSONResponse(
        {"ok": False, "kind": result.kind, "error": result.message},
        status_code=502,
    )


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _bad_body() -> JSONResponse:
    return JSONResponse({"error": "Request body must be a JSON object."}, status_code=400)


def _optional_text(value) -> str | None:
    return None if value is None else str(value)


def _lookup_book(dashboard: Dashboard, book_id: str | None) -> Book | None:
    if not book_id:
        return None
    return dashboard.find(str(book_id))


app = FastAPI(title="Bookdash", docs_url=None, redoc_url=None)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "0.1.0",
        "environment": os.environ.get("ENV", "dev"),
        "sessions_active": len(sessions),
    }


@app.post("/api/sessions")
async def create_session():
    _clean_expired()
    if len(sessions) >= MAX_SESSIONS:
        return JSONResponse(
            {"error": "Server is busy. Please try again in a few minutes."},
            status_code=503,
        )
    session_id = uuid.uuid4().hex[:12]
    sessions[session_id] = Session(dashboard=Dashboard(book_api))
    log.info("session_created", session_id=session_id)
    return {"session_id": session_id}


@app.get("/api/sessions/{session_id}/view")
async def view(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    state = await s.dashboard.load()
    return _state_json(s.dashboard, state)


@app.post("/api/sessions/{session_id}/refresh")
async def refresh(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    state = await s.dashboard.retry()
    return _state_json(s.dashboard, state)


@app.post("/api/sessions/{session_id}/filters")
async def update_filters(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _json_body(request)
    if body is None:
        return _bad_body()
    dashboard = s.dashboard
    await dashboard.load()

    if body.get("clear"):
        dashboard.clear_filters()
    if "searchTerm" in body:
        dashboard.set_search_term(str(body["searchTerm"] or ""))
    if "genre" in body:
        dashboard.set_genre(_optional_text(body["genre"]))
    if "status" in body:
        dashboard.set_status(_optional_text(body["status"]))
    if "page" in body:
        try:
            page = int(body["page"])
        except (TypeError, ValueError):
            return JSONResponse({"error": "Page must be a number."}, status_code=400)
        dashboard.set_page(page)

    return _state_json(dashboard, dashboard.state())


@app.post("/api/sessions/{session_id}/draft")
async def open_draft(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _json_body(request)
    if body is None:
        return _bad_body()
    dashboard = s.dashboard
    await dashboard.load()

    book_id = body.get("bookId")
    if book_id:
        book = _lookup_book(dashboard, book_id)
        if book is None:
            return JSONResponse({"error": "Book not found."}, status_code=404)
        draft = dashboard.open_edit(book)
    else:
        draft = dashboard.open_create()
    return {"draft": _draft_json(draft), "genreOptions": dashboard.genre_options()}


@app.patch("/api/sessions/{session_id}/draft")
async def edit_draft(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    draft = s.dashboard.draft
    if draft is None:
        return JSONResponse({"error": "No form is open."}, status_code=409)
    body = await _json_body(request)
    if body is None:
        return _bad_body()
    name = str(body.get("field") or "")
    if name not in draft.fields:
        return JSONResponse({"error": f"Unknown field: {name}"}, status_code=400)
    try:
        if "value" in body:
            draft.change(name, body["value"])
        else:
            draft.blur(name)
    except DraftLocked as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return {"draft": _draft_json(draft)}


@app.delete("/api/sessions/{session_id}/draft")
async def close_draft(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    s.dashboard.close_draft()
    return {"draft": None}


@app.post("/api/sessions/{session_id}/draft/submit")
async def submit_draft(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    dashboard = s.dashboard
    draft = dashboard.draft
    if draft is None:
        return JSONResponse({"error": "No form is open."}, status_code=409)
    try:
        result = await dashboard.submit_draft()
    except FormValidationError as e:
        return JSONResponse({"ok": False, "errors": e.errors}, status_code=422)
    except (SubmissionInProgress, DraftLocked) as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return _result_json(result)


@app.post("/api/sessions/{session_id}/delete")
async def ask_delete(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _json_body(request)
    if body is None:
        return _bad_body()
    dashboard = s.dashboard
    await dashboard.load()
    book = _lookup_book(dashboard, body.get("bookId"))
    if book is None:
        return JSONResponse({"error": "Book not found."}, status_code=404)
    dashboard.ask_delete(book)
    return {"pendingDelete": book.to_json()}


@app.delete("/api/sessions/{session_id}/delete")
async def cancel_delete(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    s.dashboard.cancel_delete()
    return {"pendingDelete": None}


@app.post("/api/sessions/{session_id}/delete/confirm")
async def confirm_delete(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    if s.dashboard.pending_delete is None:
        return JSONResponse({"error": "No delete is pending."}, status_code=409)
    try:
        result = await s.dashboard.confirm_delete()
    except SubmissionInProgress as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return _result_json(result)


@app.get("/api/sessions/{session_id}/notifications")
async def notifications(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    return {
        "notifications": [
            {"level": n.level, "message": n.message, "createdAt": n.created_at}
            for n in s.dashboard.notifications.drain()
        ]
    }


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "bookdash.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
