"""Starlette JSON API for the inventory, shopping list and AI review flow."""

from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.staticfiles import StaticFiles

from ..config import InventarConfig
from ..db import ExpenseDB, InventoryDB, ShoppingListDB
from ..db.schema import utcnow
from ..models import STATUS_HOME, STATUS_SHOPPING, InventoryItem
from ..review import CommitError, InvalidTransition, ReviewSession, ReviewState
from ..session import AnonymousAuth, Session
from ..views import days_left, expense_overview, home_by_location, is_near_expiry, shopping_by_category
from ..vision import AIRequestError, ImagePayload, VisionBackend, create_backend

logger = logging.getLogger(__name__)

SESSION_COOKIE = "inventar_uid"
SESSION_MAX_AGE = 60 * 60 * 24 * 365

STORE_ALERT = "Nepodařilo se uložit změny. Zkuste to prosím znovu."


class AnonymousSessionMiddleware(BaseHTTPMiddleware):
    """Attach a Session to every API request, signing in anonymously when needed."""

    def __init__(self, app, auth: AnonymousAuth) -> None:
        super().__init__(app)
        self._auth = auth

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith("/api/") or request.url.path == "/api/health":
            return await call_next(request)

        session = self._auth.resume(request.cookies.get(SESSION_COOKIE))
        created = False
        if session is None:
            try:
                session = self._auth.sign_in()
            except RuntimeError as exc:
                return JSONResponse({"detail": str(exc)}, status_code=503)
            created = True
        request.state.session = session

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error in %s %s", request.method, request.url.path)
            response = JSONResponse({"detail": STORE_ALERT}, status_code=500)
        if created:
            response.set_cookie(
                SESSION_COOKIE,
                session.uid,
                max_age=SESSION_MAX_AGE,
                httponly=True,
                samesite="lax",
            )
        return response


def _session(request: Request) -> Session:
    return request.state.session


async def _body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Neplatný JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Očekáván JSON objekt")
    return payload


def _item_payload(item: InventoryItem, now=None) -> dict[str, Any]:
    data = item.to_dict()
    if item.status == STATUS_HOME:
        now = now or utcnow()
        data["days_left"] = days_left(item.expiry_date, now)
        data["near_expiry"] = is_near_expiry(item.expiry_date, now)
    return data


def _index(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Neplatný index") from exc


def create_app(
    config: InventarConfig,
    *,
    backend: VisionBackend | None = None,
    static_dir: str | None = None,
    allow_origins: list[str] | None = None,
) -> Starlette:
    """Create the Starlette app exposing the inventory API and optional SPA."""

    catalog = config.catalog
    inventory = InventoryDB(config.app.db_path, catalog=catalog)
    shopping_list = ShoppingListDB(inventory)
    expenses = ExpenseDB(config.app.db_path)
    auth = AnonymousAuth(inventory.connection, config.app.app_id)
    ai = backend or create_backend(config)
    reviews: dict[str, ReviewSession] = {}

    def review_for(session: Session) -> ReviewSession:
        review = reviews.get(session.uid)
        if review is None:
            review = reviews[session.uid] = ReviewSession(catalog=catalog)
        return review

    def release(session: Session, review: ReviewSession) -> dict[str, Any]:
        payload = review.to_dict()
        if review.state is ReviewState.IDLE and not review.candidates:
            reviews.pop(session.uid, None)
        return payload

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "app_id": config.app.app_id})

    async def catalog_info(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "units": list(catalog.units),
                "categories": list(catalog.categories),
                "locations": list(catalog.locations),
            }
        )

    # ── items ──

    async def list_items(request: Request) -> JSONResponse:
        status = request.query_params.get("status")
        if status is not None and status not in (STATUS_SHOPPING, STATUS_HOME):
            raise HTTPException(status_code=400, detail="Neplatný status")
        items = inventory.list_items(_session(request), status=status)
        now = utcnow()
        return JSONResponse({"items": [_item_payload(i, now) for i in items]})

    async def add_item(request: Request) -> JSONResponse:
        body = await _body(request)
        name = str(body.get("name") or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Název položky nesmí být prázdný")
        emoji = body.get("emoji") or ""
        if not emoji:
            emoji = await ai.suggest_emoji(name, body.get("category"))
        item_id = inventory.add_item(
            _session(request),
            name=name,
            amount=body.get("amount", 1),
            unit=body.get("unit"),
            category=body.get("category"),
            status=body.get("status", STATUS_SHOPPING),
            location=body.get("location"),
            is_bought=bool(body.get("is_bought", False)),
            emoji=emoji,
        )
        item = inventory.get_item(_session(request), item_id)
        return JSONResponse(_item_payload(item), status_code=201)

    async def update_item(request: Request) -> JSONResponse:
        item_id = request.path_params["item_id"]
        body = await _body(request)
        if isinstance(body.get("expiry_date"), str):
            body["expiry_date"] = datetime.fromisoformat(body["expiry_date"])
        elif body.get("expiry_date") is not None:
            raise HTTPException(status_code=400, detail="Neplatné datum expirace")
        inventory.update_item(_session(request), item_id, **body)
        return JSONResponse(_item_payload(inventory.get_item(_session(request), item_id)))

    async def delete_item(request: Request) -> Response:
        inventory.delete_item(_session(request), request.path_params["item_id"])
        return Response(status_code=204)

    async def set_bought(request: Request) -> JSONResponse:
        item_id = request.path_params["item_id"]
        body = await _body(request)
        inventory.toggle_bought(_session(request), item_id, bool(body.get("value", True)))
        return JSONResponse(_item_payload(inventory.get_item(_session(request), item_id)))

    async def add_to_cart(request: Request) -> JSONResponse:
        item_id = request.path_params["item_id"]
        inventory.add_to_cart(_session(request), item_id)
        return JSONResponse(_item_payload(inventory.get_item(_session(request), item_id)))

    async def adjust_amount(request: Request) -> JSONResponse:
        item_id = request.path_params["item_id"]
        body = await _body(request)
        try:
            delta = float(body.get("delta", 0))
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail="Neplatná změna množství") from exc
        amount = inventory.adjust_amount(_session(request), item_id, delta)
        return JSONResponse({"id": item_id, "amount": amount})

    async def move_bought(request: Request) -> JSONResponse:
        body = await _body(request)
        moved = inventory.move_bought_home(_session(request), body.get("location"))
        return JSONResponse({"moved": moved})

    async def shopping_view(request: Request) -> JSONResponse:
        items = inventory.list_items(_session(request), status=STATUS_SHOPPING)
        groups, bought = shopping_by_category(items, catalog)
        return JSONResponse(
            {
                "by_category": [
                    {"category": cat, "items": [i.to_dict() for i in rows]}
                    for cat, rows in groups.items()
                ],
                "bought": [i.to_dict() for i in bought],
            }
        )

    async def home_view(request: Request) -> JSONResponse:
        items = inventory.list_items(_session(request), status=STATUS_HOME)
        now = utcnow()
        groups = home_by_location(items, catalog)
        return JSONResponse(
            {
                "by_location": [
                    {"location": loc, "items": [_item_payload(i, now) for i in rows]}
                    for loc, rows in groups.items()
                ]
            }
        )

    # ── shopping list entries ──

    async def list_entries(request: Request) -> JSONResponse:
        entries = shopping_list.list_entries(_session(request))
        return JSONResponse({"items": [e.to_dict() for e in entries]})

    async def add_entry(request: Request) -> JSONResponse:
        body = await _body(request)
        entry_id = shopping_list.add_entry(_session(request), str(body.get("name") or ""))
        return JSONResponse({"id": entry_id}, status_code=201)

    async def complete_entry(request: Request) -> JSONResponse:
        body = await _body(request) if await request.body() else {}
        item_id = shopping_list.complete_entry(
            _session(request), request.path_params["entry_id"], body.get("location")
        )
        return JSONResponse({"item_id": item_id})

    async def delete_entry(request: Request) -> Response:
        shopping_list.delete_entry(_session(request), request.path_params["entry_id"])
        return Response(status_code=204)

    # ── expenses ──

    async def list_expenses(request: Request) -> JSONResponse:
        rows = expenses.list_expenses(_session(request))
        return JSONResponse({"items": [e.to_dict() for e in rows]})

    async def add_expense(request: Request) -> JSONResponse:
        body = await _body(request)
        expense_id = expenses.add_expense(
            _session(request), str(body.get("label") or ""), body.get("amount_czk", 0)
        )
        if expense_id is None:
            raise HTTPException(status_code=400, detail="Zadejte popis a nenulovou částku")
        return JSONResponse({"id": expense_id}, status_code=201)

    async def overview(request: Request) -> JSONResponse:
        rows = expenses.list_expenses(_session(request))
        return JSONResponse(expense_overview(rows, utcnow()))

    # ── AI review ──

    async def review_state(request: Request) -> JSONResponse:
        session = _session(request)
        return JSONResponse(release(session, review_for(session)))

    async def review_analyze(request: Request) -> JSONResponse:
        body = await _body(request)
        review = review_for(_session(request))
        if review.state is ReviewState.REVIEWING:
            review.cancel()
        image = ImagePayload.from_base64(
            str(body.get("image") or ""), body.get("mime_type")
        )
        review.select_file(image, body.get("mode") or "fridge")
        ok = await review.analyze(ai)
        return JSONResponse(release(_session(request), review), status_code=200 if ok else 502)

    async def review_edit(request: Request) -> JSONResponse:
        body = await _body(request)
        review = review_for(_session(request))
        index = _index(request.path_params["index"])
        if not 0 <= index < len(review.candidates):
            raise HTTPException(status_code=404, detail="Položka neexistuje")
        review.edit(index, **body)
        return JSONResponse(review.to_dict())

    async def review_remove(request: Request) -> JSONResponse:
        review = review_for(_session(request))
        index = _index(request.path_params["index"])
        if not 0 <= index < len(review.candidates):
            raise HTTPException(status_code=404, detail="Položka neexistuje")
        review.remove(index)
        return JSONResponse(review.to_dict())

    async def review_commit(request: Request) -> JSONResponse:
        body = await _body(request) if await request.body() else {}
        review = review_for(_session(request))
        try:
            ids = review.commit(inventory, _session(request), body.get("location"))
        except CommitError as exc:
            payload = review.to_dict()
            payload.update({"detail": str(exc), "saved_ids": exc.saved_ids})
            return JSONResponse(payload, status_code=500)
        return JSONResponse({"saved_ids": ids, **release(_session(request), review)})

    async def review_cancel(request: Request) -> JSONResponse:
        review = review_for(_session(request))
        review.cancel()
        return JSONResponse(release(_session(request), review))

    async def recipes(request: Request) -> JSONResponse:
        items = inventory.list_items(_session(request), status=STATUS_HOME)
        try:
            suggestions = await ai.suggest_recipes([i.name for i in items])
        except (AIRequestError, ValueError):
            logger.exception("Recipe suggestion failed")
            suggestions = []
        return JSONResponse({"items": [r.to_dict() for r in suggestions]})

    # ── error mapping ──

    async def lookup_error(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"detail": str(exc.args[0] if exc.args else exc)}, status_code=404)

    async def value_error(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=400)

    async def transition_error(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=409)

    async def store_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Store operation failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": STORE_ALERT}, status_code=500)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/catalog", catalog_info, methods=["GET"]),
        Route("/api/items", list_items, methods=["GET"]),
        Route("/api/items", add_item, methods=["POST"]),
        Route("/api/items/move-bought", move_bought, methods=["POST"]),
        Route("/api/items/{item_id:int}", update_item, methods=["PATCH"]),
        Route("/api/items/{item_id:int}", delete_item, methods=["DELETE"]),
        Route("/api/items/{item_id:int}/bought", set_bought, methods=["POST"]),
        Route("/api/items/{item_id:int}/cart", add_to_cart, methods=["POST"]),
        Route("/api/items/{item_id:int}/amount", adjust_amount, methods=["POST"]),
        Route("/api/shopping", shopping_view, methods=["GET"]),
        Route("/api/home", home_view, methods=["GET"]),
        Route("/api/shopping-list", list_entries, methods=["GET"]),
        Route("/api/shopping-list", add_entry, methods=["POST"]),
        Route("/api/shopping-list/{entry_id:int}/complete", complete_entry, methods=["POST"]),
        Route("/api/shopping-list/{entry_id:int}", delete_entry, methods=["DELETE"]),
        Route("/api/expenses", list_expenses, methods=["GET"]),
        Route("/api/expenses", add_expense, methods=["POST"]),
        Route("/api/overview", overview, methods=["GET"]),
        Route("/api/review", review_state, methods=["GET"]),
        Route("/api/review/analyze", review_analyze, methods=["POST"]),
        Route("/api/review/commit", review_commit, methods=["POST"]),
        Route("/api/review/cancel", review_cancel, methods=["POST"]),
        Route("/api/review/{index}", review_edit, methods=["PATCH"]),
        Route("/api/review/{index}", review_remove, methods=["DELETE"]),
        Route("/api/recipes", recipes, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_: Starlette):
        yield
        inventory.close()
        expenses.close()

    app = Starlette(
        debug=False,
        routes=routes,
        lifespan=lifespan,
        exception_handlers={
            LookupError: lookup_error,
            ValueError: value_error,
            InvalidTransition: transition_error,
            sqlite3.Error: store_error,
        },
    )
    app.add_middleware(AnonymousSessionMiddleware, auth=auth)

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    static_dir = static_dir or config.server.static_dir
    if static_dir:
        if os.path.isdir(static_dir):
            app.mount("/", StaticFiles(directory=static_dir, html=True), name="frontend")
            logger.info("Serving static frontend from %s", static_dir)
        else:
            logger.warning("Static directory %s not found; API only.", static_dir)

    app.state.inventory = inventory
    app.state.reviews = reviews
    return app
