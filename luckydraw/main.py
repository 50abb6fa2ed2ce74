# luckydraw/main.py — HTTP routes
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError

from .config import Settings, build_store
from .errors import LuckyDrawError, MissingField, NoPrizesConfigured
from .logic import DrawService
from .schemas import PhoneRequest, RecordRequest

UNSET_TITLE = "(未設定)"

log = logging.getLogger("luckydraw.api")
router = APIRouter(prefix="/api")

M = TypeVar("M", bound=BaseModel)


def get_service(request: Request) -> DrawService:
    return request.app.state.service


async def read_body(request: Request, model: Type[M]) -> M:
    # a broken or non-object body counts as "fields missing", not a 422
    try:
        data = await request.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    try:
        return model.model_validate(data)
    except ValidationError:
        return model()


# ---- campaign metadata ----
@router.get("/title", response_class=PlainTextResponse)
async def api_title(svc: DrawService = Depends(get_service)):
    try:
        title = await svc.title()
    except LuckyDrawError as e:
        log.warning(f"/api/title fail: {e}")
        return PlainTextResponse("後端錯誤：無法取得標題", status_code=500)
    return PlainTextResponse(title or UNSET_TITLE)


@router.get("/deadline", response_class=PlainTextResponse)
async def api_deadline(svc: DrawService = Depends(get_service)):
    try:
        return PlainTextResponse(await svc.deadline())
    except LuckyDrawError as e:
        log.warning(f"/api/deadline fail: {e}")
        return PlainTextResponse("", status_code=500)


@router.get("/activity-description", response_class=PlainTextResponse)
async def api_description(svc: DrawService = Depends(get_service)):
    try:
        return PlainTextResponse(await svc.description())
    except LuckyDrawError as e:
        log.warning(f"/api/activity-description fail: {e}")
        return PlainTextResponse("", status_code=500)


@router.get("/prizes")
async def api_prizes(svc: DrawService = Depends(get_service)):
    try:
        prizes = await svc.list_prizes()
    except LuckyDrawError as e:
        log.warning(f"/api/prizes fail: {e}")
        return JSONResponse([], status_code=500)
    return JSONResponse([p.model_dump() for p in prizes])


# ---- draws ----
@router.post("/check-draw-on-deadline")
async def api_check(request: Request, svc: DrawService = Depends(get_service)):
    req = await read_body(request, PhoneRequest)
    if not req.phone:
        return JSONResponse({"error": "No phone provided"}, status_code=400)
    try:
        result = await svc.check_draw_on_deadline(req.phone)
    except MissingField:
        return JSONResponse({"error": "No phone provided"}, status_code=400)
    except LuckyDrawError as e:
        log.warning(f"/api/check-draw-on-deadline fail: {e}")
        return JSONResponse({"error": "Check failed"}, status_code=500)
    return JSONResponse(result.payload())


@router.post("/record-draw")
async def api_record_draw(request: Request, svc: DrawService = Depends(get_service)):
    req = await read_body(request, RecordRequest)
    if not req.phone or not req.prize:
        return PlainTextResponse("FAIL", status_code=400)
    try:
        outcome = await svc.record_draw_once(req.phone, req.prize)
    except MissingField:
        return PlainTextResponse("FAIL", status_code=400)
    except LuckyDrawError as e:
        log.warning(f"/api/record-draw fail: {e}")
        return PlainTextResponse("FAIL", status_code=500)
    if outcome.status == "alreadyDrawn":
        return JSONResponse({"status": "alreadyDrawn", "time": outcome.time, "prize": outcome.prize})
    return PlainTextResponse("OK")


@router.post("/draw")
async def api_draw(request: Request, svc: DrawService = Depends(get_service)):
    req = await read_body(request, PhoneRequest)
    if not req.phone:
        return JSONResponse({"error": "No phone provided"}, status_code=400)
    try:
        outcome = await svc.draw(req.phone)
    except MissingField:
        return JSONResponse({"error": "No phone provided"}, status_code=400)
    except NoPrizesConfigured:
        log.warning("/api/draw: prize table is empty")
        return JSONResponse({"error": "No prizes configured"}, status_code=503)
    except LuckyDrawError as e:
        log.warning(f"/api/draw fail: {e}")
        return JSONResponse({"error": "Draw failed"}, status_code=500)
    return JSONResponse(outcome.payload())


@router.post("/query-history")
async def api_query_history(request: Request, svc: DrawService = Depends(get_service)):
    req = await read_body(request, PhoneRequest)
    if not req.phone:
        return JSONResponse([])
    try:
        records = await svc.query_history(req.phone)
    except LuckyDrawError as e:
        log.warning(f"/api/query-history fail: {e}")
        return JSONResponse([], status_code=500)
    return JSONResponse([r.model_dump() for r in records])


def create_app(service: DrawService | None = None,
               settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            # no store -> no server
            store = build_store(settings)
            app.state.service = DrawService(store, timeout=settings.store_timeout)
            log.info(f"store ready: {store.name}")
        yield

    app = FastAPI(title="Lucky Draw", version="1.0.0", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.get("/healthz")
    async def healthz():
        svc = app.state.service
        return {"ok": svc is not None, "store": svc.store.name if svc else None}

    return app


app = create_app()
