#!/usr/bin/env python3
"""DreamVision backend (FastAPI).

- Dream journal: profiles, entries, stats, export
- Interpretation: OpenAI with deterministic local fallback
- Entitlement: trial allowance, premium upgrade
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import Body, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dreamvision import config
from dreamvision.dream_service import DreamService, InterpretationOutcome
from dreamvision.entitlement import decide
from dreamvision.errors import ConflictError, NotFoundError
from dreamvision.interpretation_engine import InterpretationEngine
from dreamvision.llm_service import build_openai_client
from dreamvision.models import (
    CreateDreamRequest,
    DreamPayload,
    RegisterUserRequest,
    UpdateProfileRequest,
    VisualizationRequest,
)
from dreamvision.store import DreamStore
from dreamvision.visualization import DEFAULT_STYLE

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s - %(message)s",
)

logger = logging.getLogger("dreamvision")

LIMIT_REACHED_DETAIL = "Interpretation limit reached. Please upgrade to premium."

# ------------------------------------------------------------------------------
# Runtime wiring
# ------------------------------------------------------------------------------
async_client, OPENAI_HTTP_CLIENT = build_openai_client()
if async_client is None:
    logger.warning("OpenAI client is None. Interpretations use the local composer. Check OPENAI_API_KEY in .env")

store = DreamStore()
engine = InterpretationEngine(async_client)
service = DreamService(store, engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if OPENAI_HTTP_CLIENT is not None:
        await OPENAI_HTTP_CLIENT.aclose()


app = FastAPI(
    title="DreamVision API",
    description="Dream journal with personalized interpretations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _require_user(x_user_id: Optional[str]) -> str:
    user_id = x_user_id.strip() if isinstance(x_user_id, str) else ""
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return user_id


def _resolve_request_id(request: Optional[Request]) -> str:
    if request is not None:
        for header in ("x-request-id", "x-correlation-id"):
            value = (request.headers.get(header) or "").strip()
            if value:
                return value
    return str(uuid4())


def _outcome_body(outcome: InterpretationOutcome) -> dict:
    return {
        "message": "Interpretation created successfully",
        "analysis": outcome.interpretation.model_dump(mode="json") if outcome.interpretation else None,
        "remaining": outcome.remaining,
    }


# ------------------------------------------------------------------------------
# API endpoints: Health Check
# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    return {
        "status": "ok",
        "openai_configured": engine.remote_configured,
        "model": config.OPENAI_MODEL,
        "trial_allowance": service.trial_allowance,
        "timezone": config.DREAM_TIMEZONE,
        **store.counts(),
    }


# ------------------------------------------------------------------------------
# API endpoints: Users
# ------------------------------------------------------------------------------
@app.post("/users", status_code=201)
def register_user(payload: RegisterUserRequest):
    profile = service.register_user(payload)
    return profile.model_dump(mode="json")


@app.get("/users/profile")
def get_profile(x_user_id: Optional[str] = Header(None)):
    return service.get_profile(_require_user(x_user_id)).model_dump(mode="json")


@app.put("/users/profile")
async def update_profile(payload: UpdateProfileRequest, x_user_id: Optional[str] = Header(None)):
    profile = await service.update_profile(_require_user(x_user_id), payload)
    return {"message": "Profile updated successfully", "user": profile.model_dump(mode="json")}


@app.post("/users/upgrade")
async def upgrade_user(x_user_id: Optional[str] = Header(None)):
    profile = await service.upgrade(_require_user(x_user_id))
    return {"message": "Successfully upgraded to premium", "user": profile.model_dump(mode="json")}


@app.get("/users/entitlement")
def get_entitlement(x_user_id: Optional[str] = Header(None)):
    profile = service.get_profile(_require_user(x_user_id))
    decision = decide(profile)
    return {
        "allowed": decision.allowed,
        "remaining": decision.remaining,
        "reason": decision.reason,
        "plan_tier": profile.plan_tier.value,
    }


@app.get("/users/stats")
def get_stats(x_user_id: Optional[str] = Header(None)):
    return service.stats(_require_user(x_user_id)).model_dump(mode="json")


@app.get("/users/export")
def export_user(x_user_id: Optional[str] = Header(None)):
    data = service.export(_require_user(x_user_id))
    return JSONResponse(
        content=data,
        headers={"Content-Disposition": 'attachment; filename="dreamvision-export.json"'},
    )


# ------------------------------------------------------------------------------
# API endpoints: Dreams
# ------------------------------------------------------------------------------
@app.get("/dreams")
def list_dreams(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    x_user_id: Optional[str] = Header(None),
):
    entries = service.list_dreams(_require_user(x_user_id), page=page, limit=limit, search=search, tag=tag)
    return [entry.model_dump(mode="json") for entry in entries]


@app.get("/dreams/{dream_id}")
def get_dream(dream_id: str, x_user_id: Optional[str] = Header(None)):
    return service.get_dream(_require_user(x_user_id), dream_id).model_dump(mode="json")


@app.post("/dreams", status_code=201)
async def create_dream(request: Request, payload: CreateDreamRequest, x_user_id: Optional[str] = Header(None)):
    entry, outcome = await service.create_dream(
        _require_user(x_user_id),
        payload,
        request_id=_resolve_request_id(request),
    )
    body = {"message": "Dream created successfully", "dream": entry.model_dump(mode="json")}
    if outcome is not None:
        body["interpretation_allowed"] = outcome.allowed
        body["remaining"] = outcome.remaining
        if not outcome.allowed:
            body["interpretation_detail"] = LIMIT_REACHED_DETAIL
    return body


@app.put("/dreams/{dream_id}")
async def update_dream(
    request: Request,
    dream_id: str,
    payload: DreamPayload,
    x_user_id: Optional[str] = Header(None),
):
    entry = await service.update_dream(
        _require_user(x_user_id),
        dream_id,
        payload,
        request_id=_resolve_request_id(request),
    )
    return {"message": "Dream updated successfully", "dream": entry.model_dump(mode="json")}


@app.delete("/dreams/{dream_id}")
def delete_dream(dream_id: str, x_user_id: Optional[str] = Header(None)):
    service.delete_dream(_require_user(x_user_id), dream_id)
    return {"message": "Dream deleted successfully"}


# ------------------------------------------------------------------------------
# API endpoints: Interpretation
# ------------------------------------------------------------------------------
@app.get("/analysis/dream/{dream_id}")
def get_analysis(dream_id: str, x_user_id: Optional[str] = Header(None)):
    return service.get_interpretation(_require_user(x_user_id), dream_id).model_dump(mode="json")


@app.post("/analysis/dream/{dream_id}", status_code=201)
async def request_analysis(request: Request, dream_id: str, x_user_id: Optional[str] = Header(None)):
    outcome = await service.request_interpretation(
        _require_user(x_user_id),
        dream_id,
        request_id=_resolve_request_id(request),
    )
    if not outcome.allowed:
        raise HTTPException(status_code=403, detail=LIMIT_REACHED_DETAIL)
    return _outcome_body(outcome)


# ------------------------------------------------------------------------------
# API endpoints: Visualization
# ------------------------------------------------------------------------------
@app.post("/visualization/dream/{dream_id}")
async def create_visualization(
    dream_id: str,
    payload: Optional[VisualizationRequest] = Body(None),
    x_user_id: Optional[str] = Header(None),
):
    style = payload.style if payload is not None else DEFAULT_STYLE
    url = await service.generate_visualization(_require_user(x_user_id), dream_id, style)
    return {"message": "Visualization generated successfully", "visualization_url": url}


@app.get("/visualization/dream/{dream_id}")
def get_visualization(dream_id: str, x_user_id: Optional[str] = Header(None)):
    return {"visualization_url": service.get_visualization(_require_user(x_user_id), dream_id)}
