from __future__ import annotations

"""
FastAPI application for vendor part-number lookup.

- POST /part-numbers          batch: all descriptions, grouped per vendor
- GET  /part-numbers/stream   server-sent events, one description at a time
- OPTIONS on both             204 preflight
- GET  /health

Input is validated before any pipeline work: bad input never reaches a
collaborator service.
"""

import json
from functools import lru_cache
from typing import Any, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from loguru import logger
from pydantic import BaseModel

from . import config
from .config import HealthResponse, LookupResponse
from .errors import ValidationError
from .pipeline import VendorOrchestrator, build_orchestrator
from .streaming import StreamSession, sse_frames

NO_DESCRIPTIONS = "No descriptions provided."

LOOKUP_PATHS = ("/part-numbers", "/part-numbers/stream")

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600",
}


class LookupRequest(BaseModel):
    # left loose so shape errors get the same 400 message as the stream endpoint
    descriptions: Any = None
    vendor: Optional[str] = None


# -----------------------
# Input validation
# -----------------------

def validate_descriptions(value: Any) -> List[str]:
    if value is None or value == []:
        raise ValidationError(NO_DESCRIPTIONS)
    if not isinstance(value, list):
        raise ValidationError("descriptions must be an array of strings.")
    if not all(isinstance(d, str) for d in value):
        raise ValidationError("descriptions must only contain strings.")
    if not all(d.strip() for d in value):
        raise ValidationError("descriptions must not contain blank entries.")
    return list(value)


def parse_stream_descriptions(raw: Optional[str]) -> List[str]:
    if raw is None or not raw.strip():
        raise ValidationError(NO_DESCRIPTIONS)
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationError("descriptions must be a URL-encoded JSON array of strings.")
    return validate_descriptions(value)


@lru_cache(maxsize=1)
def get_orchestrator() -> VendorOrchestrator:
    return build_orchestrator()


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI(title="partlookup")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_log_sink_id: Optional[int] = None


@app.middleware("http")
async def preflight(request: Request, call_next):
    # outermost, so browsers' preflights get the same 204 as bare OPTIONS
    if request.method == "OPTIONS" and request.url.path in LOOKUP_PATHS:
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)
    return await call_next(request)


@app.on_event("startup")
def startup_event() -> None:
    global _log_sink_id
    if _log_sink_id is None:
        config.LOG_DIR.mkdir(parents=True, exist_ok=True)
        _log_sink_id = logger.add(config.LOG_FILE, rotation="10 MB", level=config.LOG_LEVEL)
    orchestrator = get_orchestrator()
    logger.info(
        "partlookup ready: vendors={} model={} rerank={}",
        ", ".join(orchestrator.vendors.keys), config.LLM_MODEL, config.RERANK_MODE,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("Rejected {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected {} {}: {}", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object with a descriptions array."})


# -----------------------
# Routes
# -----------------------

@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.post("/part-numbers", response_model=LookupResponse)
def lookup_part_numbers(req: LookupRequest) -> LookupResponse:
    descriptions = validate_descriptions(req.descriptions)
    orchestrator = get_orchestrator()
    vendors = orchestrator.vendors.select(req.vendor)
    logger.info("Batch lookup: {} descriptions x {} vendors", len(descriptions), len(vendors))
    return LookupResponse(vendors=orchestrator.resolve_batch(descriptions, vendors))


@app.get("/part-numbers/stream")
async def stream_part_numbers(
    request: Request,
    descriptions: Optional[str] = None,
    vendor: Optional[str] = None,
) -> StreamingResponse:
    items = parse_stream_descriptions(descriptions)
    orchestrator = get_orchestrator()
    vendors = orchestrator.vendors.select(vendor)
    session = StreamSession(
        items,
        vendors,
        orchestrator.resolve_description,
        disconnect_check=request.is_disconnected,
    )
    return StreamingResponse(
        sse_frames(session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def main() -> None:
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
