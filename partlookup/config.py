from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOG_DIR / "partlookup.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# ---------------------------
# Collaborator services
# ---------------------------

# Vector search service (serves both the catalog and the corrections namespaces)
SEARCH_API_HOST = os.getenv("SEARCH_API_HOST", "https://parts-index.svc.pinecone.io")
SEARCH_API_KEY = os.getenv("SEARCH_API_KEY", "")
SEARCH_API_VERSION = os.getenv("SEARCH_API_VERSION", "2025-01")
SEARCH_RERANK_MODEL = os.getenv("SEARCH_RERANK_MODEL", "bge-reranker-v2-m3")

PART_NUMBER_FIELD = "part_number"
DESCRIPTION_FIELD = "description"
REASON_FIELD = "reason"

# LLM completion service (OpenAI-compatible chat completions)
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
LLM_MODEL = os.getenv("FT_MODEL_NAME", "gpt-4o-mini")
LLM_TEMPERATURE = 0.0


# ---------------------------
# Retrieval settings
# ---------------------------

SEARCH_TOP_K = 100
RERANK_TOP_N = 25

# "service" = rerank inside the search service, "local" = cross-encoder
# in-process, "off" = semantic scores only
RERANK_MODE = os.getenv("RERANK_MODE", "service")

# Local cross-encoder (RERANK_MODE=local)
LOCAL_RERANKER_MODEL = os.getenv("LOCAL_RERANKER_MODEL", "BAAI/bge-reranker-base")

# Sentinel rank for candidates missing from the vendor's live search results
REALTIME_UNRANKED = 1_000_000

NOT_AVAILABLE = "N/A"


# ---------------------------
# Correction tiers
# ---------------------------
# Historical revisions of the service used 0.89 / 0.925 / 0.935 and a
# single 0.93 cut-off. Keep them tunable rather than hard-coding either.

CORRECTION_TOP_K = int(os.getenv("CORRECTION_TOP_K", "10"))
CORRECTION_EXACT_MIN_SCORE = float(os.getenv("CORRECTION_EXACT_MIN_SCORE", "0.89"))
CORRECTION_GROUP_MIN_SCORE = float(os.getenv("CORRECTION_GROUP_MIN_SCORE", "0.925"))
CORRECTION_FUZZY_MIN_SIMILARITY = float(os.getenv("CORRECTION_FUZZY_MIN_SIMILARITY", "0.935"))
CORRECTION_GROUP_REPEAT_BONUS = float(os.getenv("CORRECTION_GROUP_REPEAT_BONUS", "0.01"))


# ---------------------------
# Retry policy
# ---------------------------

RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "5"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "1.0"))
RETRY_MULTIPLIER = 2.0
RETRY_MAX_DELAY = 60.0


# ---------------------------
# Batch / streaming
# ---------------------------

BATCH_MAX_WORKERS = int(os.getenv("BATCH_MAX_WORKERS", "1"))
HEARTBEAT_SECONDS = float(os.getenv("HEARTBEAT_SECONDS", "30"))


# ---------------------------
# Serving
# ---------------------------

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))


# ---------------------------
# HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 30.0
HTTP_SCRAPE_READ_TIMEOUT = 7.0
HTTP_MAX_REDIRECTS = 2
HTTP_MAX_BYTES = 2_000_000

HTTP_USER_AGENT = (
    "Mozilla/5.0 (compatible; partlookup/1.0; +https://example.com/partlookup)"
)


# ---------------------------
# Text processing
# ---------------------------

MAX_INPUT_CHARS = 2_000


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class ResolutionResult(BaseModel):
    """
    One resolved part number for a (vendor, description) pair.
    Field names match the API contract exactly.
    """

    vendor: str
    vendorDisplayName: str
    description: str
    partNumber: str = Field(min_length=1)
    explanation: str = ""

    @property
    def resolved(self) -> bool:
        return self.partNumber != NOT_AVAILABLE


class VendorResults(BaseModel):
    vendor: str
    vendorDisplayName: str
    partNumbers: List[ResolutionResult]


class LookupResponse(BaseModel):
    """
    Response body for POST /part-numbers.
    """

    vendors: List[VendorResults]


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
