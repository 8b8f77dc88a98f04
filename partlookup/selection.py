from __future__ import annotations

"""
LLM selection of a single vendor part number.

The prompt is a pure function of (description, candidates, realtime weight,
realtime availability), so the same inputs always produce the same request.
The model must answer with exactly one forced tool call; anything else is a
``MalformedSelection``.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError as PydanticValidationError

from . import config
from .errors import MalformedSelection, UpstreamError
from .pipeline_types import Candidate, Selection
from .resilience import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry

TOOL_NAME = "select_part_number"

SELECTION_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": "Returns the single best vendor part number for the item description.",
        "parameters": {
            "type": "object",
            "properties": {
                "vendorPartNumber": {
                    "type": "string",
                    "description": "The chosen vendor part number, copied exactly from the candidate list.",
                },
                "explanation": {
                    "type": "string",
                    "description": "Short justification for the choice.",
                },
            },
            "required": ["vendorPartNumber", "explanation"],
        },
    },
}

SYSTEM_PROMPT = (
    "You are an electrical and industrial supply specialist who matches RFQ line items "
    "to a distributor's catalog part numbers. Respond only by calling the "
    f"{TOOL_NAME} function. No additional text."
)

NO_CANDIDATES_NOTE = "No catalog candidates were found for this description; nothing to select from."


class PartSelection(BaseModel):
    """Arguments of the forced tool call."""

    vendorPartNumber: str
    explanation: str


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def realtime_emphasis(realtime_weight: float, realtime_available: bool) -> str:
    """Wording for the realtime step, banded by the vendor's configured weight."""
    if realtime_weight <= 0:
        return "Live vendor search data is not used for this vendor; ignore realtime rank."
    if not realtime_available:
        return (
            "Live vendor search data was not available for this item; "
            "rely on category consistency and semantic similarity instead."
        )
    if realtime_weight >= 0.66:
        return (
            "HIGH weight: strongly prefer candidates ranked near the top of the vendor's "
            "live search (realtime rank 1 is best) unless they clearly contradict the category."
        )
    if realtime_weight >= 0.33:
        return (
            "MEDIUM weight: use realtime rank as a meaningful tie-breaker between candidates "
            "that fit the category equally well."
        )
    return (
        "LOW weight: realtime rank is a weak signal; only use it when everything else is equal."
    )


def format_candidate(idx: int, c: Candidate) -> str:
    parts = [f"{idx}. Part Number: {c.part_number}", f"Semantic Score: {c.semantic_score:.4f}"]
    if c.is_realtime_ranked:
        parts.append(f"Realtime Rank: {c.realtime_rank}")
    parts.append(f"Description: {c.description or '(none)'}")
    return " | ".join(parts)


def build_prompt(
    description: str,
    candidates: Sequence[Candidate],
    realtime_weight: float = 0.0,
    realtime_available: bool = False,
    vendor_name: str = "",
) -> str:
    vendor_bit = f" from {vendor_name}" if vendor_name else ""
    lines: List[str] = [
        f"A buyer requested the following item on an RFQ. Pick the single best matching "
        f"catalog part number{vendor_bit}.",
        "",
        f"Item description: {description}",
        "",
        "Candidates (ordered best-first by the retrieval pipeline):",
    ]
    lines.extend(format_candidate(i, c) for i, c in enumerate(candidates, start=1))
    lines += [
        "",
        "Evaluate the candidates step by step:",
        "1. Infer the product category of the requested item (e.g. wire, conduit, fitting, "
        "connector, box, fastener, tool).",
        "2. Discard candidates whose category is inconsistent with the request, and check "
        "sizes, gauges, materials and quantities per package.",
        f"3. Realtime rank: {realtime_emphasis(realtime_weight, realtime_available)}",
        "4. Weigh semantic similarity: higher semantic scores indicate closer textual matches.",
        "",
        f"Call {TOOL_NAME} with the vendorPartNumber exactly as listed and a short explanation.",
    ]
    return "\n".join(lines)


def build_request(prompt: str, model: str = config.LLM_MODEL) -> Dict[str, Any]:
    return {
        "model": model,
        "temperature": config.LLM_TEMPERATURE,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "tools": [SELECTION_TOOL],
        "tool_choice": {"type": "function", "function": {"name": TOOL_NAME}},
    }


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def parse_selection(body: Dict[str, Any]) -> Selection:
    try:
        message = body["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedSelection("LLM response has no message") from e
    if not isinstance(message, dict):
        raise MalformedSelection("LLM response has no message")

    calls = message.get("tool_calls") or []
    if not isinstance(calls, list) or len(calls) != 1:
        raise MalformedSelection("LLM response did not contain exactly one tool call")

    function = calls[0].get("function") if isinstance(calls[0], dict) else None
    if not isinstance(function, dict) or function.get("name") != TOOL_NAME:
        raise MalformedSelection(f"LLM response did not call {TOOL_NAME}")

    raw_args = function.get("arguments")
    try:
        args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
        parsed = PartSelection.model_validate(args)
    except (ValueError, TypeError, PydanticValidationError) as e:
        raise MalformedSelection(f"Could not parse {TOOL_NAME} arguments: {e}") from e

    part = parsed.vendorPartNumber.strip()
    if not part:
        raise MalformedSelection(f"{TOOL_NAME} returned an empty vendorPartNumber")
    return Selection(part_number=part, explanation=parsed.explanation.strip())


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def _http_client() -> httpx.Client:
    return httpx.Client(
        headers={
            "Authorization": f"Bearer {config.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        },
        timeout=httpx.Timeout(config.HTTP_READ_TIMEOUT, connect=config.HTTP_CONNECT_TIMEOUT),
    )


class SelectionEngine:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        url: str = config.OPENAI_API_URL,
        model: str = config.LLM_MODEL,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.client = client or _http_client()
        self.url = url
        self.model = model
        self.retry_policy = retry_policy

    def select(
        self,
        description: str,
        candidates: Sequence[Candidate],
        realtime_weight: float = 0.0,
        realtime_available: bool = False,
        vendor_name: str = "",
    ) -> Selection:
        if not candidates:
            return Selection(part_number=config.NOT_AVAILABLE, explanation=NO_CANDIDATES_NOTE)

        prompt = build_prompt(description, candidates, realtime_weight, realtime_available, vendor_name)
        payload = build_request(prompt, self.model)

        response = call_with_retry(
            lambda: self.client.post(self.url, json=payload),
            policy=self.retry_policy,
            service="llm",
        )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("llm returned a non-JSON body", service="llm") from e

        selection = parse_selection(body)
        if selection.part_number not in {c.part_number for c in candidates}:
            logger.warning(
                "LLM picked '{}' which is not among the {} candidates for '{}'",
                selection.part_number, len(candidates), description,
            )
        return selection
