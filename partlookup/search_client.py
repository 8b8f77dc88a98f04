from __future__ import annotations

"""
HTTP client for the vector search service.

The same service hosts the per-vendor catalog namespaces and the
corrections (feedback) namespaces, so one client serves both the candidate
retriever and the correction resolver.

Wire format (integrated-embedding records search):

    POST {host}/records/namespaces/{namespace}/search
    {"query": {"inputs": {"text": ...}, "top_k": N},
     "fields": [...],
     "rerank": {"model": ..., "top_n": M, "rank_fields": [...]}}   # optional

    -> {"result": {"hits": [{"_id": ..., "_score": ..., "fields": {...}}]}}
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from loguru import logger

from . import config
from .errors import UpstreamError
from .pipeline_types import SearchHit
from .resilience import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry


@dataclass(frozen=True)
class RerankOptions:
    top_n: int
    rank_fields: Sequence[str] = (config.DESCRIPTION_FIELD,)
    model: str = config.SEARCH_RERANK_MODEL


def _http_client() -> httpx.Client:
    return httpx.Client(
        headers={
            "Api-Key": config.SEARCH_API_KEY,
            "X-Pinecone-API-Version": config.SEARCH_API_VERSION,
            "Content-Type": "application/json",
        },
        timeout=httpx.Timeout(config.HTTP_READ_TIMEOUT, connect=config.HTTP_CONNECT_TIMEOUT),
    )


class VectorSearchClient:
    def __init__(
        self,
        host: str = config.SEARCH_API_HOST,
        client: Optional[httpx.Client] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.host = host.rstrip("/")
        self.client = client or _http_client()
        self.retry_policy = retry_policy

    def build_payload(
        self,
        text: str,
        top_k: int,
        fields: Sequence[str],
        rerank: Optional[RerankOptions] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "query": {"inputs": {"text": text}, "top_k": int(top_k)},
            "fields": list(fields),
        }
        if rerank is not None:
            payload["rerank"] = {
                "model": rerank.model,
                "top_n": int(rerank.top_n),
                "rank_fields": list(rerank.rank_fields),
            }
        return payload

    def query(
        self,
        namespace: str,
        text: str,
        top_k: int,
        fields: Sequence[str] = (config.PART_NUMBER_FIELD, config.DESCRIPTION_FIELD),
        rerank: Optional[RerankOptions] = None,
    ) -> List[SearchHit]:
        url = f"{self.host}/records/namespaces/{quote(namespace, safe='')}/search"
        payload = self.build_payload(text, top_k, fields, rerank)

        response = call_with_retry(
            lambda: self.client.post(url, json=payload),
            policy=self.retry_policy,
            service=f"search[{namespace}]",
        )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"search[{namespace}] returned a non-JSON body", service="search"
            ) from e

        raw_hits = ((body or {}).get("result") or {}).get("hits") or []
        hits: List[SearchHit] = []
        for h in raw_hits:
            if not isinstance(h, dict):
                continue
            try:
                score = float(h.get("_score", 0.0))
            except (TypeError, ValueError):
                score = 0.0
            hits.append(
                SearchHit(
                    hit_id=str(h.get("_id", "")),
                    score=score,
                    fields=dict(h.get("fields") or {}),
                )
            )
        logger.debug("search[{}]: '{}' -> {} hits", namespace, text, len(hits))
        return hits
