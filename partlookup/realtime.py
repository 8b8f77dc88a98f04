from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from . import config
from .errors import PartLookupError, ScrapeFailure
from .normalize import normalize_description
from .pipeline_types import Candidate
from .resilience import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry
from .retrieval import sort_candidates
from .vendors import VendorConfig


@dataclass(frozen=True)
class RealtimeOutcome:
    candidates: List[Candidate]
    available: bool
    sku_count: int = 0
    error: str = ""


def _http_client() -> httpx.Client:
    return httpx.Client(
        headers={"User-Agent": config.HTTP_USER_AGENT},
        follow_redirects=True,
        timeout=httpx.Timeout(config.HTTP_SCRAPE_READ_TIMEOUT, connect=config.HTTP_CONNECT_TIMEOUT),
        max_redirects=config.HTTP_MAX_REDIRECTS,
    )


def canonical_sku(token: str) -> str:
    """Upper-case, alphanumerics only: '12-345 ' and '12345' compare equal."""
    return re.sub(r"[^A-Z0-9]", "", str(token or "").upper())


def search_url(vendor: VendorConfig, description: str) -> str:
    return vendor.realtime_search_url.format(query=quote_plus(description))


def extract_sku_tokens(html: str, vendor: VendorConfig) -> List[str]:
    """
    SKU tokens from the vendor's product-listing markup, in document order.
    Duplicates keep their first position.
    """
    if not html or not html.strip():
        return []
    soup = BeautifulSoup(html, "lxml")
    pattern = re.compile(vendor.sku_pattern, flags=re.I) if vendor.sku_pattern else None

    tokens: List[str] = []
    seen = set()
    for el in soup.select(vendor.sku_selector):
        if vendor.sku_attribute:
            raw = str(el.get(vendor.sku_attribute, "") or "")
        else:
            raw = el.get_text(" ", strip=True)
        if pattern is not None:
            m = pattern.search(raw)
            raw = m.group(1) if m else ""
        token = raw.strip()
        key = canonical_sku(token)
        if not key or key in seen:
            continue
        seen.add(key)
        tokens.append(token)
    return tokens


def realtime_sort_key(c: Candidate):
    # unranked candidates carry the sentinel, so they always land last
    return (c.realtime_rank, -c.semantic_score, c.part_number)


def apply_realtime_ranks(candidates: Sequence[Candidate], skus: Sequence[str]) -> List[Candidate]:
    positions: Dict[str, int] = {}
    for pos, sku in enumerate(skus, start=1):
        positions.setdefault(canonical_sku(sku), pos)

    ranked = [
        replace(c, realtime_rank=positions.get(canonical_sku(c.part_number), config.REALTIME_UNRANKED))
        for c in candidates
    ]
    return sorted(ranked, key=realtime_sort_key)


class RealtimeReranker:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.client = client or _http_client()
        self.retry_policy = retry_policy

    def fetch_skus(self, vendor: VendorConfig, description: str) -> List[str]:
        url = search_url(vendor, description)
        try:
            r = call_with_retry(
                lambda: self.client.get(url),
                policy=self.retry_policy,
                service=f"live-search[{vendor.key}]",
            )
        except PartLookupError as e:
            raise ScrapeFailure(str(e)) from e

        if len(r.content) > config.HTTP_MAX_BYTES:
            raise ScrapeFailure(f"Page too large ({len(r.content)} bytes) for {url}")

        skus = extract_sku_tokens(r.text, vendor)
        if not skus:
            raise ScrapeFailure(f"No product listings found on {url}")
        return skus

    def rerank(self, vendor: VendorConfig, description: str, candidates: Sequence[Candidate]) -> RealtimeOutcome:
        """
        Reorder ``candidates`` by the vendor's live search ranking.

        Never raises: a failed scrape leaves every candidate unranked and the
        list in semantic order.
        """
        query = normalize_description(description) or description.strip()
        try:
            skus = self.fetch_skus(vendor, query)
        except ScrapeFailure as e:
            logger.warning("Realtime rerank disabled for {} '{}': {}", vendor.key, query, e)
            unranked = [replace(c, realtime_rank=config.REALTIME_UNRANKED) for c in candidates]
            return RealtimeOutcome(candidates=sort_candidates(unranked), available=False, error=str(e))

        ranked = apply_realtime_ranks(candidates, skus)
        hits = sum(1 for c in ranked if c.is_realtime_ranked)
        logger.info(
            "Realtime rerank {} '{}': {} skus, {} of {} candidates ranked",
            vendor.key, query, len(skus), hits, len(ranked),
        )
        return RealtimeOutcome(candidates=ranked, available=True, sku_count=len(skus))
