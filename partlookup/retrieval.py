from __future__ import annotations
"""
Candidate retrieval for one vendor.

One semantic search against the vendor's catalog namespace (top-K), with an
optional rerank stage (top-N) that runs either inside the search service or
locally through a cross-encoder.

Ordering rule for the returned list: semantic_score desc, part_number asc.
"""

from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from . import config
from .normalize import normalize_description
from .pipeline_types import Candidate, PipelineOptions, SearchHit
from .rerank import load_reranker, rerank_pairs
from .search_client import RerankOptions, VectorSearchClient
from .vendors import VendorConfig


def semantic_sort_key(c: Candidate):
    return (-c.semantic_score, c.part_number)


def sort_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    return sorted(candidates, key=semantic_sort_key)


def hits_to_candidates(hits: Sequence[SearchHit]) -> List[Candidate]:
    """
    Map hits to candidates. A part number seen twice keeps its best score.
    Hits without a part_number field fall back to the record id.
    """
    best: Dict[str, Candidate] = {}
    for h in hits:
        part = h.text(config.PART_NUMBER_FIELD) or h.hit_id.strip()
        if not part:
            continue
        cand = Candidate(
            part_number=part,
            description=h.text(config.DESCRIPTION_FIELD),
            semantic_score=float(h.score),
        )
        prev = best.get(part)
        if prev is None or cand.semantic_score > prev.semantic_score:
            best[part] = cand
    return sort_candidates(best.values())


def build_candidate_text(hit: SearchHit) -> str:
    """Text handed to the cross-encoder: part number + catalog description."""
    part = hit.text(config.PART_NUMBER_FIELD) or hit.hit_id
    desc = hit.text(config.DESCRIPTION_FIELD)
    return " ".join(b for b in (part, desc) if b).strip()


class CandidateRetriever:
    def __init__(
        self,
        search: VectorSearchClient,
        options: PipelineOptions = PipelineOptions(),
        reranker_loader: Callable[[], object] = load_reranker,
    ):
        self.search = search
        self.options = options
        self.reranker_loader = reranker_loader

    def _rerank_locally(self, query: str, hits: List[SearchHit]) -> List[SearchHit]:
        model = self.reranker_loader()
        if model is None:
            return hits
        texts = [build_candidate_text(h) for h in hits]
        ranked = rerank_pairs(model, query, texts, top_n=self.options.rerank_top_n)
        return [
            SearchHit(hit_id=hits[i].hit_id, score=score, fields=hits[i].fields)
            for i, score in ranked
        ]

    def retrieve(self, vendor: VendorConfig, description: str) -> List[Candidate]:
        query = normalize_description(description) or description.strip()
        mode = self.options.rerank_mode

        rerank: Optional[RerankOptions] = None
        if mode == "service":
            rerank = RerankOptions(top_n=self.options.rerank_top_n)

        hits = self.search.query(
            vendor.search_namespace,
            query,
            top_k=self.options.search_top_k,
            rerank=rerank,
        )

        if mode == "local" and hits:
            hits = self._rerank_locally(query, hits)

        candidates = hits_to_candidates(hits)
        logger.info(
            "retrieve: vendor={} query='{}' rerank={} -> {} candidates",
            vendor.key, query, mode, len(candidates),
        )
        return candidates
