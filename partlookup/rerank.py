# partlookup/rerank.py
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from . import config

# ---------------------------------------------------------------------------
# HF model handling
# ---------------------------------------------------------------------------

RERANKER_CANDIDATES: List[str] = [
    config.LOCAL_RERANKER_MODEL,
    "cross-encoder/ms-marco-MiniLM-L-6-v2",
]

_RERANKER = None
_RERANKER_FAILED: bool = False


def load_reranker():
    """
    Load and cache a sentence-transformers CrossEncoder (RERANK_MODE=local).

    Returns None when no model can be loaded; callers then keep the
    search service's order.
    """
    global _RERANKER, _RERANKER_FAILED

    if _RERANKER is not None or _RERANKER_FAILED:
        return _RERANKER

    # heavy import, only paid when local reranking is switched on
    from sentence_transformers import CrossEncoder

    for rid in dict.fromkeys(RERANKER_CANDIDATES):
        try:
            logger.info("Loading cross-encoder reranker: {}", rid)
            _RERANKER = CrossEncoder(rid, device="cpu")
            logger.info("Loaded cross-encoder reranker: {}", rid)
            return _RERANKER
        except Exception as e:
            logger.warning("Failed to load CrossEncoder '{}': {}", rid, e)

    logger.warning("No cross-encoder available; local rerank disabled.")
    _RERANKER_FAILED = True
    return None


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score_with_model(
    model,
    query: str,
    candidate_texts: Sequence[str],
) -> np.ndarray:
    if not candidate_texts:
        return np.zeros((0,), dtype="float32")

    pairs = [(query, t) for t in candidate_texts]
    scores = model.predict(pairs)
    return np.asarray(scores, dtype="float32")


def rerank_pairs(
    model,
    query: str,
    docs: Sequence[str],
    top_n: Optional[int] = None,
) -> List[Tuple[int, float]]:
    """
    Return ``(doc_index, score)`` sorted by score desc, index asc, cut to ``top_n``.
    """
    if not docs:
        return []

    scores = score_with_model(model, query, docs)
    ranked = sorted(
        [(i, float(s)) for i, s in enumerate(scores)],
        key=lambda x: (-x[1], x[0]),
    )
    if top_n is not None:
        ranked = ranked[:top_n]
    return ranked
