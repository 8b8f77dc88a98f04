"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from . import config


@dataclass(frozen=True)
class SearchHit:
    """One hit returned by the vector search service."""

    hit_id: str
    score: float
    fields: Dict[str, Any] = field(default_factory=dict)

    def text(self, name: str) -> str:
        return str(self.fields.get(name, "") or "").strip()


@dataclass
class Candidate:
    """Catalog candidate for one selection call."""

    part_number: str
    description: str
    semantic_score: float
    realtime_rank: int = config.REALTIME_UNRANKED

    @property
    def is_realtime_ranked(self) -> bool:
        return self.realtime_rank < config.REALTIME_UNRANKED


@dataclass(frozen=True)
class CorrectionRecord:
    matched_text: str
    part_number: str
    reason: str
    score: float


@dataclass(frozen=True)
class CorrectionMatch:
    """Accepted correction: which tier fired and why."""

    tier: str  # "exact" | "grouped" | "fuzzy"
    part_number: str
    explanation: str
    record: CorrectionRecord


@dataclass(frozen=True)
class Selection:
    part_number: str
    explanation: str


@dataclass(frozen=True)
class CorrectionPolicy:
    exact_min_score: float = config.CORRECTION_EXACT_MIN_SCORE
    group_min_score: float = config.CORRECTION_GROUP_MIN_SCORE
    fuzzy_min_similarity: float = config.CORRECTION_FUZZY_MIN_SIMILARITY
    group_repeat_bonus: float = config.CORRECTION_GROUP_REPEAT_BONUS


@dataclass(frozen=True)
class PipelineOptions:
    search_top_k: int = config.SEARCH_TOP_K
    rerank_top_n: int = config.RERANK_TOP_N
    rerank_mode: str = config.RERANK_MODE
    correction_top_k: int = config.CORRECTION_TOP_K
    correction_policy: CorrectionPolicy = field(default_factory=CorrectionPolicy)
