from __future__ import annotations

"""
Correction resolver.

Users confirm or fix part numbers after a lookup; those confirmations land in
a per-vendor corrections namespace. Before running the full search + LLM
pipeline we check whether a confirmed mapping already covers the
description. Three tiers, evaluated strictly in order:

1. exact   - stored text equals the description (case-insensitive), score >= T1
2. grouped - records with score >= T2 grouped by part number,
             group score = max score + bonus * (count - 1)
3. fuzzy   - normalized edit-distance similarity >= T3

The first tier that accepts wins; at most one correction per description.
"""

from typing import Dict, List, Optional, Sequence

from loguru import logger

from . import config
from .normalize import casefold_key, normalize_description
from .pipeline_types import CorrectionMatch, CorrectionPolicy, CorrectionRecord, SearchHit
from .search_client import VectorSearchClient
from .vendors import VendorConfig

# Group scores closer than this are treated as a tie
_TIE_EPS = 1e-9


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------

def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(
                prev[j] + 1,               # deletion
                cur[j - 1] + 1,            # insertion
                prev[j - 1] + (ca != cb),  # substitution
            ))
        prev = cur
    return prev[-1]


def edit_similarity(a: str, b: str) -> float:
    """1 - distance / max(len(a), len(b)); two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


# ---------------------------------------------------------------------------
# Tier policy (pure)
# ---------------------------------------------------------------------------

def records_from_hits(hits: Sequence[SearchHit]) -> List[CorrectionRecord]:
    records: List[CorrectionRecord] = []
    for h in hits:
        part = h.text(config.PART_NUMBER_FIELD)
        if not part:
            continue
        records.append(
            CorrectionRecord(
                matched_text=h.text(config.DESCRIPTION_FIELD),
                part_number=part,
                reason=h.text(config.REASON_FIELD),
                score=float(h.score),
            )
        )
    return records


def _exact_tier(
    records: Sequence[CorrectionRecord],
    keys: set[str],
    policy: CorrectionPolicy,
) -> Optional[CorrectionMatch]:
    for rec in records:
        if not rec.matched_text:
            continue
        if rec.score >= policy.exact_min_score and casefold_key(rec.matched_text) in keys:
            explanation = f"Corrected via exact match with a confirmed description (score {rec.score:.3f})."
            if rec.reason:
                explanation += f" {rec.reason}"
            return CorrectionMatch("exact", rec.part_number, explanation, rec)
    return None


def _grouped_tier(
    records: Sequence[CorrectionRecord],
    policy: CorrectionPolicy,
) -> Optional[CorrectionMatch]:
    # dicts keep insertion order, which is the "earliest-seen" tie-break
    groups: Dict[str, List[CorrectionRecord]] = {}
    for rec in records:
        if rec.score >= policy.group_min_score:
            groups.setdefault(rec.part_number, []).append(rec)
    if not groups:
        return None

    best_part: Optional[str] = None
    best_score = float("-inf")
    for part, members in groups.items():
        group_score = max(r.score for r in members) + policy.group_repeat_bonus * (len(members) - 1)
        if group_score > best_score + _TIE_EPS:
            best_part, best_score = part, group_score

    members = groups[best_part]
    top = max(members, key=lambda r: r.score)  # first of equals wins
    explanation = (
        f"Corrected via {len(members)} confirmed match(es) for this part "
        f"(group score {best_score:.3f})."
    )
    if top.reason:
        explanation += f" {top.reason}"
    return CorrectionMatch("grouped", best_part, explanation, top)


def _fuzzy_tier(
    records: Sequence[CorrectionRecord],
    description_key: str,
    policy: CorrectionPolicy,
) -> Optional[CorrectionMatch]:
    best: Optional[CorrectionRecord] = None
    best_sim = float("-inf")
    if not description_key:
        return None
    for rec in records:
        sim = edit_similarity(casefold_key(rec.matched_text), description_key)
        if sim > best_sim:
            best, best_sim = rec, sim
    if best is None or best_sim < policy.fuzzy_min_similarity:
        return None
    explanation = (
        f"Corrected via close match ({best_sim:.0%} similar) to confirmed description "
        f"'{best.matched_text}'."
    )
    if best.reason:
        explanation += f" {best.reason}"
    return CorrectionMatch("fuzzy", best.part_number, explanation, best)


def apply_correction_tiers(
    records: Sequence[CorrectionRecord],
    description: str,
    policy: CorrectionPolicy = CorrectionPolicy(),
    raw_description: Optional[str] = None,
) -> Optional[CorrectionMatch]:
    """
    Pick at most one correction for ``description``.

    ``description`` is the normalized text; ``raw_description`` (when given)
    is also accepted as an exact-tier key so corrections stored against the
    text exactly as typed still hit.
    """
    if not records:
        return None
    desc_key = casefold_key(description)
    keys = {desc_key}
    if raw_description:
        keys.add(casefold_key(raw_description))

    return (
        _exact_tier(records, keys, policy)
        or _grouped_tier(records, policy)
        or _fuzzy_tier(records, desc_key, policy)
    )


# ---------------------------------------------------------------------------
# Resolver (talks to the correction store)
# ---------------------------------------------------------------------------

class CorrectionResolver:
    def __init__(
        self,
        search: VectorSearchClient,
        policy: CorrectionPolicy = CorrectionPolicy(),
        top_k: int = config.CORRECTION_TOP_K,
    ):
        self.search = search
        self.policy = policy
        self.top_k = top_k

    def lookup(self, vendor: VendorConfig, description: str) -> List[CorrectionRecord]:
        hits = self.search.query(
            vendor.feedback_namespace,
            description,
            top_k=self.top_k,
            fields=(config.PART_NUMBER_FIELD, config.DESCRIPTION_FIELD, config.REASON_FIELD),
        )
        return records_from_hits(hits)

    def resolve(self, vendor: VendorConfig, raw_description: str) -> Optional[CorrectionMatch]:
        description = normalize_description(raw_description)
        records = self.lookup(vendor, description)
        match = apply_correction_tiers(records, description, self.policy, raw_description=raw_description)
        if match is not None:
            logger.info(
                "Correction hit for {} '{}': {} ({} tier)",
                vendor.key, description, match.part_number, match.tier,
            )
        else:
            logger.debug("No qualifying correction for {} '{}' ({} records)", vendor.key, description, len(records))
        return match
