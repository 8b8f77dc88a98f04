from __future__ import annotations

"""
Vendor orchestrator.

For one (vendor, description) pair:

  corrections (if enabled) --hit--> result
        | miss
        v
  retrieve -> realtime rerank (if weighted) -> LLM selection -> result

Every pair yields exactly one ``ResolutionResult``. Failures at any stage
degrade that pair to ``partNumber="N/A"`` with the error message as the
explanation; they never reach sibling vendors or descriptions.
"""

import concurrent.futures
from typing import List, Optional, Sequence

import httpx
from loguru import logger

from . import config
from .config import ResolutionResult, VendorResults
from .corrections import CorrectionResolver
from .errors import PartLookupError
from .pipeline_types import PipelineOptions
from .realtime import RealtimeReranker
from .resilience import DEFAULT_RETRY_POLICY, RetryPolicy
from .retrieval import CandidateRetriever
from .search_client import VectorSearchClient
from .selection import SelectionEngine
from .vendors import VendorConfig, VendorTable


def _degraded(vendor: VendorConfig, description: str, error: BaseException) -> ResolutionResult:
    message = str(error).strip() or type(error).__name__
    return ResolutionResult(
        vendor=vendor.key,
        vendorDisplayName=vendor.display_name,
        description=description,
        partNumber=config.NOT_AVAILABLE,
        explanation=message,
    )


class VendorOrchestrator:
    def __init__(
        self,
        vendors: VendorTable,
        corrections: CorrectionResolver,
        retriever: CandidateRetriever,
        realtime: RealtimeReranker,
        selector: SelectionEngine,
        max_workers: int = config.BATCH_MAX_WORKERS,
    ):
        self.vendors = vendors
        self.corrections = corrections
        self.retriever = retriever
        self.realtime = realtime
        self.selector = selector
        self.max_workers = max(1, int(max_workers))

    # ------------------------------------------------------------------
    # One unit
    # ------------------------------------------------------------------

    def _run(self, vendor: VendorConfig, description: str) -> ResolutionResult:
        if vendor.corrections_enabled:
            match = self.corrections.resolve(vendor, description)
            if match is not None:
                return ResolutionResult(
                    vendor=vendor.key,
                    vendorDisplayName=vendor.display_name,
                    description=description,
                    partNumber=match.part_number,
                    explanation=match.explanation,
                )

        candidates = self.retriever.retrieve(vendor, description)

        realtime_available = False
        if vendor.realtime_enabled and candidates:
            outcome = self.realtime.rerank(vendor, description, candidates)
            candidates = outcome.candidates
            realtime_available = outcome.available

        selection = self.selector.select(
            description,
            candidates,
            realtime_weight=vendor.realtime_weight,
            realtime_available=realtime_available,
            vendor_name=vendor.display_name,
        )
        return ResolutionResult(
            vendor=vendor.key,
            vendorDisplayName=vendor.display_name,
            description=description,
            partNumber=selection.part_number,
            explanation=selection.explanation,
        )

    def resolve(self, vendor: VendorConfig, description: str) -> ResolutionResult:
        try:
            result = self._run(vendor, description)
        except (PartLookupError, httpx.HTTPError) as e:
            logger.warning("Lookup failed for {} '{}': {}", vendor.key, description, e)
            return _degraded(vendor, description, e)
        except Exception as e:
            logger.exception("Unexpected failure for {} '{}': {}", vendor.key, description, e)
            return _degraded(vendor, description, e)
        logger.info("{} '{}' -> {}", vendor.key, description, result.partNumber)
        return result

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def resolve_description(
        self,
        description: str,
        vendors: Optional[Sequence[VendorConfig]] = None,
    ) -> List[ResolutionResult]:
        """One result per vendor, in vendor-table order."""
        targets = tuple(vendors) if vendors is not None else tuple(self.vendors)
        return [self.resolve(v, description) for v in targets]

    def resolve_batch(
        self,
        descriptions: Sequence[str],
        vendors: Optional[Sequence[VendorConfig]] = None,
    ) -> List[VendorResults]:
        """
        Results grouped per vendor; each group lists descriptions in input order.

        With ``max_workers > 1`` descriptions are resolved on a bounded thread
        pool; ``executor.map`` keeps input order.
        """
        targets = tuple(vendors) if vendors is not None else tuple(self.vendors)
        descriptions = list(descriptions)

        if self.max_workers > 1 and len(descriptions) > 1:
            workers = min(self.max_workers, len(descriptions))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                rows = list(executor.map(lambda d: self.resolve_description(d, targets), descriptions))
        else:
            rows = [self.resolve_description(d, targets) for d in descriptions]

        return group_by_vendor(targets, rows)


def group_by_vendor(
    vendors: Sequence[VendorConfig],
    rows: Sequence[Sequence[ResolutionResult]],
) -> List[VendorResults]:
    """``rows[i][j]`` is description i for vendor j -> one group per vendor."""
    groups: List[VendorResults] = []
    for j, v in enumerate(vendors):
        groups.append(
            VendorResults(
                vendor=v.key,
                vendorDisplayName=v.display_name,
                partNumbers=[row[j] for row in rows],
            )
        )
    return groups


def build_orchestrator(
    vendors: Optional[VendorTable] = None,
    options: PipelineOptions = PipelineOptions(),
    retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    search_client: Optional[httpx.Client] = None,
    scrape_client: Optional[httpx.Client] = None,
    llm_client: Optional[httpx.Client] = None,
    max_workers: int = config.BATCH_MAX_WORKERS,
) -> VendorOrchestrator:
    """Wire the production collaborators; httpx clients may be injected."""
    search = VectorSearchClient(client=search_client, retry_policy=retry_policy)
    return VendorOrchestrator(
        vendors=vendors or VendorTable(),
        corrections=CorrectionResolver(
            search,
            policy=options.correction_policy,
            top_k=options.correction_top_k,
        ),
        retriever=CandidateRetriever(search, options=options),
        realtime=RealtimeReranker(client=scrape_client, retry_policy=retry_policy),
        selector=SelectionEngine(client=llm_client, retry_policy=retry_policy),
        max_workers=max_workers,
    )
