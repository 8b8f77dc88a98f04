from __future__ import annotations

"""
Streaming session for interactive delivery.

    Idle -> Streaming -> {Cancelled, Completed}

Descriptions are resolved one at a time (each on the threadpool, all
vendors per description) so progress arrives in input order. While a
description is in flight an empty ``{}`` heartbeat goes out every
``heartbeat_seconds``.

Cancellation is cooperative: it is checked at description boundaries and at
heartbeat ticks. The description in flight always runs to completion, but
once cancelled the session emits nothing further.
"""

import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool
from loguru import logger

from . import config
from .config import ResolutionResult
from .pipeline import group_by_vendor
from .vendors import VendorConfig


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def progress_percent(done: int, total: int) -> float:
    if total <= 0:
        return 100.0
    return round(100.0 * done / total, 1)


class StreamSession:
    def __init__(
        self,
        descriptions: Sequence[str],
        vendors: Sequence[VendorConfig],
        resolve_description: Callable[[str, Sequence[VendorConfig]], List[ResolutionResult]],
        heartbeat_seconds: float = config.HEARTBEAT_SECONDS,
        disconnect_check: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self.pending: List[str] = list(descriptions)
        self.vendors = tuple(vendors)
        self.resolve_description = resolve_description
        self.heartbeat_seconds = heartbeat_seconds
        self.disconnect_check = disconnect_check
        self.cursor = 0
        self.cancelled = False
        self.state = SessionState.IDLE

    def cancel(self) -> None:
        """Client went away. Takes effect at the next boundary check."""
        if not self.cancelled:
            logger.info("Stream cancelled at {}/{} descriptions", self.cursor, len(self.pending))
        self.cancelled = True

    async def _client_gone(self) -> bool:
        if self.cancelled:
            return True
        if self.disconnect_check is not None and await self.disconnect_check():
            self.cancel()
        return self.cancelled

    async def _resolve_with_heartbeats(self, description: str, out: List[ResolutionResult]) -> AsyncIterator[Dict[str, Any]]:
        task = asyncio.ensure_future(
            run_in_threadpool(self.resolve_description, description, self.vendors)
        )
        while True:
            done, _ = await asyncio.wait({task}, timeout=self.heartbeat_seconds)
            if done:
                break
            if await self._client_gone():
                # keep waiting for the in-flight call, but stay silent
                continue
            yield {}
        out.extend(task.result())

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"StreamSession cannot be restarted (state={self.state.value})")
        self.state = SessionState.STREAMING
        total = len(self.pending)
        rows: List[List[ResolutionResult]] = []
        logger.info("Stream started: {} descriptions x {} vendors", total, len(self.vendors))

        try:
            while self.cursor < total:
                if await self._client_gone():
                    break
                description = self.pending[self.cursor]

                results: List[ResolutionResult] = []
                async for heartbeat in self._resolve_with_heartbeats(description, results):
                    yield heartbeat

                self.cursor += 1
                rows.append(results)
                if await self._client_gone():
                    break
                yield {
                    "description": description,
                    "vendors": [r.model_dump() for r in results],
                    "progress": progress_percent(self.cursor, total),
                }

            if self.cancelled:
                self.state = SessionState.CANCELLED
                return

            self.state = SessionState.COMPLETED
            logger.info("Stream completed: {} descriptions", total)
            yield {
                "complete": True,
                "results": [g.model_dump() for g in group_by_vendor(self.vendors, rows)],
            }
        finally:
            # consumer closed the generator early (transport disconnect)
            if self.state is SessionState.STREAMING:
                self.cancelled = True
                self.state = SessionState.CANCELLED


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


async def sse_frames(session: StreamSession) -> AsyncIterator[str]:
    """Transport adapter: session events -> ``data: <json>`` frames."""
    async for event in session.events():
        yield format_sse(event)
