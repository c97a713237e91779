"""Base platform search service: the submit/poll/fetch job state machine.

Each `search` call performs at most one backend phase for a platform:

* an active job (submitted, pending, processing) is polled, and its results
  are fetched once the backend reports ``done``;
* otherwise a new job is submitted, bounded by the current cursor.

Backend failures never escape `search`. They are recorded on the returned
job as ``status="error"`` so the caller's polling loop stays uniform.
Concrete platforms provide the query builder, item normalization and,
optionally, the ordering rule used to pick the newest item.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ferret.client import normalize_status
from ferret.exceptions import BackendError
from ferret.models import (
    AsyncJobProgress,
    Cursor,
    ItemMetadata,
    JobStatus,
    PlatformSearchOutcome,
    PlatformState,
    SearchOptions,
    SourceAuthor,
    SourceItem,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

SOURCE_PLUGIN_NAME = "ferret"
DEFAULT_PAGE_SIZE = 25
# Most recent job ids kept per service for duplicate-delivery warnings
DELIVERED_JOBS_LIMIT = 256


class SearchBackend(Protocol):
    """Outbound job API consumed by the platform services."""

    async def submit_job(self, platform: str, query: str, max_results: int) -> Optional[str]: ...

    async def check_job_status(self, platform: str, job_id: str) -> Optional[JobStatus]: ...

    async def get_job_results(self, platform: str, job_id: str) -> Optional[List[Dict[str, Any]]]: ...


class PlatformOptions(BaseModel):
    """Options common to every platform; subclasses add platform fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    query: Optional[str] = None
    page_size: Optional[int] = Field(default=None, ge=1)


def merge_platform_args(options: SearchOptions) -> Dict[str, Any]:
    """Map generic search options to raw platform arguments.

    Top-level ``query`` and ``pageSize`` are merged with the ``platformArgs``
    sub-object; values in ``platformArgs`` win.
    """
    args: Dict[str, Any] = {}
    if options.query is not None:
        args["query"] = options.query
    if options.page_size is not None:
        args["pageSize"] = options.page_size
    args.update(options.platform_args or {})
    return args


def id_ordering_key(value: Any) -> Tuple[int, int, str]:
    """Default ordering for item identifiers.

    Base-10 integer ids compare numerically and rank above anything else;
    other ids compare lexicographically.
    """
    text = str(value)
    if text.isdecimal():
        try:
            return (1, int(text), "")
        except ValueError:
            pass
    return (0, 0, text)


class PlatformSearchService(ABC):
    """Job state machine for one platform on the shared search backend."""

    platform_type: str = ""
    default_page_size: int = DEFAULT_PAGE_SIZE

    def __init__(self, client: SearchBackend) -> None:
        self._client = client
        self._delivered_jobs: Deque[str] = deque(maxlen=DELIVERED_JOBS_LIMIT)

    # ----- Platform hooks -----

    @abstractmethod
    def build_query(self, options: PlatformOptions, cursor: Optional[Cursor]) -> str:
        """Build the backend query string, bounded by ``cursor`` when present."""
        raise NotImplementedError

    def ordering_key(self, value: Any) -> Any:
        return id_ordering_key(value)

    def item_author(self, meta: Dict[str, Any]) -> Optional[SourceAuthor]:
        return None

    def item_metadata(self, meta: Dict[str, Any], external_id: str) -> Dict[str, Any]:
        return {}

    def item_created_at(self, meta: Dict[str, Any]) -> Optional[str]:
        created = meta.get("created_at")
        return str(created) if created else None

    # ----- Item handling -----

    def to_item(self, record: Dict[str, Any]) -> Optional[SourceItem]:
        """Normalize one raw backend record, or None if it carries no identifier."""
        internal_id = record.get("ID") or record.get("id")
        external_id = record.get("ExternalID") or record.get("external_id")
        if not internal_id and not external_id:
            return None
        meta = record.get("Metadata") or record.get("metadata") or {}
        if not isinstance(meta, dict):
            meta = {}
        external = str(external_id) if external_id else ""
        extra = {k: v for k, v in self.item_metadata(meta, external).items() if v is not None}
        return SourceItem(
            id=str(internal_id or external_id),
            external_id=external,
            content=str(record.get("Content") or record.get("content") or ""),
            created_at=self.item_created_at(meta),
            author=self.item_author(meta),
            metadata=ItemMetadata(
                source_plugin=SOURCE_PLUGIN_NAME,
                search_type=self.platform_type,
                **extra,
            ),
            raw=record,
        )

    def item_cursor(self, item: SourceItem) -> str:
        # Canonical external id first, service-internal id as fallback
        return item.external_id or item.id

    def newest_cursor(self, items: List[SourceItem], cursor: Optional[Cursor]) -> Optional[Cursor]:
        """Cursor after delivering ``items``; never moves behind ``cursor``."""
        if not items:
            return cursor
        newest = max((self.item_cursor(i) for i in items), key=self.ordering_key)
        if isinstance(cursor, (str, int)) and self.ordering_key(cursor) >= self.ordering_key(newest):
            return cursor
        return newest

    # ----- State machine -----

    async def search(
        self, options: PlatformOptions, state: Optional[PlatformState]
    ) -> PlatformSearchOutcome:
        """Advance the job state machine by exactly one phase."""
        current = state if state is not None else PlatformState()
        job = current.current_async_job
        cursor = current.latest_processed_id
        if job is not None and job.is_active:
            return await self._advance_job(current, job, cursor)
        return await self._submit_job(options, current, cursor)

    async def _advance_job(
        self, state: PlatformState, job: AsyncJobProgress, cursor: Optional[Cursor]
    ) -> PlatformSearchOutcome:
        logger.debug("%s: checking status for job %s", self.platform_type, job.job_id)
        diagnostic: Optional[str] = None
        try:
            raw_status = await self._client.check_job_status(self.platform_type, job.job_id)
        except BackendError as exc:
            raw_status, diagnostic = None, str(exc)
        # Unrecognized wording counts as a failed status check
        status = normalize_status(raw_status)
        now = utcnow_iso()

        if status == "done":
            items = await self._fetch_items(job)
            new_cursor = self.newest_cursor(items, cursor)
            logger.info(
                "%s: job %s done, %d items, cursor %r -> %r",
                self.platform_type,
                job.job_id,
                len(items),
                cursor,
                new_cursor,
            )
            done_job = job.model_copy(update={"status": "done", "last_checked_at": now})
            return PlatformSearchOutcome(
                items=items,
                next_state=state.model_copy(
                    update={"latest_processed_id": new_cursor, "current_async_job": done_job}
                ),
            )

        if status is None or status == "error":
            message = diagnostic or f"job status: {raw_status}"
            logger.error("%s: job %s failed: %s", self.platform_type, job.job_id, message)
            failed_job = job.model_copy(
                update={"status": "error", "error_message": message, "last_checked_at": now}
            )
            return PlatformSearchOutcome(
                items=[], next_state=state.model_copy(update={"current_async_job": failed_job})
            )

        logger.info("%s: job %s status: %s", self.platform_type, job.job_id, status)
        polled_job = job.model_copy(update={"status": status, "last_checked_at": now})
        return PlatformSearchOutcome(
            items=[], next_state=state.model_copy(update={"current_async_job": polled_job})
        )

    async def _fetch_items(self, job: AsyncJobProgress) -> List[SourceItem]:
        try:
            records = await self._client.get_job_results(self.platform_type, job.job_id)
        except BackendError as exc:
            logger.warning("%s: no results for job %s: %s", self.platform_type, job.job_id, exc)
            records = None
        if job.job_id in self._delivered_jobs:
            logger.warning("%s: results of job %s delivered again", self.platform_type, job.job_id)
        else:
            self._delivered_jobs.append(job.job_id)
        items: List[SourceItem] = []
        for record in records or []:
            item = self.to_item(record)
            if item is not None:
                items.append(item)
        return items

    async def _submit_job(
        self, options: PlatformOptions, state: PlatformState, cursor: Optional[Cursor]
    ) -> PlatformSearchOutcome:
        query = self.build_query(options, cursor)
        max_results = options.page_size or self.default_page_size
        logger.info("%s: submitting job for query %r", self.platform_type, query)
        try:
            job_id = await self._client.submit_job(self.platform_type, query, max_results)
        except BackendError as exc:
            logger.error("%s: job submission failed: %s", self.platform_type, exc)
            job_id = None
        now = utcnow_iso()

        if not job_id:
            failed_job = AsyncJobProgress(
                job_id=f"submission_failed_{int(time.time() * 1000)}",
                status="error",
                submitted_at=now,
                error_message="submission failed",
            )
            return PlatformSearchOutcome(
                items=[],
                next_state=state.model_copy(
                    update={"latest_processed_id": cursor, "current_async_job": failed_job}
                ),
            )

        new_job = AsyncJobProgress(job_id=job_id, status="submitted", submitted_at=now)
        return PlatformSearchOutcome(
            items=[],
            next_state=state.model_copy(
                update={"latest_processed_id": cursor, "current_async_job": new_job}
            ),
        )

    async def shutdown(self) -> None:
        """Release per-service resources; never fails."""
        self._delivered_jobs.clear()
        logger.debug("%s service shut down", self.platform_type)
