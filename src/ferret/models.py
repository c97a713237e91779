"""Data model shared by the connector, the platform services and callers.

All models serialize with the camelCase field names of the persisted state
shape, e.g. ``{"data": {"latestProcessedId": ..., "currentAsyncJob": {...}}}``,
and accept either camelCase or snake_case names on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

JobStatus = Literal["submitted", "pending", "processing", "done", "error", "timeout"]

ACTIVE_JOB_STATUSES = frozenset({"submitted", "pending", "processing"})
TERMINAL_JOB_STATUSES = frozenset({"done", "error", "timeout"})

Cursor = Union[int, str, Dict[str, Any]]


def utcnow_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-compatible dict using wire (camelCase) names, unset fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AsyncJobProgress(_WireModel):
    """One unit of work submitted to the asynchronous search backend.

    Instances are immutable; every poll produces a new value through
    `model_copy(update=...)`.
    """

    job_id: str
    status: JobStatus
    submitted_at: str
    last_checked_at: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class PlatformState(_WireModel):
    """Resumable cursor plus the job currently in flight for one platform.

    ``extensions`` is reserved for platform-specific values that do not fit
    the cursor/job pair.
    """

    latest_processed_id: Optional[Cursor] = None
    current_async_job: Optional[AsyncJobProgress] = None
    extensions: Optional[Dict[str, Any]] = None

    @property
    def has_active_job(self) -> bool:
        return self.current_async_job is not None and self.current_async_job.is_active


class LastProcessedState(_WireModel):
    """Envelope persisted by the caller between `search` calls."""

    data: PlatformState

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "LastProcessedState":
        return cls.model_validate_json(payload)


class SourceAuthor(_WireModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None


class ItemMetadata(_WireModel):
    """Provenance of an item plus any platform-specific extras."""

    model_config = ConfigDict(extra="allow")

    source_plugin: str
    search_type: str
    url: Optional[str] = None
    language: Optional[str] = None
    is_reply: Optional[bool] = None
    in_reply_to_id: Optional[str] = None
    conversation_id: Optional[str] = None


class SourceItem(_WireModel):
    """A normalized content record delivered to the caller."""

    id: str
    external_id: str
    content: str
    created_at: Optional[str] = None
    author: Optional[SourceAuthor] = None
    metadata: ItemMetadata
    raw: Optional[Any] = None


class SearchOptions(_WireModel):
    """Generic search request envelope; ``type`` selects the platform."""

    model_config = ConfigDict(extra="allow", frozen=False)

    type: str
    query: Optional[str] = None
    page_size: Optional[int] = None
    platform_args: Optional[Dict[str, Any]] = None


class SearchResults(BaseModel):
    """Items found by one `search` call and the envelope to pass to the next one."""

    items: List[SourceItem] = Field(default_factory=list)
    next_last_processed_state: Optional[LastProcessedState] = None


class PlatformSearchOutcome(BaseModel):
    """What a platform service hands back to the connector."""

    items: List[SourceItem] = Field(default_factory=list)
    next_state: Optional[PlatformState] = None
