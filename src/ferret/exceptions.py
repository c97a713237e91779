"""Custom exception hierarchy for Ferret.

Only configuration and input problems are raised to the caller of
`SourceConnector.search`. Backend failures are raised by the client and
recorded by the platform services as job state instead of propagating.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional


class FerretError(Exception):
    """Base class for all Ferret exceptions."""


class ConfigError(FerretError):
    """Raised when connector configuration is missing or invalid."""


class NotInitializedError(FerretError):
    """Raised when the connector is used before `initialize()`."""


class PlatformNotRegisteredError(FerretError):
    """Raised when a search names a platform type with no registry entry."""

    def __init__(self, platform_type: str, available: Iterable[str] = ()) -> None:
        self.platform_type = platform_type
        self.available = sorted(available)
        known = ", ".join(self.available) or "none"
        super().__init__(
            f'No service registered for platform type: "{platform_type}". Available: {known}'
        )


@dataclass(frozen=True)
class FieldError:
    """A single schema violation: dotted field path plus message."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} - {self.message}" if self.path else self.message


class ValidationError(FerretError):
    """Raised when search options fail a platform's option schema."""

    def __init__(self, platform_type: str, field_errors: List[FieldError]) -> None:
        self.platform_type = platform_type
        self.field_errors = list(field_errors)
        details = ", ".join(str(e) for e in self.field_errors)
        super().__init__(f"Invalid options for {platform_type}: {details}")

    @property
    def fields(self) -> List[str]:
        return [e.path for e in self.field_errors]


class BackendError(FerretError):
    """Raised by the backend client when a call yields no usable result."""

    def __init__(self, message: str, *, job_id: Optional[str] = None) -> None:
        self.job_id = job_id
        super().__init__(message)


class JobSubmissionFailure(BackendError):
    """The backend rejected or failed a submit call."""


class JobStatusFailure(BackendError):
    """The backend poll returned an unusable status."""


class ResultFetchFailure(BackendError):
    """The backend returned no results for a finished job."""
