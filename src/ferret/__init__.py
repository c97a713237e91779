"""Ferret: resumable, job-polling source connector."""

from ferret.connector import SourceConnector
from ferret.exceptions import (
    ConfigError,
    FerretError,
    NotInitializedError,
    PlatformNotRegisteredError,
    ValidationError,
)
from ferret.models import (
    AsyncJobProgress,
    LastProcessedState,
    PlatformState,
    SearchOptions,
    SearchResults,
    SourceItem,
)

__all__ = [
    "SourceConnector",
    "ConfigError",
    "FerretError",
    "NotInitializedError",
    "PlatformNotRegisteredError",
    "ValidationError",
    "AsyncJobProgress",
    "LastProcessedState",
    "PlatformState",
    "SearchOptions",
    "SearchResults",
    "SourceItem",
]
