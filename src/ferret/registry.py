"""Static platform registry.

Maps a platform-type string to the service factory, option schema and
argument mapper for that platform. Adding a platform means adding an entry
here; the connector never branches on platform names.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Type

from ferret.models import SearchOptions
from ferret.platforms import reddit, twitter
from ferret.platforms.base import (
    PlatformOptions,
    PlatformSearchService,
    SearchBackend,
    merge_platform_args,
)


@dataclass(frozen=True)
class RegistryEntry:
    platform_type: str
    factory: Callable[[SearchBackend], PlatformSearchService]
    options_model: Type[PlatformOptions]
    prepare_args: Callable[[SearchOptions], Dict[str, Any]] = merge_platform_args


def build_registry(entries: Iterable[RegistryEntry]) -> Mapping[str, RegistryEntry]:
    """Build a read-only registry, rejecting duplicate platform types."""
    table: Dict[str, RegistryEntry] = {}
    for entry in entries:
        if entry.platform_type in table:
            raise ValueError(f"Duplicate platform type in registry: {entry.platform_type}")
        table[entry.platform_type] = entry
    return MappingProxyType(table)


REGISTRY: Mapping[str, RegistryEntry] = build_registry(
    [
        RegistryEntry(
            platform_type=twitter.PLATFORM_TYPE,
            factory=twitter.TwitterSearchService,
            options_model=twitter.TwitterSearchOptions,
        ),
        RegistryEntry(
            platform_type=reddit.PLATFORM_TYPE,
            factory=reddit.RedditSearchService,
            options_model=reddit.RedditSearchOptions,
        ),
    ]
)
