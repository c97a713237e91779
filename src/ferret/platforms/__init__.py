"""Platform search services and their option schemas."""

from .base import PlatformOptions, PlatformSearchService, merge_platform_args
from .reddit import RedditSearchOptions, RedditSearchService
from .twitter import TwitterSearchOptions, TwitterSearchService

__all__ = [
    "PlatformOptions",
    "PlatformSearchService",
    "merge_platform_args",
    "RedditSearchOptions",
    "RedditSearchService",
    "TwitterSearchOptions",
    "TwitterSearchService",
]
