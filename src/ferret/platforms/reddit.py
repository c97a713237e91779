"""Reddit search platform.

Reddit ids are base-36 strings (optionally prefixed with a ``t3_`` kind
tag), so the newest post is chosen by their base-36 value rather than by
string or base-10 comparison.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator

from ferret.models import Cursor, SourceAuthor
from ferret.platforms.base import PlatformOptions, PlatformSearchService, id_ordering_key

PLATFORM_TYPE = "reddit-scraper"


class RedditSearchOptions(PlatformOptions):
    """Validated options for a Reddit search job."""

    subreddits: List[str] = Field(default_factory=list)
    author: Optional[str] = None
    self_posts: Optional[bool] = None
    include_nsfw: bool = False
    after: Optional[str] = None

    @field_validator("subreddits")
    @classmethod
    def _strip_prefix(cls, values: List[str]) -> List[str]:
        cleaned = []
        for v in values:
            name = v.strip()
            for prefix in ("/r/", "r/"):
                if name.startswith(prefix):
                    name = name[len(prefix):]
            if name:
                cleaned.append(name)
        return cleaned


def build_reddit_query(options: RedditSearchOptions) -> str:
    """Build a Reddit search query; deterministic for identical options."""
    parts: List[str] = []
    if options.query:
        parts.append(options.query.strip())
    if options.subreddits:
        terms = [f"subreddit:{s}" for s in options.subreddits]
        parts.append(terms[0] if len(terms) == 1 else "(" + " OR ".join(terms) + ")")
    if options.author:
        parts.append(f"author:{options.author.strip()}")
    if options.self_posts is not None:
        parts.append("self:yes" if options.self_posts else "self:no")
    if not options.include_nsfw:
        parts.append("nsfw:no")
    if options.after:
        parts.append(f"after:{options.after}")
    return " ".join(parts)


def base36_key(value: Any) -> Tuple[int, int, str]:
    text = str(value)
    if text.startswith("t3_"):
        text = text[3:]
    try:
        return (1, int(text, 36), "")
    except ValueError:
        return id_ordering_key(value)


class RedditSearchService(PlatformSearchService):
    platform_type = PLATFORM_TYPE

    def build_query(self, options: RedditSearchOptions, cursor: Optional[Cursor]) -> str:  # type: ignore[override]
        if cursor is not None and not isinstance(cursor, dict):
            after = str(cursor)
            if not after.startswith("t3_"):
                after = f"t3_{after}"
            options = options.model_copy(update={"after": after})
        return build_reddit_query(options)

    def ordering_key(self, value: Any) -> Any:
        return base36_key(value)

    def item_author(self, meta: Dict[str, Any]) -> Optional[SourceAuthor]:
        author = meta.get("author")
        return SourceAuthor(username=author) if author else None

    def item_created_at(self, meta: Dict[str, Any]) -> Optional[str]:
        created = meta.get("created_utc")
        if isinstance(created, (int, float)):
            return datetime.fromtimestamp(float(created), tz=timezone.utc).isoformat()
        return super().item_created_at(meta)

    def item_metadata(self, meta: Dict[str, Any], external_id: str) -> Dict[str, Any]:
        permalink = meta.get("permalink")
        return {
            "url": f"https://www.reddit.com{permalink}" if permalink else meta.get("url"),
            "subreddit": meta.get("subreddit"),
            "title": meta.get("title"),
            "score": meta.get("score"),
            "num_comments": meta.get("num_comments"),
        }
