"""Twitter/X search platform.

Queries use the Twitter advanced search operators understood by the
backend's ``twitter-scraper`` worker. The cursor is the newest tweet id and
bounds the next job with ``since_id:``.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ferret.models import Cursor, SourceAuthor
from ferret.platforms.base import PlatformOptions, PlatformSearchService

PLATFORM_TYPE = "twitter-scraper"


class TwitterSearchOptions(PlatformOptions):
    """Validated options for a Twitter search job."""

    from_accounts: List[str] = Field(default_factory=list)
    to_accounts: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)
    min_likes: Optional[int] = Field(default=None, ge=0)
    min_retweets: Optional[int] = Field(default=None, ge=0)
    min_replies: Optional[int] = Field(default=None, ge=0)
    language: Optional[str] = Field(default=None, pattern=r"^[a-z]{2,3}$")
    since_date: Optional[date] = None
    until_date: Optional[date] = None
    include_replies: Optional[bool] = None
    include_retweets: Optional[bool] = None
    has_media: Optional[bool] = None
    has_links: Optional[bool] = None
    verified_only: bool = False
    since_id: Optional[str] = None

    @field_validator("from_accounts", "to_accounts", "mentions")
    @classmethod
    def _strip_at(cls, values: List[str]) -> List[str]:
        return [v.strip().lstrip("@") for v in values if v and v.strip().lstrip("@")]

    @field_validator("hashtags")
    @classmethod
    def _strip_hash(cls, values: List[str]) -> List[str]:
        return [v.strip().lstrip("#") for v in values if v and v.strip().lstrip("#")]


def _any_of(operator: str, values: List[str]) -> Optional[str]:
    if not values:
        return None
    terms = [f"{operator}{v}" for v in values]
    return terms[0] if len(terms) == 1 else "(" + " OR ".join(terms) + ")"


def _flag(name: str, value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return f"filter:{name}" if value else f"-filter:{name}"


def build_twitter_query(options: TwitterSearchOptions) -> str:
    """Build a Twitter advanced search query.

    Terms always appear in the same order, so identical options give an
    identical string.
    """
    parts: List[Optional[str]] = [
        options.query.strip() if options.query else None,
        _any_of("from:", options.from_accounts),
        _any_of("to:", options.to_accounts),
        " ".join(f"@{m}" for m in options.mentions) or None,
        " ".join(f"#{h}" for h in options.hashtags) or None,
    ]
    if options.min_likes is not None:
        parts.append(f"min_faves:{options.min_likes}")
    if options.min_retweets is not None:
        parts.append(f"min_retweets:{options.min_retweets}")
    if options.min_replies is not None:
        parts.append(f"min_replies:{options.min_replies}")
    if options.language:
        parts.append(f"lang:{options.language}")
    if options.since_date:
        parts.append(f"since:{options.since_date.isoformat()}")
    if options.until_date:
        parts.append(f"until:{options.until_date.isoformat()}")
    parts.extend(
        [
            _flag("replies", options.include_replies),
            _flag("retweets", options.include_retweets),
            _flag("media", options.has_media),
            _flag("links", options.has_links),
            "filter:verified" if options.verified_only else None,
        ]
    )
    if options.since_id:
        parts.append(f"since_id:{options.since_id}")
    return " ".join(p for p in parts if p)


class TwitterSearchService(PlatformSearchService):
    platform_type = PLATFORM_TYPE

    def build_query(self, options: TwitterSearchOptions, cursor: Optional[Cursor]) -> str:  # type: ignore[override]
        if cursor is not None and not isinstance(cursor, dict):
            options = options.model_copy(update={"since_id": str(cursor)})
        return build_twitter_query(options)

    def item_author(self, meta: Dict[str, Any]) -> Optional[SourceAuthor]:
        username = meta.get("username") or meta.get("author")
        user_id = meta.get("user_id")
        if not username and not user_id:
            return None
        return SourceAuthor(
            id=str(user_id) if user_id else None,
            username=username,
            display_name=meta.get("name"),
        )

    def item_metadata(self, meta: Dict[str, Any], external_id: str) -> Dict[str, Any]:
        username = meta.get("username") or meta.get("author")
        url = meta.get("url")
        if not url and username and external_id:
            url = f"https://x.com/{username}/status/{external_id}"
        reply_to = meta.get("in_reply_to_status_id") or meta.get("in_reply_to_id")
        return {
            "url": url,
            "language": meta.get("lang"),
            "is_reply": meta.get("is_reply", bool(reply_to) if reply_to is not None else None),
            "in_reply_to_id": str(reply_to) if reply_to else None,
            "conversation_id": str(meta["conversation_id"]) if meta.get("conversation_id") else None,
            "likes": meta.get("likes"),
            "retweets": meta.get("retweets"),
            "replies": meta.get("replies"),
        }
