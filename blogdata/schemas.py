from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

COMMENT_MAX_LENGTH = 500


# --- Transport ---

class TransportMode(str, Enum):
    DIRECT = "direct"
    PROXY = "proxy"


# --- Rate limiting ---

class RateLimitRule(BaseModel):
    max_requests: int = Field(ge=1)
    window_ms: int = Field(ge=1)
    block_duration: int = Field(ge=0)


class RateLimitState(BaseModel):
    requests: list[int] = []
    blocked_until: int | None = Field(
        None, validation_alias=AliasChoices("blockedUntil", "blocked_until"),
        serialization_alias="blockedUntil",
    )
    model_config = ConfigDict(populate_by_name=True)


class CheckResult(BaseModel):
    allowed: bool
    retry_after: int | None = None
    message: str | None = None


# --- Article ---

class Article(BaseModel):
    id: str
    title: str
    content: str = ""
    category: str = ""
    date: str = ""
    images: list[str] = []
    tags: list[str] = []

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        # Set-like: keep first occurrence order.
        return list(dict.fromkeys(value))


class ArticleUpdate(BaseModel):
    title: str | None = None
    content: str | None = None
    category: str | None = None
    date: str | None = None
    images: list[str] | None = None
    tags: list[str] | None = None


# --- Comment ---

class Comment(BaseModel):
    """
    A comment as stored in the backing store.

    ``external_key`` is the store-assigned key of the entry and is never
    written back as part of the value.
    """

    id: str
    article_id: str = Field(validation_alias=AliasChoices("articleId", "article_id"),
                            serialization_alias="articleId")
    parent_id: str | None = Field(None, validation_alias=AliasChoices("parentId", "parent_id"),
                                  serialization_alias="parentId")
    name: str = ""
    text: str = Field("", validation_alias=AliasChoices("comment", "content", "text"),
                      serialization_alias="comment")
    date: str = ""
    external_key: str | None = Field(None, exclude=True)
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("id", "article_id", mode="before")
    @classmethod
    def _coerce_str(cls, value):
        return str(value)

    @field_validator("parent_id", mode="before")
    @classmethod
    def _normalise_parent(cls, value):
        if value is None or value in ("", "null"):
            return None
        return str(value)


class CommentCreate(BaseModel):
    article_id: str
    name: str = Field(max_length=100)
    text: str = Field(max_length=COMMENT_MAX_LENGTH)
    parent_id: str | None = None

    @field_validator("name", "text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CascadeDeleteResult(BaseModel):
    attempted: list[str] = []
    failed: list[str] = []


class RenderedComment(BaseModel):
    comment: Comment
    level: int
    can_reply: bool
    replies: list[RenderedComment] = []


# --- Relay ---

class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str


RenderedComment.model_rebuild()
