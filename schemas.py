"""
Database Schemas for TrailTalk

Post is stored in the "posts" collection; comments are embedded in their post.
The *Create / *Update models describe request bodies after normalization.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

TAGS = (
    "Adventure",
    "Trail Review",
    "Scenic View",
    "Trail Tips",
    "Gear Advice",
    "Planning Help",
    "Weather Concerns",
    "Trail Running",
    "Question",
    "Opinion",
    "Discussion",
    "Other",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Comment(BaseModel):
    """
    Comment on a post, appended to post.comments
    """
    userId: Optional[str] = Field(None, description="Commenter id, not authenticated")
    comment: Optional[str] = Field(None, description="Comment text")
    createdAt: datetime = Field(default_factory=utcnow)


class Post(BaseModel):
    """
    Trail write-up shared by a user
    Collection: "posts"
    """
    title: str = Field(..., description="Post title")
    content: str = Field("", description="Body text")
    imageUrl: Optional[str] = Field(None, description="Optional external image URL")
    localImagePath: Optional[str] = Field(None, description="Path of an uploaded image, e.g. uploads/1700000000000-ab12cd34.png")
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)
    upvotes: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    userId: str = Field(..., description="Author id, not authenticated")
    secretKey: str = Field(..., description="Plaintext key required to update or delete")
    repostId: str = Field(default_factory=lambda: uuid.uuid4().hex)


# ---------- Request bodies ----------

def parse_tags(value):
    """Accept a list, a JSON-encoded list or a single tag; parse first, validate later"""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if not text.startswith("["):
            return [text]
        try:
            value = json.loads(text)
        except ValueError:
            raise ValueError("Tags must be a JSON array of strings")
    if not isinstance(value, (list, tuple)) or not all(isinstance(t, str) for t in value):
        raise ValueError("Tags must be a JSON array of strings")
    return [t.strip() for t in value]


def check_tags(tags: List[str]) -> List[str]:
    invalid = [t for t in tags if t not in TAGS]
    if invalid:
        raise ValueError(f"Invalid tag(s): {', '.join(invalid)}")
    # tags are a set; keep first-seen order
    return list(dict.fromkeys(tags))


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _required(value, field: str):
    if not value:
        raise ValueError(f"{field} is required")
    return value


class PostBody(BaseModel):
    """
    Validators shared by the create and update bodies.
    Subclasses declare the fields; null content is stored as "".
    """
    strip_text = field_validator(
        "title", "content", "imageUrl", "userId", "secretKey", mode="before", check_fields=False
    )(_strip)

    @field_validator("title", "userId", check_fields=False)
    @classmethod
    def not_blank(cls, v, info):
        return _required(v, info.field_name)

    @field_validator("content", mode="before", check_fields=False)
    @classmethod
    def default_content(cls, v):
        return "" if v is None else v

    @field_validator("imageUrl", check_fields=False)
    @classmethod
    def empty_url(cls, v):
        return v or None

    @field_validator("tags", mode="before", check_fields=False)
    @classmethod
    def tag_list(cls, v):
        return parse_tags(v)

    @field_validator("tags", check_fields=False)
    @classmethod
    def vocabulary(cls, v):
        return check_tags(v)


class PostCreate(PostBody):
    title: str
    content: str = ""
    imageUrl: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    userId: str
    secretKey: str

    @field_validator("secretKey")
    @classmethod
    def key_not_blank(cls, v):
        return _required(v, "secretKey")


class PostUpdate(PostBody):
    """
    Partial update; only fields present in the request are written.
    secretKey authorizes the change and is rewritten with it.
    """
    title: Optional[str] = None
    content: Optional[str] = None
    imageUrl: Optional[str] = None
    tags: Optional[List[str]] = None
    userId: Optional[str] = None
    secretKey: Optional[str] = None


class SecretKeyBody(BaseModel):
    secretKey: Optional[str] = None

    strip_text = field_validator("secretKey", mode="before")(_strip)


class CommentCreate(BaseModel):
    userId: Optional[str] = None
    comment: Optional[str] = None
