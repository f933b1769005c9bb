"""
Database Schemas

Content documents live in the "content" collection, one record per
ContentKey. Visitor messages live in the "messages" collection and follow
the Message model below.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, EmailStr, field_validator


class ContentKey(str, Enum):
    """
    The fixed set of content areas the admin client edits.
    Each key stores either a single object or a list.
    """
    HOME = "home"
    PROJECTS = "projects"
    BLOGS = "blogs"
    PROFILE = "profile"
    ABOUT = "about"
    CONTACT = "contact"
    NOT_FOUND = "404"
    SOCIALS = "socials"

    @property
    def is_list(self) -> bool:
        return self in _LIST_KEYS

    @property
    def filename(self) -> str:
        return f"{self.value}.json"

    def default(self) -> Any:
        return [] if self.is_list else {}


_LIST_KEYS = frozenset({ContentKey.PROJECTS, ContentKey.BLOGS, ContentKey.SOCIALS})


class Message(BaseModel):
    """
    Messages collection (collection name: messages)
    """
    id: int = Field(..., description="Store-assigned, increasing id")
    name: str
    email: str
    message: str
    createdAt: datetime
    read: bool = False

    @field_validator("createdAt")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # MongoDB hands back naive UTC datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Request/Response models

class MessageCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    message: str = Field(..., min_length=1)


class MessageRef(BaseModel):
    id: int


class LoginRequest(BaseModel):
    password: Optional[str] = None


class LoginResponse(BaseModel):
    ok: bool = True
    token: str


class MessagePage(BaseModel):
    page: int
    limit: int
    total: int
    messages: List[Message]
