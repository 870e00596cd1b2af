"""
Data Schemas

Pydantic models for every record the storage layer keeps and every payload
the API accepts. Field names are camelCase because they go straight onto
the wire:
- User     -> "users" collection/table (stub, no authentication)
- Story    -> "stories" collection/table
- Category -> "categories" collection/table

Models ending in `Create` are what callers may supply; the plain models add
the fields storage assigns (id, status, featured, timestamps).
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class StoryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class User(UserCreate):
    id: int


class StoryBase(BaseModel):
    title: str = Field(..., description="Story title")
    content: str = Field(..., description="Story body, may contain rich text markup")
    authorName: str = Field(..., description="Display name of the author")
    authorEmail: str = Field(..., description="Contact address, never shown publicly")
    category: str = Field(..., description="Slug of the category the story belongs to")
    tags: Optional[List[str]] = Field(default=None, description="Free-form tags")
    allowComments: bool = Field(True, description="Whether readers may comment")


class StoryCreate(StoryBase):
    """
    A story submission.
    status, featured and the timestamps are managed by storage and are
    ignored if a caller sends them.
    """
    authorEmail: EmailStr = Field(..., description="Contact address, never shown publicly")

    @field_validator("title", "content", "authorName", "category")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("tags")
    @classmethod
    def _tags_not_blank(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        for tag in value:
            _require_text(tag)
        return value


class Story(StoryBase):
    """A stored story. Stored records are trusted and not re-validated."""
    id: int
    tags: List[str] = Field(default_factory=list)
    status: str = StoryStatus.PENDING.value
    featured: bool = False
    createdAt: datetime
    updatedAt: datetime


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$", description="URL-safe identifier")
    description: str
    icon: str = Field(..., description="Icon identifier, display only")
    gradient: str = Field(..., description="Gradient style identifier, display only")


class Category(CategoryCreate):
    id: int


class CategoryWithCount(Category):
    storyCount: int = 0


class StatusUpdate(BaseModel):
    status: StoryStatus


class FeatureUpdate(BaseModel):
    featured: bool


DEFAULT_CATEGORIES: List[CategoryCreate] = [
    CategoryCreate(
        name="Social Justice",
        slug="social-justice",
        description="Stories of resilience and fighting for equality",
        icon="fas fa-fist-raised",
        gradient="from-primary to-sage",
    ),
    CategoryCreate(
        name="Identity & Culture",
        slug="identity-culture",
        description="Celebrating diverse identities and traditions",
        icon="fas fa-heart",
        gradient="from-secondary to-accent",
    ),
    CategoryCreate(
        name="Community Impact",
        slug="community-impact",
        description="Local heroes making a difference",
        icon="fas fa-users",
        gradient="from-sage to-primary",
    ),
    CategoryCreate(
        name="Overcoming Challenges",
        slug="overcoming-challenges",
        description="Stories of triumph and personal growth",
        icon="fas fa-seedling",
        gradient="from-accent to-secondary",
    ),
]
