"""
Storage contract and in-memory backend

Storage is the one interface the API talks to. Three backends implement it:
- MemStorage  (this module)      process memory, gone on restart
- FileStorage (file_storage.py)  JSON documents in a directory
- DbStorage   (db_storage.py)    relational database through SQLAlchemy

Exactly one backend is active per process; create_storage() picks it from
configuration. Lookups return None for a missing record, never raise.
Failures of the underlying medium raise StorageError.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from config import Settings
from schemas import (
    DEFAULT_CATEGORIES,
    Category,
    CategoryCreate,
    Story,
    StoryCreate,
    StoryStatus,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

APPROVED = StoryStatus.APPROVED.value


class StorageError(Exception):
    """The underlying storage medium could not be read or written."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_value(status: Union[str, StoryStatus]) -> str:
    return status.value if isinstance(status, StoryStatus) else status


def newest_first(stories: Iterable[Story]) -> List[Story]:
    """Sort by createdAt descending; id breaks ties so order is stable."""
    ordered = sorted(stories, key=lambda s: (s.createdAt, s.id), reverse=True)
    return [s.model_copy(deep=True) for s in ordered]


def detached(record):
    """Copy of a stored record, so callers cannot change storage state by mutating it."""
    return record.model_copy(deep=True) if record is not None else None


def story_matches(story: Story, query: str) -> bool:
    """Case-insensitive substring test against title, content or any tag."""
    needle = query.lower()
    if needle in story.title.lower() or needle in story.content.lower():
        return True
    return any(needle in tag.lower() for tag in story.tags or [])


def new_story(story_id: int, data: StoryCreate) -> Story:
    now = utcnow()
    return Story(
        id=story_id,
        title=data.title,
        content=data.content,
        authorName=data.authorName,
        authorEmail=data.authorEmail,
        category=data.category,
        tags=list(data.tags or []),
        allowComments=data.allowComments,
        status=StoryStatus.PENDING.value,
        featured=False,
        createdAt=now,
        updatedAt=now,
    )


class Storage(ABC):
    """Persistence contract shared by every backend."""

    name = "abstract"

    # Users

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    async def create_user(self, data: UserCreate) -> User:
        ...

    # Stories

    @abstractmethod
    async def get_stories(self, status: Optional[str] = None) -> List[Story]:
        """All stories, or only those with exactly `status`, newest first."""

    @abstractmethod
    async def get_story(self, story_id: int) -> Optional[Story]:
        """Lookup by id regardless of status."""

    @abstractmethod
    async def create_story(self, data: StoryCreate) -> Story:
        """Store a submission as pending and unfeatured."""

    @abstractmethod
    async def update_story_status(self, story_id: int, status: str) -> Optional[Story]:
        """Set status and refresh updatedAt. The value is not validated here."""

    @abstractmethod
    async def set_story_featured(self, story_id: int, featured: bool) -> Optional[Story]:
        ...

    @abstractmethod
    async def delete_story(self, story_id: int) -> bool:
        ...

    @abstractmethod
    async def get_featured_stories(self, limit: Optional[int] = None) -> List[Story]:
        """Featured and approved stories, newest first."""

    @abstractmethod
    async def search_stories(self, query: str) -> List[Story]:
        """Approved stories whose title, content or a tag contains `query`."""

    @abstractmethod
    async def get_stories_by_category(self, category: str) -> List[Story]:
        """Approved stories in the category with this slug."""

    # Categories

    @abstractmethod
    async def get_categories(self) -> List[Category]:
        ...

    @abstractmethod
    async def create_category(self, data: CategoryCreate) -> Category:
        ...


class MemStorage(Storage):
    """Keeps everything in dicts. Each instance owns its own data and counters."""

    name = "memory"

    def __init__(self, seed: bool = True):
        self._users: Dict[int, User] = {}
        self._stories: Dict[int, Story] = {}
        self._categories: Dict[int, Category] = {}
        self._next_user_id = 1
        self._next_story_id = 1
        self._next_category_id = 1
        if seed:
            for category in DEFAULT_CATEGORIES:
                self._add_category(category)
            logger.info("Seeded %d default categories in memory", len(DEFAULT_CATEGORIES))

    async def get_user(self, user_id: int) -> Optional[User]:
        return detached(self._users.get(user_id))

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return detached(next((u for u in self._users.values() if u.username == username), None))

    async def create_user(self, data: UserCreate) -> User:
        user = User(id=self._next_user_id, **data.model_dump())
        self._next_user_id += 1
        self._users[user.id] = user
        return user.model_copy(deep=True)

    async def get_stories(self, status: Optional[str] = None) -> List[Story]:
        stories = self._stories.values()
        if status:
            wanted = status_value(status)
            stories = [s for s in stories if s.status == wanted]
        return newest_first(stories)

    async def get_story(self, story_id: int) -> Optional[Story]:
        return detached(self._stories.get(story_id))

    async def create_story(self, data: StoryCreate) -> Story:
        story = new_story(self._next_story_id, data)
        self._next_story_id += 1
        self._stories[story.id] = story
        return story.model_copy(deep=True)

    async def update_story_status(self, story_id: int, status: str) -> Optional[Story]:
        return self._update(story_id, status=status_value(status))

    async def set_story_featured(self, story_id: int, featured: bool) -> Optional[Story]:
        return self._update(story_id, featured=featured)

    async def delete_story(self, story_id: int) -> bool:
        return self._stories.pop(story_id, None) is not None

    async def get_featured_stories(self, limit: Optional[int] = None) -> List[Story]:
        stories = newest_first(
            s for s in self._stories.values() if s.featured and s.status == APPROVED
        )
        return stories[:limit] if limit else stories

    async def search_stories(self, query: str) -> List[Story]:
        return newest_first(
            s for s in self._stories.values()
            if s.status == APPROVED and story_matches(s, query)
        )

    async def get_stories_by_category(self, category: str) -> List[Story]:
        return newest_first(
            s for s in self._stories.values()
            if s.status == APPROVED and s.category == category
        )

    async def get_categories(self) -> List[Category]:
        return [c.model_copy(deep=True) for c in self._categories.values()]

    async def create_category(self, data: CategoryCreate) -> Category:
        return self._add_category(data).model_copy(deep=True)

    def _add_category(self, data: CategoryCreate) -> Category:
        category = Category(id=self._next_category_id, **data.model_dump())
        self._next_category_id += 1
        self._categories[category.id] = category
        return category

    def _update(self, story_id: int, **changes) -> Optional[Story]:
        story = self._stories.get(story_id)
        if story is None:
            return None
        updated = story.model_copy(update={**changes, "updatedAt": utcnow()})
        self._stories[story_id] = updated
        return updated.model_copy(deep=True)


def create_storage(settings: Settings) -> Storage:
    """Build the backend named by settings.storage_backend."""
    backend = settings.storage_backend
    if backend == "memory":
        storage: Storage = MemStorage()
    elif backend == "file":
        from file_storage import FileStorage

        storage = FileStorage(settings.data_dir, tolerate_read_errors=settings.tolerate_read_errors)
    elif backend == "database":
        from database import create_db_engine, init_db
        from db_storage import DbStorage

        engine = create_db_engine(settings.database_url)
        init_db(engine)
        storage = DbStorage(engine)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")
    logger.info("Using %s storage backend", storage.name)
    return storage
