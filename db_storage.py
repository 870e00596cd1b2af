"""Relational storage backend on top of the tables in database.py."""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import CategoryRow, StoryRow, UserRow, make_session_factory
from schemas import Category, CategoryCreate, Story, StoryCreate, User, UserCreate
from storage import APPROVED, Storage, StorageError, newest_first, status_value, story_matches, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_user(row: UserRow) -> User:
    return User(id=row.id, username=row.username, password=row.password)


def _to_story(row: StoryRow) -> Story:
    return Story(
        id=row.id,
        title=row.title,
        content=row.content,
        authorName=row.author_name,
        authorEmail=row.author_email,
        category=row.category,
        tags=list(row.tags or []),
        status=row.status,
        featured=bool(row.featured),
        allowComments=bool(row.allow_comments),
        createdAt=_aware(row.created_at),
        updatedAt=_aware(row.updated_at),
    )


def _to_category(row: CategoryRow) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        icon=row.icon,
        gradient=row.gradient,
    )


def _newest_first_clause():
    return (StoryRow.created_at.desc(), StoryRow.id.desc())


class DbStorage(Storage):
    """
    Each operation opens its own session and runs in a worker thread so the
    event loop keeps serving other requests while the database works.
    """

    name = "database"

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error while trying to %s", action)
            raise StorageError(f"Failed to {action}") from exc
        finally:
            session.close()

    def _call(self, action: str, work: Callable[[Session], T]) -> T:
        with self._session(action) as session:
            return work(session)

    async def _run(self, action: str, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._call, action, work)

    async def _fetch_stories(self, action: str, stmt) -> List[Story]:
        return await self._run(action, lambda session: [_to_story(row) for row in session.scalars(stmt)])

    # Users

    async def get_user(self, user_id: int) -> Optional[User]:
        def work(session):
            row = session.get(UserRow, user_id)
            return _to_user(row) if row else None

        return await self._run("fetch user", work)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        def work(session):
            row = session.scalars(select(UserRow).where(UserRow.username == username)).first()
            return _to_user(row) if row else None

        return await self._run("fetch user", work)

    async def create_user(self, data: UserCreate) -> User:
        def work(session):
            row = UserRow(username=data.username, password=data.password)
            session.add(row)
            session.commit()
            return _to_user(row)

        return await self._run("create user", work)

    # Stories

    async def get_stories(self, status: Optional[str] = None) -> List[Story]:
        stmt = select(StoryRow).order_by(*_newest_first_clause())
        if status:
            stmt = stmt.where(StoryRow.status == status_value(status))
        return await self._fetch_stories("fetch stories", stmt)

    async def get_story(self, story_id: int) -> Optional[Story]:
        def work(session):
            row = session.get(StoryRow, story_id)
            return _to_story(row) if row else None

        return await self._run("fetch story", work)

    async def create_story(self, data: StoryCreate) -> Story:
        now = utcnow()
        row = StoryRow(
            title=data.title,
            content=data.content,
            author_name=data.authorName,
            author_email=data.authorEmail,
            category=data.category,
            tags=list(data.tags or []),
            status="pending",
            featured=False,
            allow_comments=data.allowComments,
            created_at=now,
            updated_at=now,
        )

        def work(session):
            session.add(row)
            session.commit()
            return _to_story(row)

        return await self._run("create story", work)

    async def update_story_status(self, story_id: int, status: str) -> Optional[Story]:
        return await self._update_story(story_id, "update story status", status=status_value(status))

    async def set_story_featured(self, story_id: int, featured: bool) -> Optional[Story]:
        return await self._update_story(story_id, "update story feature flag", featured=featured)

    async def _update_story(self, story_id: int, action: str, **changes) -> Optional[Story]:
        def work(session):
            row = session.get(StoryRow, story_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.commit()
            return _to_story(row)

        return await self._run(action, work)

    async def delete_story(self, story_id: int) -> bool:
        def work(session):
            result = session.execute(delete(StoryRow).where(StoryRow.id == story_id))
            session.commit()
            return result.rowcount > 0

        return await self._run("delete story", work)

    async def get_featured_stories(self, limit: Optional[int] = None) -> List[Story]:
        stmt = (
            select(StoryRow)
            .where(StoryRow.featured.is_(True), StoryRow.status == APPROVED)
            .order_by(*_newest_first_clause())
        )
        if limit:
            stmt = stmt.limit(limit)
        return await self._fetch_stories("fetch featured stories", stmt)

    async def search_stories(self, query: str) -> List[Story]:
        # SQL LOWER() is ASCII-only on SQLite and tags are stored as JSON text,
        # so matching happens in Python over the approved set.
        stmt = select(StoryRow).where(StoryRow.status == APPROVED)
        stories = await self._fetch_stories("search stories", stmt)
        return newest_first(s for s in stories if story_matches(s, query))

    async def get_stories_by_category(self, category: str) -> List[Story]:
        stmt = (
            select(StoryRow)
            .where(StoryRow.status == APPROVED, StoryRow.category == category)
            .order_by(*_newest_first_clause())
        )
        return await self._fetch_stories("fetch stories by category", stmt)

    # Categories

    async def get_categories(self) -> List[Category]:
        stmt = select(CategoryRow).order_by(CategoryRow.id)
        return await self._run(
            "fetch categories", lambda session: [_to_category(row) for row in session.scalars(stmt)]
        )

    async def create_category(self, data: CategoryCreate) -> Category:
        def work(session):
            row = CategoryRow(**data.model_dump())
            session.add(row)
            session.commit()
            return _to_category(row)

        return await self._run("create category", work)
