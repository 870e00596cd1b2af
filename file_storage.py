"""
File-backed storage

Keeps the working set in memory and mirrors each collection to its own JSON
document under a data directory:

    data/users.json       flat array of users
    data/stories.json     flat array of stories
    data/categories.json  flat array of categories
    data/sequences.json   next id per collection

Ids come from sequences.json, never from the records, so removing the
highest record does not make its id available again. Writes to a collection
go through that collection's lock, land in a temp file and are swapped in
with os.replace; memory is only updated once the write succeeded.
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Set, Tuple, Type

from pydantic import BaseModel, ValidationError

from schemas import DEFAULT_CATEGORIES, Category, CategoryCreate, Story, StoryCreate, User, UserCreate
from storage import (
    APPROVED,
    Storage,
    StorageError,
    detached,
    new_story,
    newest_first,
    status_value,
    story_matches,
    utcnow,
)

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type[BaseModel]] = {
    "users": User,
    "stories": Story,
    "categories": Category,
}
SEQUENCES = "sequences"


class ReadResult(NamedTuple):
    """Outcome of reading a document: data (None when the file is absent) or an error."""
    data: Any
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(None)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return ReadResult(json.load(f))
    except (OSError, ValueError) as exc:
        return ReadResult(None, exc)


def write_json_file(path: str, data: Any) -> None:
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class FileStorage(Storage):
    name = "file"

    def __init__(self, data_dir: str, tolerate_read_errors: bool = False, seed: bool = True):
        self.data_dir = data_dir
        self.tolerate_read_errors = tolerate_read_errors
        self.degraded_collections: Set[str] = set()
        try:
            os.makedirs(data_dir, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data directory {data_dir}") from exc

        self._locks = {name: asyncio.Lock() for name in (*COLLECTIONS, SEQUENCES)}
        self._data: Dict[str, List[Any]] = {
            name: self._load_collection(name, model) for name, model in COLLECTIONS.items()
        }
        self._sequences = self._load_sequences()

        if seed and not self._data["categories"]:
            self._seed_categories()

    # Loading

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, f"{name}.json")

    def _read_collection(self, name: str, model: Type[BaseModel]) -> ReadResult:
        result = read_json_file(self._path(name))
        if not result.ok or result.data is None:
            return ReadResult([] if result.ok else None, result.error)
        if not isinstance(result.data, list):
            return ReadResult(None, ValueError(f"{name}.json must hold a JSON array"))
        try:
            return ReadResult([model.model_validate(item) for item in result.data])
        except ValidationError as exc:
            return ReadResult(None, exc)

    def _load_collection(self, name: str, model: Type[BaseModel]) -> List[Any]:
        result = self._read_collection(name, model)
        if result.ok:
            logger.debug("Loaded %d %s from %s", len(result.data), name, self._path(name))
            return result.data
        if not self.tolerate_read_errors:
            raise StorageError(f"Cannot read {self._path(name)}") from result.error
        logger.warning("Unreadable %s, starting with an empty collection: %s", self._path(name), result.error)
        self.degraded_collections.add(name)
        self._set_aside(name)
        return []

    def _set_aside(self, name: str) -> None:
        # Keep the unreadable document so the next save cannot destroy it.
        path = self._path(name)
        if not os.path.exists(path):
            return
        backup = f"{path}.corrupt-{utcnow().strftime('%Y%m%d%H%M%S')}"
        try:
            os.replace(path, backup)
            logger.warning("Moved %s to %s", path, backup)
        except OSError as exc:
            raise StorageError(f"Cannot set aside unreadable {path}") from exc

    def _load_sequences(self) -> Dict[str, int]:
        result = read_json_file(self._path(SEQUENCES))
        stored = result.data if result.ok and isinstance(result.data, dict) else {}
        if not result.ok:
            logger.warning("Unreadable %s, deriving ids from records: %s", self._path(SEQUENCES), result.error)

        sequences = {}
        for name, records in self._data.items():
            floor = max((r.id for r in records), default=0) + 1
            try:
                counter = int(stored.get(name, 1))
            except (TypeError, ValueError):
                counter = 1
            sequences[name] = max(counter, floor)
        return sequences

    def _seed_categories(self) -> None:
        categories = []
        for next_id, data in enumerate(DEFAULT_CATEGORIES, start=self._sequences["categories"]):
            categories.append(Category(id=next_id, **data.model_dump()))
        sequences = {**self._sequences, "categories": categories[-1].id + 1}
        try:
            write_json_file(self._path(SEQUENCES), sequences)
            write_json_file(self._path("categories"), [c.model_dump(mode="json") for c in categories])
        except OSError as exc:
            raise StorageError("Cannot write default categories") from exc
        self._sequences = sequences
        self._data["categories"] = categories
        logger.info("Seeded %d default categories in %s", len(categories), self.data_dir)

    # Writing

    async def _write(self, name: str, payload: Any) -> None:
        path = self._path(name)
        try:
            await asyncio.to_thread(write_json_file, path, payload)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise StorageError(f"Cannot write {path}") from exc

    async def _allocate_id(self, name: str) -> int:
        async with self._locks[SEQUENCES]:
            next_id = self._sequences[name]
            sequences = {**self._sequences, name: next_id + 1}
            await self._write(SEQUENCES, sequences)
            self._sequences = sequences
            return next_id

    async def _mutate(self, name: str, change: Callable[[List[Any]], Tuple[List[Any], Any]]) -> Any:
        async with self._locks[name]:
            records, result = change(list(self._data[name]))
            await self._write(name, [r.model_dump(mode="json") for r in records])
            self._data[name] = records
            return result

    async def _append(self, name: str, record: Any) -> Any:
        return await self._mutate(name, lambda records: (records + [record], record.model_copy(deep=True)))

    async def _update_story(self, story_id: int, **changes) -> Optional[Story]:
        def change(records):
            for index, story in enumerate(records):
                if story.id == story_id:
                    records[index] = story.model_copy(update={**changes, "updatedAt": utcnow()})
                    return records, records[index].model_copy(deep=True)
            return records, None

        if await self.get_story(story_id) is None:
            return None
        return await self._mutate("stories", change)

    # Users

    async def get_user(self, user_id: int) -> Optional[User]:
        return detached(next((u for u in self._data["users"] if u.id == user_id), None))

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return detached(next((u for u in self._data["users"] if u.username == username), None))

    async def create_user(self, data: UserCreate) -> User:
        user = User(id=await self._allocate_id("users"), **data.model_dump())
        return await self._append("users", user)

    # Stories

    async def get_stories(self, status: Optional[str] = None) -> List[Story]:
        stories = self._data["stories"]
        if status:
            wanted = status_value(status)
            stories = [s for s in stories if s.status == wanted]
        return newest_first(stories)

    async def get_story(self, story_id: int) -> Optional[Story]:
        return detached(next((s for s in self._data["stories"] if s.id == story_id), None))

    async def create_story(self, data: StoryCreate) -> Story:
        story = new_story(await self._allocate_id("stories"), data)
        return await self._append("stories", story)

    async def update_story_status(self, story_id: int, status: str) -> Optional[Story]:
        return await self._update_story(story_id, status=status_value(status))

    async def set_story_featured(self, story_id: int, featured: bool) -> Optional[Story]:
        return await self._update_story(story_id, featured=featured)

    async def delete_story(self, story_id: int) -> bool:
        def change(records):
            kept = [s for s in records if s.id != story_id]
            return kept, len(kept) < len(records)

        if await self.get_story(story_id) is None:
            return False
        return await self._mutate("stories", change)

    async def get_featured_stories(self, limit: Optional[int] = None) -> List[Story]:
        stories = newest_first(
            s for s in self._data["stories"] if s.featured and s.status == APPROVED
        )
        return stories[:limit] if limit else stories

    async def search_stories(self, query: str) -> List[Story]:
        return newest_first(
            s for s in self._data["stories"]
            if s.status == APPROVED and story_matches(s, query)
        )

    async def get_stories_by_category(self, category: str) -> List[Story]:
        return newest_first(
            s for s in self._data["stories"]
            if s.status == APPROVED and s.category == category
        )

    # Categories

    async def get_categories(self) -> List[Category]:
        return [c.model_copy(deep=True) for c in self._data["categories"]]

    async def create_category(self, data: CategoryCreate) -> Category:
        category = Category(id=await self._allocate_id("categories"), **data.model_dump())
        return await self._append("categories", category)
