"""
Pytest configuration.

The `storage` fixture is parametrized over every backend so the contract
tests run once per backend:
- memory:   MemStorage
- file:     FileStorage in a temporary directory
- database: DbStorage on a SQLite file in a temporary directory
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from database import create_db_engine, init_db
from db_storage import DbStorage
from file_storage import FileStorage
from schemas import CategoryCreate, StoryCreate
from storage import MemStorage


def make_db_storage(tmp_path: Path) -> DbStorage:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'stories.db'}")
    init_db(engine)
    return DbStorage(engine)


@pytest.fixture(params=["memory", "file", "database"])
def storage(request, tmp_path):
    if request.param == "memory":
        yield MemStorage()
    elif request.param == "file":
        yield FileStorage(str(tmp_path / "data"))
    else:
        db_storage = make_db_storage(tmp_path)
        yield db_storage
        db_storage.engine.dispose()


@pytest.fixture
def story_data():
    """Build a valid submission; keyword arguments override fields."""
    def _make(**overrides) -> StoryCreate:
        fields = {
            "title": "Finding my voice",
            "content": "The day I spoke at the town hall changed everything.",
            "authorName": "Sam Rivera",
            "authorEmail": "sam@example.com",
            "category": "social-justice",
            "tags": ["activism", "Community"],
        }
        fields.update(overrides)
        return StoryCreate(**fields)

    return _make


@pytest.fixture
def category_data():
    return CategoryCreate(
        name="Family Histories",
        slug="family-histories",
        description="Stories passed down through generations",
        icon="fas fa-tree",
        gradient="from-sage to-accent",
    )
