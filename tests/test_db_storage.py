"""Database backend tests beyond the shared contract."""

import threading

import pytest
from sqlalchemy import event, select, text

from conftest import make_db_storage
from database import CategoryRow, init_db, make_session_factory
from db_storage import DbStorage
from schemas import UserCreate
from storage import StorageError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def db_storage(tmp_path):
    storage = make_db_storage(tmp_path)
    yield storage
    storage.engine.dispose()


async def test_init_db_seeds_once(db_storage):
    init_db(db_storage.engine)

    with make_session_factory(db_storage.engine)() as session:
        slugs = session.scalars(select(CategoryRow.slug)).all()

    assert len(slugs) == 4


async def test_records_survive_new_storage_instance(db_storage, story_data):
    story = await db_storage.create_story(story_data(tags=["été", "Famille"]))
    await db_storage.update_story_status(story.id, "approved")

    other = DbStorage(db_storage.engine)
    fetched = await other.get_story(story.id)

    assert fetched.tags == ["été", "Famille"]
    assert fetched.status == "approved"
    assert fetched.createdAt == story.createdAt


async def test_search_folds_non_ascii_case(db_storage, story_data):
    story = await db_storage.create_story(story_data(title="ÉCOLE du soir", tags=["Été"]))
    await db_storage.update_story_status(story.id, "approved")

    assert [s.id for s in await db_storage.search_stories("école")] == [story.id]
    assert [s.id for s in await db_storage.search_stories("ÉTÉ")] == [story.id]


async def test_duplicate_username_raises_storage_error(db_storage):
    await db_storage.create_user(UserCreate(username="editor", password="one"))

    with pytest.raises(StorageError):
        await db_storage.create_user(UserCreate(username="editor", password="two"))

    assert (await db_storage.get_user_by_username("editor")).password == "one"


async def test_read_failure_raises_instead_of_returning_empty(db_storage, story_data):
    await db_storage.create_story(story_data())
    with db_storage.engine.begin() as conn:
        conn.execute(text("DROP TABLE stories"))

    with pytest.raises(StorageError):
        await db_storage.get_stories()
    with pytest.raises(StorageError):
        await db_storage.search_stories("voice")


async def test_deleted_highest_id_not_reused_by_new_instance(db_storage, story_data):
    await db_storage.create_story(story_data())
    highest = await db_storage.create_story(story_data())
    await db_storage.delete_story(highest.id)

    replacement = await DbStorage(db_storage.engine).create_story(story_data())

    assert replacement.id == highest.id + 1


async def test_queries_run_off_the_event_loop_thread(db_storage, story_data):
    loop_thread = threading.get_ident()
    statement_threads = set()

    def record_thread(conn, cursor, statement, parameters, context, executemany):
        statement_threads.add(threading.get_ident())

    event.listen(db_storage.engine, "before_cursor_execute", record_thread)
    try:
        await db_storage.create_story(story_data())
        await db_storage.get_stories()
        await db_storage.search_stories("voice")
    finally:
        event.remove(db_storage.engine, "before_cursor_execute", record_thread)

    assert statement_threads
    assert loop_thread not in statement_threads


async def test_stored_rows_are_not_revalidated(db_storage, story_data):
    story = await db_storage.create_story(story_data())
    await db_storage.update_story_status(story.id, "approved")
    with db_storage.engine.begin() as conn:
        conn.execute(text("UPDATE stories SET author_email = 'legacy-no-at', title = ' '"))

    stories = await db_storage.get_stories()

    assert [s.authorEmail for s in stories] == ["legacy-no-at"]
    assert (await db_storage.get_story(story.id)).title == " "
    assert [s.id for s in await db_storage.search_stories("activism")] == [story.id]
