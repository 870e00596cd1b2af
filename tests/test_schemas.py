from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from schemas import CategoryCreate, StatusUpdate, Story, StoryCreate, StoryStatus

VALID = {
    "title": "A title",
    "content": "Some content",
    "authorName": "Ana",
    "authorEmail": "ana@example.com",
    "category": "community-impact",
}
NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_defaults():
    story = StoryCreate(**VALID)

    assert story.tags is None
    assert story.allowComments is True


@pytest.mark.parametrize("field", ["title", "content", "authorName", "category"])
def test_blank_required_text_rejected(field):
    with pytest.raises(ValidationError) as exc_info:
        StoryCreate(**{**VALID, field: "   "})

    assert exc_info.value.errors()[0]["loc"] == (field,)


@pytest.mark.parametrize("field", list(VALID))
def test_missing_required_field_rejected(field):
    data = {k: v for k, v in VALID.items() if k != field}

    with pytest.raises(ValidationError):
        StoryCreate(**data)


def test_invalid_email_rejected():
    with pytest.raises(ValidationError):
        StoryCreate(**{**VALID, "authorEmail": "not-an-email"})


def test_stored_story_accepts_legacy_email():
    story = Story(**{**VALID, "authorEmail": "legacy-no-at"}, id=1, createdAt=NOW, updatedAt=NOW)

    assert story.authorEmail == "legacy-no-at"
    assert story.tags == []


def test_blank_tag_rejected():
    with pytest.raises(ValidationError):
        StoryCreate(**{**VALID, "tags": ["fine", ""]})


def test_managed_fields_are_ignored():
    story = StoryCreate(**VALID, status="approved", featured=True, id=7)

    assert not hasattr(story, "status")
    assert not hasattr(story, "featured")
    assert "id" not in story.model_dump()


def test_status_update_only_accepts_known_states():
    assert StatusUpdate(status="rejected").status is StoryStatus.REJECTED
    with pytest.raises(ValidationError):
        StatusUpdate(status="archived")


@pytest.mark.parametrize("slug", ["Social Justice", "trailing-", "-leading", "under_score"])
def test_category_slug_must_be_url_safe(slug):
    with pytest.raises(ValidationError):
        CategoryCreate(name="X", slug=slug, description="", icon="i", gradient="g")
