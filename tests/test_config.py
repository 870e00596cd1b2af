import pytest
from pydantic import ValidationError

from config import ConfigError, Settings
from file_storage import FileStorage
from storage import MemStorage, create_storage

ENV_VARS = [
    "STORAGE_BACKEND",
    "DATA_DIR",
    "DATABASE_URL",
    "AUTO_APPROVE_STORIES",
    "FEATURED_STORIES_LIMIT",
    "TOLERATE_READ_ERRORS",
    "LOG_LEVEL",
    "CORS_ORIGINS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env(load_env_file=False)

    assert settings.storage_backend == "memory"
    assert settings.auto_approve_stories is False
    assert settings.featured_stories_limit == 3
    assert settings.featured_limit == 3
    assert settings.cors_origins == ["*"]


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "File")
    monkeypatch.setenv("DATA_DIR", "/srv/stories")
    monkeypatch.setenv("AUTO_APPROVE_STORIES", "yes")
    monkeypatch.setenv("FEATURED_STORIES_LIMIT", "0")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    settings = Settings.from_env(load_env_file=False)

    assert settings.storage_backend == "file"
    assert settings.data_dir == "/srv/stories"
    assert settings.auto_approve_stories is True
    assert settings.featured_limit is None
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


@pytest.mark.parametrize(
    "name, value",
    [
        ("STORAGE_BACKEND", "redis"),
        ("FEATURED_STORIES_LIMIT", "three"),
        ("FEATURED_STORIES_LIMIT", "-1"),
        ("AUTO_APPROVE_STORIES", "maybe"),
        ("LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError):
        Settings.from_env(load_env_file=False)


def test_negative_featured_limit_rejected_when_constructed_directly():
    with pytest.raises(ValidationError):
        Settings(featured_stories_limit=-1)

    assert Settings(featured_stories_limit=0).featured_stories_limit == 0


def test_create_storage_selects_backend(tmp_path):
    assert isinstance(create_storage(Settings()), MemStorage)

    storage = create_storage(Settings(storage_backend="file", data_dir=str(tmp_path / "data")))
    assert isinstance(storage, FileStorage)


def test_create_storage_database(tmp_path):
    storage = create_storage(
        Settings(storage_backend="database", database_url=f"sqlite:///{tmp_path / 'app.db'}")
    )

    assert storage.name == "database"
    storage.engine.dispose()
