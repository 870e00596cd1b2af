"""
Database tables and setup

SQLAlchemy table definitions for the relational backend. SQLite works out
of the box for development; point DATABASE_URL at PostgreSQL (or any other
SQLAlchemy URL) in production.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from schemas import DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRow(Base):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    username = Column(Text, nullable=False, unique=True)
    password = Column(Text, nullable=False)


class StoryRow(Base):
    __tablename__ = "stories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    author_name = Column(Text, nullable=False)
    author_email = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending", index=True)
    featured = Column(Boolean, nullable=False, default=False)
    allow_comments = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class CategoryRow(Base):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    slug = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=False)
    icon = Column(Text, nullable=False)
    gradient = Column(Text, nullable=False)


def create_db_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine, seed: bool = True) -> None:
    """Create missing tables and seed the default categories into an empty table."""
    logger.info("Initializing database...")
    try:
        Base.metadata.create_all(bind=engine)
        if not seed:
            return
        with make_session_factory(engine)() as session:
            existing = session.scalars(select(CategoryRow.id)).all()
            if existing:
                logger.info("Found %d existing categories, skipping seed", len(existing))
                return
            session.add_all(CategoryRow(**c.model_dump()) for c in DEFAULT_CATEGORIES)
            session.commit()
            logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
    except SQLAlchemyError:
        logger.exception("Database initialization failed, check DATABASE_URL")
        raise
