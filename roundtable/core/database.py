"""
Database configuration and connection management.

This module provides:
- Table definitions for every Roundtable collection
- A Database object owning the engine and session factory
- A FastAPI dependency that hands the app's Database to handlers

There are no module-level engines: the process entry point (the FastAPI
lifespan or a worker's main) constructs a Database and passes it down.
Rows are treated like documents: no foreign keys, string UUID identifiers,
JSON columns for nested values.
"""
from typing import Optional
from contextlib import contextmanager
from uuid import uuid4

from fastapi import Request
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, UniqueConstraint, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session

from roundtable.core.config import Settings, settings as default_settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration (server databases only)
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour


def new_id() -> str:
    return str(uuid4())


def _build_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url:
            # One shared connection, otherwise every checkout sees an empty database
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30}, echo=echo)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=echo,
    )


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False):
        if not url:
            raise ValueError(
                "DATABASE_URL is not configured. "
                "Set DATABASE_URL in environment or .env file."
            )
        self.url = url
        self.engine = _build_engine(url, echo=echo)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "Database":
        """Build from settings; TEST_DATABASE_URL wins when set."""
        cfg = settings_obj or default_settings
        return cls(cfg.TEST_DATABASE_URL or cfg.DATABASE_URL)

    @contextmanager
    def session(self):
        """
        Transactional scope.

        Usage:
            with db.session() as session:
                session.execute(...)

        Commits when the block exits cleanly, rolls back and re-raises otherwise.
        """
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables defined in metadata (idempotent)."""
        metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """
        Drop all tables defined in metadata.

        WARNING: This is destructive! Only use in tests or development.
        """
        metadata.drop_all(bind=self.engine)

    def check_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def dispose(self) -> None:
        self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency: the Database constructed at startup."""
    return request.app.state.database


users = Table(
    'users',
    metadata,
    Column('id', String(128), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('display_name', Text, nullable=False, server_default=''),
    Column('is_active', Boolean, nullable=False, server_default=text('true')),
    Column('is_admin', Boolean, nullable=False, server_default=text('false')),
    Column('preferences', JSON, nullable=False, default=dict),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_users_is_active', 'is_active'),
)

newsletters = Table(
    'newsletters',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('description', Text, nullable=False, server_default=''),
    Column('prompt', Text, nullable=False, server_default=''),
    Column('settings', JSON, nullable=False, default=dict),
    Column('is_active', Boolean, nullable=False, server_default=text('true')),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_newsletters_is_active', 'is_active'),
)

# One row per (newsletter, user); leaving flips is_active instead of deleting,
# so the unique constraint also caps active memberships at one per pair.
newsletter_memberships = Table(
    'newsletter_memberships',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('newsletter_id', String(36), nullable=False),
    Column('user_id', String(128), nullable=False),
    Column('role', String(20), nullable=False),
    Column('joined_at', DateTime(timezone=True), nullable=False),
    Column('is_active', Boolean, nullable=False, server_default=text('true')),
    Column('answered_questions', JSON, nullable=False, default=list),
    UniqueConstraint('newsletter_id', 'user_id', name='uq_membership_newsletter_user'),
    Index('idx_memberships_user', 'user_id', 'is_active'),
)

questions = Table(
    'questions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('newsletter_id', String(36), nullable=False),
    Column('text', Text, nullable=False),
    Column('source', String(20), nullable=False, server_default='user'),
    Column('created_by', String(128), nullable=False),
    Column('usage_count', Integer, nullable=False, server_default=text('0')),
    Column('is_active', Boolean, nullable=False, server_default=text('true')),
    Column('category', String(100), nullable=True),
    Column('tags', JSON, nullable=False, default=list),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_questions_newsletter_active', 'newsletter_id', 'is_active'),
)

sessions = Table(
    'sessions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('newsletter_id', String(36), nullable=False),
    Column('week_identifier', String(20), nullable=False),
    Column('week_start', DateTime(timezone=True), nullable=False),
    Column('week_end', DateTime(timezone=True), nullable=False),
    Column('status', String(20), nullable=False, server_default='active'),
    Column('newsletter_sent', Boolean, nullable=False, server_default=text('false')),
    Column('participant_count', Integer, nullable=False, server_default=text('0')),
    Column('generated_newsletter', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_sessions_newsletter_status', 'newsletter_id', 'status'),
)

question_assignments = Table(
    'question_assignments',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('session_id', String(36), nullable=False),
    Column('newsletter_id', String(36), nullable=False),
    Column('user_id', String(128), nullable=False),
    Column('question_id', String(36), nullable=False),
    Column('assigned_at', DateTime(timezone=True), nullable=False),
    Column('answered', Boolean, nullable=False, server_default=text('false')),
    Index('idx_assignments_session_user', 'session_id', 'user_id'),
)

user_responses = Table(
    'user_responses',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('newsletter_id', String(36), nullable=False),
    Column('session_id', String(36), nullable=False),
    Column('user_id', String(128), nullable=False),
    Column('question_id', String(36), nullable=False),
    Column('response', Text, nullable=False),
    Column('submitted_question', Text, nullable=True),
    Column('word_count', Integer, nullable=False),
    Column('is_public', Boolean, nullable=False, server_default=text('false')),
    Column('submitted_at', DateTime(timezone=True), nullable=False),
    Index('idx_responses_session_user', 'session_id', 'user_id'),
    Index('idx_responses_question', 'question_id'),
)

# Week-keyed summary written by the weekly assignment batch.
weekly_assignments = Table(
    'weekly_assignments',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('newsletter_id', String(36), nullable=False),
    Column('week_id', String(10), nullable=False),
    Column('assignments', JSON, nullable=False, default=dict),
    Column('created_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('newsletter_id', 'week_id', name='uq_weekly_assignment_week'),
)
