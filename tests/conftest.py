"""Root conftest — shared adapters and the blog schema used by ORM tests.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - Every test that uses `blog` gets freshly defined record types, so scopes,
      default scopes and associations registered in one test never leak
    - recording_adapter never touches a database; it records SQL and params

Design Decisions:
    - SQLite in-memory with StaticPool: one shared connection, so the schema
      survives across the adapter's short per-statement transactions
    - recording_adapter uses $N placeholders and double-quote escaping so
      pure tests can assert on exact SQL text
"""

import os
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from rowcraft.core.adapter_protocols import ExecuteResult, QueryResult
from rowcraft.infrastructure.database import SQLAlchemyAdapter
from rowcraft.orm.model import Model

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class RecordingAdapter:
    """Adapter fake: remembers every statement, answers with canned rows."""

    def __init__(self, rows=None, row_count=0, dialect_name="recording"):
        self.rows = rows or []
        self.row_count = row_count
        self.dialect_name = dialect_name
        self.calls = []

    def escape_identifier(self, name):
        return f'"{name}"'

    def placeholder(self, index):
        return f"${index}"

    async def query(self, sql, params=None):
        self.calls.append((sql, list(params or [])))
        return QueryResult(rows=[dict(r) for r in self.rows], row_count=len(self.rows))

    async def execute(self, sql, params=None):
        self.calls.append((sql, list(params or [])))
        return ExecuteResult(row_count=self.row_count)

    async def begin_transaction(self):
        raise NotImplementedError


@pytest.fixture
def recording_adapter():
    return RecordingAdapter()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
async def adapter(test_engine):
    return SQLAlchemyAdapter(engine=test_engine)


BLOG_SCHEMA = (
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        bio TEXT
    )""",
    """CREATE TABLE posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        title TEXT NOT NULL,
        category TEXT,
        published INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE
    )""",
    """CREATE TABLE post_tags (
        post_id INTEGER NOT NULL,
        tag_id INTEGER NOT NULL,
        UNIQUE (post_id, tag_id)
    )""",
)


def define_blog(adapter):
    """Fresh User / Profile / Post / Tag types bound to `adapter`."""

    class User(Model):
        attributes = ("id", "name", "email", "active", "created_at", "updated_at")
        timestamps = True

    class Profile(Model):
        attributes = ("id", "user_id", "bio")

    class Post(Model):
        attributes = ("id", "user_id", "title", "category", "published")

    class Tag(Model):
        attributes = ("id", "name")

    User.has_one("profile", Profile)
    User.has_many("posts", lambda: Post)
    Profile.belongs_to("user", User)
    Post.belongs_to("user", User)
    Post.has_many_through("tags", Tag, through="post_tags")
    Tag.has_many_through("posts", lambda: Post, through="post_tags")

    for model in (User, Profile, Post, Tag):
        model.set_adapter(adapter)
    return SimpleNamespace(User=User, Profile=Profile, Post=Post, Tag=Tag)


@pytest.fixture
async def blog(adapter):
    for statement in BLOG_SCHEMA:
        await adapter.execute(statement)
    return define_blog(adapter)
