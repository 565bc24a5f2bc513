"""SQLAlchemy database models for the Noted engine."""
import json
from pathlib import Path
from typing import Any

from sqlalchemy import Column, DateTime, Integer, Text, create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool
from sqlalchemy.types import JSON

from noted.models.schema import utc_now

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    # AUTOINCREMENT: ids are never reused, even after the newest note is deleted
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}')>"


def _json_serializer(value: Any) -> str:
    # Keep non-ASCII tags readable to the FTS5 tokenizer
    return json.dumps(value, ensure_ascii=False)


def create_db_engine(db_path: Path):
    """Create an engine for the store at ``db_path`` with hardened settings.

    Applies SQLite best practices for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - QueuePool for connection reuse with size limits
    - Pool pre-ping to detect stale connections
    - Busy timeout so concurrent connections wait instead of failing
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        poolclass=QueuePool,
        pool_size=5,           # Base pool size (concurrent reads)
        max_overflow=10,       # Allow up to 15 total connections under load
        pool_timeout=30,       # Wait up to 30s for a connection
        pool_pre_ping=True,    # Validate connections before use
        json_serializer=_json_serializer,
        connect_args={"check_same_thread": False},
    )

    # Apply WAL mode and other PRAGMA settings on every connection
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def init_db(db_path: Path):
    """Create (or open) the store schema and return its engine."""
    engine = create_db_engine(db_path)
    Base.metadata.create_all(engine)
    init_fts5(engine)
    return engine


def init_fts5(engine) -> None:
    """Initialize the FTS5 full-text search virtual table.

    The FTS table is an external-content index over ``notes`` keyed by the
    note id. Triggers keep it in sync inside the same transaction as the
    write that touched ``notes``.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                title,
                content,
                tags,
                content='notes',
                content_rowid='id',
                tokenize='unicode61 remove_diacritics 0'
            )
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ai AFTER INSERT ON notes BEGIN
                INSERT INTO notes_fts(rowid, title, content, tags)
                VALUES (NEW.id, NEW.title, NEW.content, NEW.tags);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ad AFTER DELETE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, content, tags)
                VALUES ('delete', OLD.id, OLD.title, OLD.content, OLD.tags);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_au AFTER UPDATE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, content, tags)
                VALUES ('delete', OLD.id, OLD.title, OLD.content, OLD.tags);
                INSERT INTO notes_fts(rowid, title, content, tags)
                VALUES (NEW.id, NEW.title, NEW.content, NEW.tags);
            END
        """))

        conn.commit()


def rebuild_fts_index(engine) -> int:
    """Rebuild the FTS5 index from the notes table.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES('rebuild')"))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()
    return count


def get_session_factory(engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
