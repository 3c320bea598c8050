"""SQLAlchemy database models for notesmart."""
from typing import Optional

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String, Table,
                        Text, UniqueConstraint, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql.functions import GenericFunction

from notesmart.config import config
from notesmart.models.schema import (DISPLAY_NAME_MAX_LENGTH,
                                     NOTE_TITLE_MAX_LENGTH,
                                     NOTEBOOK_TITLE_MAX_LENGTH,
                                     TAG_NAME_MAX_LENGTH, USER_ID_MAX_LENGTH,
                                     utc_now)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and notes; either side going away drops the row
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class DBUser(Base):
    """Database model for a user registered by the identity provider."""
    __tablename__ = "users"
    id = Column(String(USER_ID_MAX_LENGTH), primary_key=True)
    display_name = Column(String(DISPLAY_NAME_MAX_LENGTH), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    notebooks = relationship(
        "DBNotebook", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True
    )
    tags = relationship(
        "DBTag", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        """Return string representation of user."""
        return f"<User(id='{self.id}', display_name='{self.display_name}')>"


class DBNotebook(Base):
    """Database model for a notebook."""
    __tablename__ = "notebooks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(NOTEBOOK_TITLE_MAX_LENGTH), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    user_id = Column(
        String(USER_ID_MAX_LENGTH),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    user = relationship("DBUser", back_populates="notebooks")
    notes = relationship(
        "DBNote", back_populates="notebook",
        cascade="all, delete-orphan",
        order_by="DBNote.updated_at.desc()",
    )

    def __repr__(self) -> str:
        """Return string representation of notebook."""
        return f"<Notebook(id={self.id}, title='{self.title}', user_id='{self.user_id}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(NOTE_TITLE_MAX_LENGTH), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    notebook_id = Column(
        Integer,
        ForeignKey("notebooks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    notebook = relationship("DBNotebook", back_populates="notes")
    tags = relationship(
        "DBTag", secondary=note_tags, back_populates="notes", order_by="DBTag.name"
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag, unique by name within its owner's scope."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(TAG_NAME_MAX_LENGTH), nullable=False)
    user_id = Column(
        String(USER_ID_MAX_LENGTH),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    user = relationship("DBUser", back_populates="tags")
    notes = relationship(
        "DBNote", secondary=note_tags, back_populates="tags"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="unique_tag_name_per_user"),
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}', user_id='{self.user_id}')>"


class casefold(GenericFunction):
    """Lowercase a string the same way on every backend.

    SQLite's built-in lower() and LIKE only fold ASCII letters, so on SQLite
    this compiles to a per-connection function backed by ``str.lower``.
    """

    type = String()
    inherit_cache = True


SQLITE_LOWER_FUNCTION = "py_lower"


@compiles(casefold)
def _compile_casefold(element, compiler, **kw):
    return f"lower({compiler.process(element.clauses, **kw)})"


@compiles(casefold, "sqlite")
def _compile_casefold_sqlite(element, compiler, **kw):
    return f"{SQLITE_LOWER_FUNCTION}({compiler.process(element.clauses, **kw)})"


def _unicode_lower(value):
    return value.lower() if value is not None else None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_sqlite_memory(url: str) -> bool:
    return _is_sqlite(url) and (":memory:" in url or url.rstrip("/") == "sqlite:")


def init_db(db_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Initialize the database with hardened configuration.

    For SQLite this applies:
    - WAL (Write-Ahead Logging) mode so readers never block the writer
    - NORMAL synchronous mode (good balance of safety vs speed)
    - foreign_keys=ON, which the cascade-delete rules depend on
    - a Unicode-aware lower() for ``casefold`` comparisons
    - a busy timeout so concurrent writers wait instead of failing
    - QueuePool with pre-ping for file databases, StaticPool for :memory:

    Args:
        db_url: SQLAlchemy URL. Defaults to ``config.get_db_url()``.
        echo: Log emitted SQL. Defaults to ``config.echo_sql``.

    Returns:
        The engine, with every table created.
    """
    url = db_url or config.get_db_url()
    echo = config.echo_sql if echo is None else echo

    if _is_sqlite_memory(url):
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    elif _is_sqlite(url):
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={
                "check_same_thread": False,
                "timeout": config.sqlite_busy_timeout,
            },
        )
    else:
        engine = create_engine(url, echo=echo, pool_pre_ping=True)

    if _is_sqlite(url):
        in_memory = _is_sqlite_memory(url)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            dbapi_connection.create_function(
                SQLITE_LOWER_FUNCTION, 1, _unicode_lower, deterministic=True
            )
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine)
