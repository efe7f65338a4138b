"""
social/store.py -- SQLAlchemy Core persistence layer for users, posts and tokens.

Pattern: Repository + Data Mapper. SocialStore is the repository (one clean
method per operation); _row_to_user / _row_to_token are the mappers that
translate raw rows into the dataclasses in social/models.py. Service and
route code never touches SQL directly.

Document layout:
  Each user is one row whose posts, following and followers are JSON columns,
  so a user is read and written as a single document. Tokens live in their
  own table: UNIQUE(token), non-unique index on user_id (several tokens per
  user are allowed; get_token() returns the earliest).

Resource model:
  One Engine (connection pool) per store, created at construction and
  disposed by close(). Every operation checks out a connection in a ``with``
  block, so the connection is returned to the pool on success, on a raised
  taxonomy error and on a database failure alike. Operations that write more
  than one row (create_user + its token, both sides of a follow) or that
  read a row before rewriting it (a post append) run inside one write
  transaction via SocialStore._write(). On SQLite that transaction starts
  with BEGIN IMMEDIATE, so concurrent writers are serialized and each one
  reads what the previous one committed.

Failures:
  Absence raises NotFound. A duplicate key raises AlreadyExists. Any other
  SQLAlchemyError is logged and re-raised as ExtSvcFail -- a database outage
  is never reported as "not found".

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = SocialStore("sqlite:///:memory:")
    user, token = store.create_user("alice01", "Alice", hash_password("S3cretpw"))
    store.create_post("alice01", Post(content="hello"))
    store.get_user_dashboard("alice01")
    store.close()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import Pool

from auth.tokens import generate_token
from core.config import get_settings
from core.errors import AlreadyExists, AppError, ExtSvcFail, NotFound
from social.models import Post, Token, User

logger = logging.getLogger("jesusgram.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("user_id", String(30), primary_key=True),  # implicit UNIQUE
    Column("user_name", String(20), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("posts", JSON, nullable=False),  # list of Post docs, append-only
    Column("following", JSON, nullable=False),  # list of user_id
    Column("followers", JSON, nullable=False),  # list of user_id
    Column("created_at", String(32), nullable=False),
)

_tokens = Table(
    "tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(36), nullable=False, unique=True),
    Column("user_id", String(30), nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_tokens_user_id", "user_id"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------

# Connection execution option marking a read-modify-write transaction.
_WRITE_OPTION = "jesusgram_write"


def _sqlite_on_connect(dbapi_conn, connection_record) -> None:
    """Enable WAL mode and hand transaction control to SQLAlchemy.

    pysqlite defers BEGIN until the first write statement, which leaves the
    SELECT of a read-modify-write outside the transaction. With
    isolation_level=None the driver emits no BEGIN of its own and
    _sqlite_on_begin() decides when the transaction starts.
    PRAGMAs are per connection, so this runs for every new pool connection.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _sqlite_on_begin(conn: Connection) -> None:
    """Start the transaction. Writers take the write lock up front.

    BEGIN IMMEDIATE makes a second writer wait (up to the driver busy
    timeout) until the first commits, so it reads the committed rows.
    """
    if conn.get_execution_options().get(_WRITE_OPTION):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@contextmanager
def _db_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into ExtSvcFail.

    Taxonomy errors raised inside the block pass through untouched. The
    exception class is logged, not its message -- driver messages can echo
    bound parameters.
    """
    try:
        yield
    except AppError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Database failure during %s (%s)", operation, type(exc).__name__)
        raise ExtSvcFail({"operation": operation}) from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SocialStore:
    """Repository for User, Post and Token entities.

    Usage:
        store = SocialStore()
        user, token = store.create_user("alice01", "Alice", hashed)
        user = store.get_user("alice01")
        store.close()
    """

    def __init__(self, db_url: str | None = None, poolclass: type[Pool] | None = None) -> None:
        db_url = db_url or get_settings().database_url
        engine_kwargs: dict = {}
        if poolclass is not None:
            engine_kwargs["poolclass"] = poolclass
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_on_connect)
            event.listen(self.engine, "begin", _sqlite_on_begin)
        with _db_errors("create_schema"):
            metadata.create_all(self.engine)

    @contextmanager
    def _write(self) -> Iterator[Connection]:
        """Yield a connection inside a read-modify-write transaction.

        Commits on normal exit, rolls back on any exception. Rows read through
        the connection cannot change before the commit: SQLite holds the write
        lock from BEGIN IMMEDIATE, other backends honour SELECT ... FOR UPDATE.
        """
        with self.engine.connect() as conn:
            conn.execution_options(**{_WRITE_OPTION: True})
            with conn.begin():
                yield conn

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user_id: str, user_name: str, hashed_password: str) -> tuple[User, str]:
        """Insert a new user with empty posts/following/followers and mint its token.

        The user row and the token row are written in one transaction: either
        both exist afterwards or neither does.

        Raises AlreadyExists if user_id is taken (checked up front, and again
        by the primary key if a concurrent request wins the race).
        """
        now = _now_iso()
        token = generate_token()
        with _db_errors("create_user"):
            try:
                with self._write() as conn:
                    if _fetch_user_row(conn, user_id) is not None:
                        raise AlreadyExists({"user_id": user_id})
                    conn.execute(
                        _users.insert().values(
                            user_id=user_id,
                            user_name=user_name,
                            hashed_password=hashed_password,
                            posts=[],
                            following=[],
                            followers=[],
                            created_at=now,
                        )
                    )
                    conn.execute(_tokens.insert().values(token=token, user_id=user_id, created_at=now))
            except IntegrityError as exc:
                raise AlreadyExists({"user_id": user_id}) from exc
        user = User(user_id=user_id, user_name=user_name, hashed_password=hashed_password, created_at=now)
        return user, token

    def get_user(self, user_id: str) -> User:
        """Return the user. Raises NotFound if it does not exist."""
        with _db_errors("get_user"), self.engine.connect() as conn:
            row = _fetch_user_row(conn, user_id)
        if row is None:
            raise NotFound({"user_id": user_id})
        return _row_to_user(row)

    def get_all_users(self) -> list[User]:
        """Return every user ordered by user_id."""
        with _db_errors("get_all_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.user_id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(self, user_id: str, post: Post) -> User:
        """Append ``post`` to the user's post sequence and return the updated user.

        The stored copy is stamped with author=user_id, and with the current
        time if the caller left created_at empty. ``post`` itself is not
        modified. Raises NotFound (and writes nothing) if the user does not exist.
        """
        post = replace(post, author=user_id, created_at=post.created_at or _now_iso())
        with _db_errors("create_post"), self._write() as conn:
            row = _fetch_user_row(conn, user_id, for_update=True)
            if row is None:
                raise NotFound({"user_id": user_id})
            posts = list(row.posts or []) + [post.to_doc()]
            conn.execute(_users.update().where(_users.c.user_id == user_id).values(posts=posts))
            row = _fetch_user_row(conn, user_id)
        return _row_to_user(row)

    def get_user_dashboard(self, user_id: str) -> list[Post]:
        """Return the user's own posts followed by the posts of every followed user.

        Concatenation follows the ``following`` list order. Nothing is
        deduplicated or sorted here; ordering policy belongs to the caller.
        Followed ids that no longer resolve to a user are skipped.

        Raises NotFound if the user does not exist.
        """
        with _db_errors("get_user_dashboard"), self.engine.connect() as conn:
            row = _fetch_user_row(conn, user_id)
            if row is None:
                raise NotFound({"user_id": user_id})
            following = list(row.following or [])
            followed_posts: dict[str, list] = {}
            if following:
                rows = conn.execute(
                    select(_users.c.user_id, _users.c.posts).where(_users.c.user_id.in_(following))
                ).fetchall()
                followed_posts = {r.user_id: r.posts or [] for r in rows}

        dashboard = [Post.from_doc(d) for d in row.posts or []]
        for followed_id in following:
            dashboard.extend(Post.from_doc(d) for d in followed_posts.get(followed_id, []))
        return dashboard

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------

    def follow_user(self, user: User, user_to_follow: User) -> tuple[User, User]:
        """Record that ``user`` follows ``user_to_follow`` on both documents.

        Both rows are re-read inside the transaction so a stale caller copy
        cannot overwrite a concurrent change. Adding an id already present is
        a no-op (set semantics). Returns both users as persisted.

        Raises NotFound if either user no longer exists.
        """
        with _db_errors("follow_user"), self._write() as conn:
            follower, followed = _fetch_pair(conn, user.user_id, user_to_follow.user_id)
            following = list(follower.following or [])
            followers = list(followed.followers or [])
            if followed.user_id not in following:
                following.append(followed.user_id)
            if follower.user_id not in followers:
                followers.append(follower.user_id)
            conn.execute(_users.update().where(_users.c.user_id == follower.user_id).values(following=following))
            conn.execute(_users.update().where(_users.c.user_id == followed.user_id).values(followers=followers))
            follower, followed = _fetch_pair(conn, user.user_id, user_to_follow.user_id)
        return _row_to_user(follower), _row_to_user(followed)

    def unfollow_user(self, user: User, user_to_unfollow: User) -> tuple[User, User]:
        """Remove both sides of the follow relation in one transaction.

        Removing an id that is not present is a no-op. Returns both users as
        persisted. Raises NotFound if either user no longer exists.
        """
        with _db_errors("unfollow_user"), self._write() as conn:
            follower, followed = _fetch_pair(conn, user.user_id, user_to_unfollow.user_id)
            following = [uid for uid in follower.following or [] if uid != followed.user_id]
            followers = [uid for uid in followed.followers or [] if uid != follower.user_id]
            conn.execute(_users.update().where(_users.c.user_id == follower.user_id).values(following=following))
            conn.execute(_users.update().where(_users.c.user_id == followed.user_id).values(followers=followers))
            follower, followed = _fetch_pair(conn, user.user_id, user_to_unfollow.user_id)
        return _row_to_user(follower), _row_to_user(followed)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def create_token(self, user_id: str) -> str:
        """Mint and persist a new token for an existing user.

        Raises NotFound if the user does not exist -- a token must always
        resolve to a real account.
        """
        token = generate_token()
        with _db_errors("create_token"), self._write() as conn:
            if _fetch_user_row(conn, user_id) is None:
                raise NotFound({"user_id": user_id})
            conn.execute(_tokens.insert().values(token=token, user_id=user_id, created_at=_now_iso()))
        return token

    def token_to_user_id(self, token: str) -> str:
        """Return the user_id the token authenticates. Raises NotFound if unknown."""
        with _db_errors("token_to_user_id"), self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token == token)).fetchone()
        if row is None:
            raise NotFound("Given token does not exist.")
        return row.user_id

    def get_token(self, user_id: str) -> str:
        """Return the earliest minted token for the user. Raises NotFound if none."""
        with _db_errors("get_token"), self.engine.connect() as conn:
            row = conn.execute(
                _tokens.select().where(_tokens.c.user_id == user_id).order_by(_tokens.c.id).limit(1)
            ).fetchone()
        if row is None:
            raise NotFound({"token for user": user_id})
        return _row_to_token(row).token

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query.

        Used by the health endpoint, which reports the outcome rather than
        failing, so a database error is logged and turned into False here.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError as exc:
            logger.error("Database ping failed (%s)", type(exc).__name__)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _fetch_user_row(conn: Connection, user_id: str, for_update: bool = False):
    stmt = _users.select().where(_users.c.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).fetchone()


def _fetch_pair(conn: Connection, first_id: str, second_id: str):
    first = _fetch_user_row(conn, first_id, for_update=True)
    if first is None:
        raise NotFound({"user_id": first_id})
    second = _fetch_user_row(conn, second_id, for_update=True)
    if second is None:
        raise NotFound({"user_id": second_id})
    return first, second


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        user_name=row.user_name,
        hashed_password=row.hashed_password,
        posts=[Post.from_doc(d) for d in row.posts or []],
        following=list(row.following or []),
        followers=list(row.followers or []),
        created_at=row.created_at,
    )


def _row_to_token(row) -> Token:
    return Token(token=row.token, user_id=row.user_id, created_at=row.created_at)
