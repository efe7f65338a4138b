"""Unit tests for social/store.py -- SocialStore persistence operations.

Covers:
- create_user / get_user / get_all_users, duplicate ids, token minted with the user
- create_post appends in order and never creates a missing user
- get_user_dashboard concatenates own posts then followees in follow order
- follow_user / unfollow_user keep both sides of the relation in step
- token lookups in both directions
- database failures surface as ExtSvcFail, not NotFound
- concurrent read-modify-write operations never lose each other's writes
"""

import threading

import pytest
from sqlalchemy import text
from sqlalchemy.pool import SingletonThreadPool

import social.store as store_module
from auth.passwords import hash_password, verify_password
from core.errors import AlreadyExists, ExtSvcFail, NotFound
from social.models import Post
from social.store import SocialStore

_HASH = hash_password("Passw0rd")


def _post(content: str, created_at: str = "") -> Post:
    return Post(content=content, created_at=created_at)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_create_then_get(self, store: SocialStore) -> None:
        user, token = store.create_user("alice01", "Alice", _HASH)
        assert user.posts == [] and user.following == [] and user.followers == []

        fetched = store.get_user("alice01")
        assert fetched.user_id == "alice01"
        assert fetched.user_name == "Alice"
        assert verify_password("Passw0rd", fetched.hashed_password)
        assert fetched.created_at

    def test_create_mints_token(self, store: SocialStore) -> None:
        _user, token = store.create_user("alice01", "Alice", _HASH)
        assert store.token_to_user_id(token) == "alice01"
        assert store.get_token("alice01") == token

    def test_duplicate_user_id(self, store: SocialStore) -> None:
        store.create_user("alice01", "Alice", _HASH)
        with pytest.raises(AlreadyExists):
            store.create_user("alice01", "Other", _HASH)
        # The failed attempt must not have minted a second token.
        with store.engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM tokens WHERE user_id = 'alice01'")).scalar()
        assert count == 1

    def test_get_missing_user(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.get_user("nobody")

    def test_get_all_users_sorted(self, store: SocialStore) -> None:
        assert store.get_all_users() == []
        store.create_user("carol01", "Carol", _HASH)
        store.create_user("alice01", "Alice", _HASH)
        assert [u.user_id for u in store.get_all_users()] == ["alice01", "carol01"]


# ---------------------------------------------------------------------------
# Posts and dashboard
# ---------------------------------------------------------------------------


class TestPosts:
    def test_posts_append_in_order(self, store: SocialStore) -> None:
        store.create_user("alice01", "Alice", _HASH)
        store.create_post("alice01", _post("first"))
        user = store.create_post("alice01", _post("second", created_at="2026-01-01T00:00:00.000000+00:00"))

        assert [p.content for p in user.posts] == ["first", "second"]
        assert user.posts[0].author == "alice01"
        assert user.posts[0].created_at
        assert user.posts[1].created_at == "2026-01-01T00:00:00.000000+00:00"
        assert [p.content for p in store.get_user("alice01").posts] == ["first", "second"]

    def test_post_keeps_image_reference(self, store: SocialStore) -> None:
        store.create_user("alice01", "Alice", _HASH)
        user = store.create_post("alice01", Post(content="look", image="images/cat.png"))
        assert user.posts[0].image == "images/cat.png"

    def test_stored_copy_is_stamped_with_owner(self, store: SocialStore) -> None:
        store.create_user("alice01", "Alice", _HASH)
        post = Post(content="hi", author="mallory01")
        user = store.create_post("alice01", post)
        assert user.posts[0].author == "alice01"
        assert user.posts[0].created_at
        # The caller's object is left as it was.
        assert post.author == "mallory01"
        assert post.created_at == ""

    def test_post_for_missing_user(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.create_post("ghost01", _post("boo"))
        with pytest.raises(NotFound):
            store.get_user("ghost01")


class TestDashboard:
    def test_concatenates_own_then_followed(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        store.create_post("alice01", _post("p1"))
        store.create_post("alice01", _post("p2"))
        store.create_post("bob01", _post("p3"))
        store.follow_user(alice, bob)

        dashboard = store.get_user_dashboard("alice01")
        assert [p.content for p in dashboard] == ["p1", "p2", "p3"]
        assert [p.author for p in dashboard] == ["alice01", "alice01", "bob01"]

    def test_followees_in_follow_order(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        carol, _ = store.create_user("carol01", "Carol", _HASH)
        store.create_post("bob01", _post("from bob"))
        store.create_post("carol01", _post("from carol"))
        store.follow_user(alice, carol)
        store.follow_user(alice, bob)

        assert [p.content for p in store.get_user_dashboard("alice01")] == ["from carol", "from bob"]

    def test_empty_dashboard(self, store: SocialStore) -> None:
        store.create_user("alice01", "Alice", _HASH)
        assert store.get_user_dashboard("alice01") == []

    def test_dashboard_for_missing_user(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.get_user_dashboard("ghost01")


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------


class TestFollows:
    def test_follow_sets_both_sides(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)

        alice, bob = store.follow_user(alice, bob)
        assert alice.following == ["bob01"]
        assert bob.followers == ["alice01"]
        assert store.get_user("alice01").following == ["bob01"]
        assert store.get_user("bob01").followers == ["alice01"]
        # Only the follower's following and the followee's followers change.
        assert store.get_user("alice01").followers == []
        assert store.get_user("bob01").following == []

    def test_follow_twice_keeps_set_semantics(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        store.follow_user(alice, bob)
        alice, bob = store.follow_user(alice, bob)
        assert alice.following == ["bob01"]
        assert bob.followers == ["alice01"]

    def test_unfollow_clears_both_sides(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        alice, bob = store.follow_user(alice, bob)

        alice, bob = store.unfollow_user(alice, bob)
        assert "bob01" not in alice.following
        assert "alice01" not in bob.followers
        assert store.get_user("alice01").following == []
        assert store.get_user("bob01").followers == []

    def test_follow_uses_current_rows_not_stale_copies(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        carol, _ = store.create_user("carol01", "Carol", _HASH)
        stale_alice = store.get_user("alice01")
        store.follow_user(alice, bob)

        alice, _ = store.follow_user(stale_alice, carol)
        assert alice.following == ["bob01", "carol01"]

    def test_follow_vanished_user(self, store: SocialStore) -> None:
        alice, _ = store.create_user("alice01", "Alice", _HASH)
        bob, _ = store.create_user("bob01", "Bob", _HASH)
        with store.engine.begin() as conn:
            conn.execute(text("DELETE FROM users WHERE user_id = 'bob01'"))

        with pytest.raises(NotFound):
            store.follow_user(alice, bob)
        assert store.get_user("alice01").following == []


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_unknown_token(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.token_to_user_id("00000000-0000-0000-0000-000000000000")

    def test_get_token_without_any(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.get_token("ghost01")

    def test_extra_token_resolves_but_first_is_returned(self, store: SocialStore) -> None:
        _user, first = store.create_user("alice01", "Alice", _HASH)
        second = store.create_token("alice01")
        assert second != first
        assert store.token_to_user_id(second) == "alice01"
        assert store.get_token("alice01") == first

    def test_create_token_for_missing_user(self, store: SocialStore) -> None:
        with pytest.raises(NotFound):
            store.create_token("ghost01")


# ---------------------------------------------------------------------------
# Infrastructure failures
# ---------------------------------------------------------------------------


class TestDatabaseFailures:
    def test_broken_table_is_ext_svc_fail(self, store: SocialStore) -> None:
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE users"))

        with pytest.raises(ExtSvcFail) as exc_info:
            store.get_user("alice01")
        assert exc_info.value.info == {"operation": "get_user"}
        with pytest.raises(ExtSvcFail):
            store.get_all_users()
        with pytest.raises(ExtSvcFail):
            store.get_user_dashboard("alice01")

    def test_unreachable_database_at_startup(self, tmp_path) -> None:
        with pytest.raises(ExtSvcFail) as exc_info:
            SocialStore(f"sqlite:///{tmp_path / 'missing' / 'social.db'}")
        assert exc_info.value.info == {"operation": "create_schema"}

    def test_ping(self, store: SocialStore) -> None:
        assert store.ping() is True

    def test_explicit_pool_class(self) -> None:
        s = SocialStore("sqlite:///file:pooltest?mode=memory&cache=shared&uri=true", poolclass=SingletonThreadPool)
        try:
            assert isinstance(s.engine.pool, SingletonThreadPool)
            assert s.ping() is True
        finally:
            s.close()


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------


def _start_during_first_read(monkeypatch, helper_name: str, trigger, concurrent) -> threading.Thread:
    """Patch a store read helper so ``concurrent`` runs in another thread
    right after the first read matching ``trigger``, before the caller writes.

    The caller pauses up to 0.5s for the other thread. Return the thread so the
    test can join it.
    """
    real = getattr(store_module, helper_name)
    other = threading.Thread(target=concurrent)
    started: list[bool] = []

    def read_then_let_other_run(conn, *args, **kwargs):
        result = real(conn, *args, **kwargs)
        if not started and trigger(*args, **kwargs):
            started.append(True)
            other.start()
            other.join(timeout=0.5)
        return result

    monkeypatch.setattr(store_module, helper_name, read_then_let_other_run)
    return other


def _collect_errors(errors: list, fn, *args) -> None:
    try:
        fn(*args)
    except Exception as exc:
        errors.append(exc)


class TestConcurrentWrites:
    def test_two_follows_of_one_target(self, file_store: SocialStore, monkeypatch) -> None:
        alice, _ = file_store.create_user("alice01", "Alice", _HASH)
        bob, _ = file_store.create_user("bob01", "Bob", _HASH)
        carol, _ = file_store.create_user("carol01", "Carol", _HASH)
        errors: list = []
        other = _start_during_first_read(
            monkeypatch,
            "_fetch_pair",
            lambda first_id, second_id: first_id == "alice01",
            lambda: _collect_errors(errors, file_store.follow_user, carol, bob),
        )

        file_store.follow_user(alice, bob)
        other.join()

        assert errors == []
        assert sorted(file_store.get_user("bob01").followers) == ["alice01", "carol01"]
        assert file_store.get_user("alice01").following == ["bob01"]
        assert file_store.get_user("carol01").following == ["bob01"]

    def test_two_unfollows_of_one_target(self, file_store: SocialStore, monkeypatch) -> None:
        alice, _ = file_store.create_user("alice01", "Alice", _HASH)
        bob, _ = file_store.create_user("bob01", "Bob", _HASH)
        carol, _ = file_store.create_user("carol01", "Carol", _HASH)
        file_store.follow_user(alice, bob)
        file_store.follow_user(carol, bob)
        errors: list = []
        other = _start_during_first_read(
            monkeypatch,
            "_fetch_pair",
            lambda first_id, second_id: first_id == "alice01",
            lambda: _collect_errors(errors, file_store.unfollow_user, carol, bob),
        )

        file_store.unfollow_user(alice, bob)
        other.join()

        assert errors == []
        assert file_store.get_user("bob01").followers == []
        assert file_store.get_user("alice01").following == []
        assert file_store.get_user("carol01").following == []

    def test_two_posts_by_one_user(self, file_store: SocialStore, monkeypatch) -> None:
        file_store.create_user("alice01", "Alice", _HASH)
        errors: list = []
        other = _start_during_first_read(
            monkeypatch,
            "_fetch_user_row",
            lambda user_id, for_update=False: for_update,
            lambda: _collect_errors(errors, file_store.create_post, "alice01", _post("second")),
        )

        file_store.create_post("alice01", _post("first"))
        other.join()

        assert errors == []
        assert [p.content for p in file_store.get_user("alice01").posts] == ["first", "second"]
