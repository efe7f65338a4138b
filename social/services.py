"""
social/services.py -- Request validation and identity checks over SocialStore.

SocialService is the operation set the HTTP layer calls. Before any mutation
it applies two cross-cutting checks:

  Shape/type validation -- check_bad_request() collects every missing or
      wrong-typed field, and every format violation, into ONE BadRequest whose
      info maps field name -> reason. It never stops at the first problem, so
      a client fixes a form in one round trip.

  Authentication -- check_authentication() resolves the presented bearer
      token to its owner and requires it to equal the user id the operation
      acts on. Identity is always passed in explicitly; nothing here reads
      ambient session state.

Credential checks (login) use a single error kind, Unauthenticated, for an
unknown user id and for a wrong password, and always run scrypt once, so
neither the response nor its timing reveals which user ids exist.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from auth.passwords import _DUMMY_HASH, hash_password, verify_password
from core.config import get_settings
from core.errors import AlreadyExists, BadRequest, NotFound, Unauthenticated
from social.models import Post, User
from social.store import SocialStore

logger = logging.getLogger("jesusgram.services")

# Full-string patterns.
USER_ID_RE = re.compile(r"^[a-z0-9]{4,30}$")
USER_NAME_RE = re.compile(r"^[a-zA-Z0-9]{3,20}$")
PASSWORD_RE = re.compile(r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z]).{8,30}$")

_FORMAT_RULES: dict[str, tuple[re.Pattern, str]] = {
    "user_id": (USER_ID_RE, "Only lowercase letters and digits. Length: [4, 30] characters"),
    "user_name": (USER_NAME_RE, "Only alphanumeric characters. Length: [3, 20] characters"),
    "password": (
        PASSWORD_RE,
        "Must contain at least one number, one uppercase and one lowercase letter. Length: [8, 30] characters",
    ),
}

# (value, expected type, required)
FieldSpec = tuple[Any, type, bool]


def check_bad_request(body: dict[str, FieldSpec], formats: bool = True) -> None:
    """Validate presence, type and format of every field in ``body``.

    ``body`` maps the client-facing field name to (value, expected_type,
    required). A required field that is None or empty is "missing"; a
    present value of another type is "wrong type"; a string field with a
    format rule that does not match gets that rule's message. Pass
    formats=False to check presence and type only.

    Raises one BadRequest listing every offending field, or returns None.
    """
    info: dict[str, str] = {}
    for name, (value, expected, required) in body.items():
        if value is None or value == "":
            if required:
                info[name] = "required property missing"
            continue
        # bool is an int subclass; never accept it where a str or int is expected.
        if not isinstance(value, expected) or (isinstance(value, bool) and expected is not bool):
            info[name] = f"wrong type. expected {expected.__name__}. instead got {type(value).__name__}"
            continue
        rule = _FORMAT_RULES.get(name) if formats else None
        if rule is not None and not rule[0].match(value):
            info[name] = rule[1]
    if info:
        raise BadRequest(info)


def order_timeline(posts: list[Post]) -> list[Post]:
    """Return posts newest-first by created_at.

    sorted() is stable, so posts with equal timestamps keep their relative
    concatenation order (own posts, then followees in follow order).
    """
    return sorted(posts, key=lambda p: p.created_at, reverse=True)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class SocialService:
    """The operation set exposed to the HTTP layer.

    Usage:
        service = SocialService(SocialStore())
        user, token = service.create_user("alice01", "Alice", "S3cretpw")
        service.create_post("alice01", token, "hello")
        service.get_user_dashboard("alice01", token)
    """

    def __init__(self, store: SocialStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Identity checks
    # ------------------------------------------------------------------

    def check_authentication(self, token: Optional[str], user_id: str) -> None:
        """Require ``token`` to belong to ``user_id``.

        Missing token, unknown token and a token owned by someone else are
        all Unauthenticated.
        """
        if not token:
            raise Unauthenticated("Please insert your user token")
        try:
            owner = self.store.token_to_user_id(token)
        except NotFound:
            raise Unauthenticated("Please insert a valid user token") from None
        if owner != user_id:
            raise Unauthenticated("Please insert a valid user token")

    def check_credentials(self, user_id: Any, password: Any) -> User:
        """Return the user if ``password`` is theirs.

        Raises BadRequest when either value is missing or not a string, and
        Unauthenticated for an unknown user id or a wrong password.
        """
        # Presence and type only: a malformed user id at login is reported
        # like any other failed login instead of hinting at valid formats.
        check_bad_request(
            {
                "user_id": (user_id, str, True),
                "password": (password, str, True),
            },
            formats=False,
        )

        try:
            user = self.store.get_user(user_id)
        except NotFound:
            # Equalize timing -- do NOT return early before running scrypt.
            verify_password(password, _DUMMY_HASH)
            logger.info("Failed login for unknown user id")
            raise Unauthenticated({"user_id": user_id}) from None
        if not verify_password(password, user.hashed_password):
            logger.info("Failed login for user %s", user_id)
            raise Unauthenticated({"user_id": user_id})
        return user

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user_id: Any, user_name: Any, password: Any) -> tuple[User, str]:
        """Validate, hash the password, and persist a new user with its token.

        Raises BadRequest (all violations at once) or AlreadyExists.
        """
        check_bad_request(
            {
                "user_id": (user_id, str, True),
                "user_name": (user_name, str, True),
                "password": (password, str, True),
            }
        )
        user, token = self.store.create_user(user_id, user_name, hash_password(password))
        logger.info("Created user %s", user_id)
        return user, token

    def get_user(self, user_id: str) -> User:
        return self.store.get_user(user_id)

    def get_all_users(self) -> list[User]:
        return self.store.get_all_users()

    def login_user(self, user_id: Any, password: Any) -> tuple[User, str]:
        """Check credentials and return the user with their bearer token."""
        user = self.check_credentials(user_id, password)
        return user, self.store.get_token(user.user_id)

    def get_token(self, user_id: str) -> str:
        return self.store.get_token(user_id)

    def ensure_guest(self, user_id: str, user_name: str, password: str) -> User:
        """Create the demo guest account unless it already exists.

        Safe to call on every startup.
        """
        try:
            return self.store.get_user(user_id)
        except NotFound:
            pass
        try:
            user, _token = self.create_user(user_id, user_name, password)
        except AlreadyExists:
            # A concurrent worker created it between the lookup and the insert.
            return self.store.get_user(user_id)
        logger.info("Guest account %s created", user_id)
        return user

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(self, user_id: str, token: Optional[str], content: Any, image: Any = None) -> User:
        """Append a post to the authenticated user's sequence.

        Raises BadRequest for missing/oversized content, Unauthenticated for
        a bad token, NotFound if the user vanished.
        """
        check_bad_request(
            {
                "content": (content, str, True),
                "image": (image, str, False),
            }
        )
        max_length = get_settings().post_max_length
        if len(content) > max_length:
            raise BadRequest({"content": f"Length: at most {max_length} characters"})

        self.check_authentication(token, user_id)

        post = Post(content=content, author=user_id, created_at=_now_iso(), image=image or None)
        return self.store.create_post(user_id, post)

    def get_user_dashboard(self, user_id: str, token: Optional[str]) -> list[Post]:
        """Return the user's dashboard newest-first across every followed account."""
        self.check_authentication(token, user_id)
        return order_timeline(self.store.get_user_dashboard(user_id))

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------

    def follow_user(self, user_id: str, token: Optional[str], target_id: Any) -> User:
        """Make ``user_id`` follow ``target_id``. Returns the updated follower.

        Raises BadRequest on self-follow, AlreadyExists if already following,
        NotFound if the target does not exist.
        """
        check_bad_request({"target_id": (target_id, str, True)})
        self.check_authentication(token, user_id)
        if target_id == user_id:
            raise BadRequest({"target_id": "A user cannot follow themselves"})

        user = self.store.get_user(user_id)
        target = self.store.get_user(target_id)
        if target.user_id in user.following:
            raise AlreadyExists({"following": target_id})

        user, _target = self.store.follow_user(user, target)
        logger.info("%s followed %s", user_id, target_id)
        return user

    def unfollow_user(self, user_id: str, token: Optional[str], target_id: Any) -> User:
        """Make ``user_id`` stop following ``target_id``. Returns the updated follower.

        Raises NotFound if the target does not exist or is not followed.
        """
        check_bad_request({"target_id": (target_id, str, True)})
        self.check_authentication(token, user_id)

        user = self.store.get_user(user_id)
        target = self.store.get_user(target_id)
        if target.user_id not in user.following:
            raise NotFound({"following": target_id})

        user, _target = self.store.unfollow_user(user, target)
        logger.info("%s unfollowed %s", user_id, target_id)
        return user
