"""
social/models.py -- Domain dataclasses for users, posts and tokens.

These are pure data containers with zero logic beyond (de)serialising a Post
to the JSON shape it is persisted in. All behaviour lives in social/store.py
(persistence) and social/services.py (validation and identity checks).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class Post:
    """One entry in a user's append-only post sequence.

    Posts have no id of their own: they live inside the owner's ``posts``
    list. ``author`` and ``created_at`` are stamped on creation so a merged
    dashboard can say whose post it is and order it in time.
    """

    content: str
    author: str = ""
    created_at: str = ""  # ISO 8601, UTC
    image: Optional[str] = None  # reference to an uploaded image, if any

    def to_doc(self) -> dict:
        return asdict(self)

    @classmethod
    def from_doc(cls, doc: dict) -> "Post":
        return cls(
            content=doc["content"],
            author=doc.get("author", ""),
            created_at=doc.get("created_at", ""),
            image=doc.get("image"),
        )


@dataclass
class User:
    """A registered account.

    following / followers are sets semantically; they are kept as lists so
    iteration order (follow order) is stable and the dashboard is deterministic.

    hashed_password is ``salt:derivedKeyHex`` (see auth/passwords.py) and must
    never leave the process through the HTTP layer.
    """

    user_id: str
    user_name: str
    hashed_password: str
    posts: list[Post] = field(default_factory=list)
    following: list[str] = field(default_factory=list)
    followers: list[str] = field(default_factory=list)
    created_at: str = ""


@dataclass
class Token:
    """An opaque bearer credential bound to one user."""

    token: str
    user_id: str
    created_at: str = ""
