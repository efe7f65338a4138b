"""
API request and response models for Jesusgram REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in social/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are deliberately loose (every field Optional[str]): presence
and format are checked by SocialService.check_bad_request() so all violations
come back together in one BAD_REQUEST. Pydantic still rejects wrong JSON
types, and api/main.py renders those as BAD_REQUEST too.

Response models never carry hashed_password.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from social.models import Post, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    user_id: Optional[str] = None
    password: Optional[str] = None


class PostCreate(BaseModel):
    """Request body for POST /api/v1/users/{user_id}/posts."""

    content: Optional[str] = None
    image: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PostResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    author: str
    created_at: str
    image: Optional[str] = None

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        return cls(content=post.content, author=post.author, created_at=post.created_at, image=post.image)


class UserResponse(BaseModel):
    """Public view of a user. Built only through from_user(), which drops the password hash."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    user_name: str
    posts: list[PostResponse]
    following: list[str]
    followers: list[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from a domain User.

        Factory Method: the mapping lives here, colocated with the output
        model, rather than scattered across route handlers.
        """
        return cls(
            user_id=user.user_id,
            user_name=user.user_name,
            posts=[PostResponse.from_post(p) for p in user.posts],
            following=list(user.following),
            followers=list(user.followers),
            created_at=user.created_at,
        )


class UserCreatedResponse(BaseModel):
    """Response for POST /api/v1/users -- the token is what the client keeps."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    user_id: str
    user_name: str


class DashboardResponse(BaseModel):
    """Response for GET /api/v1/users/{user_id}/dashboard. Posts are newest first."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    posts: list[PostResponse]


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    code is the taxonomy name (e.g. "NOT_FOUND"); for taxonomy errors detail
    is {"code": <numeric code>, "info": <context>}.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
