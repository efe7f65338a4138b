"""
api/routes/v1/users.py -- User, post, dashboard and follow REST endpoints.

Routes:
  POST   /api/v1/users                                   -- register; returns user + token
  GET    /api/v1/users                                   -- list all users (public view)
  GET    /api/v1/users/{user_id}                         -- one user (public view)
  POST   /api/v1/users/{user_id}/posts                   -- append a post (owner only)
  GET    /api/v1/users/{user_id}/dashboard               -- own + followed posts, newest first (owner only)
  POST   /api/v1/users/{user_id}/following/{target_id}   -- follow target (owner only)
  DELETE /api/v1/users/{user_id}/following/{target_id}   -- unfollow target (owner only)

"Owner only" means the bearer token (cookie or Authorization header) must
belong to {user_id}. The check itself is SocialService.check_authentication();
routes only extract the token and pass it through.

Handlers are plain ``def`` -- the store is synchronous, so FastAPI runs them
in its threadpool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import (
    DashboardResponse,
    PostCreate,
    PostResponse,
    UserCreate,
    UserCreatedResponse,
    UserResponse,
)
from auth.dependencies import get_bearer_token
from social.services import SocialService

# Auth policy:
# - POST   /users, GET /users, GET /users/{id}:   public
# - everything under /users/{user_id}/...:         bearer token of user_id
router = APIRouter()


def _service(request: Request) -> SocialService:
    return request.app.state.social_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserCreatedResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserCreatedResponse:
    """Register a new account and return it with its bearer token.

    400 lists every invalid field at once; 409 if user_id is taken.
    """
    user, token = _service(request).create_user(body.user_id, body.user_name, body.password)
    return UserCreatedResponse(user=UserResponse.from_user(user), token=token)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).get_all_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: str) -> UserResponse:
    return UserResponse.from_user(_service(request).get_user(user_id))


# ---------------------------------------------------------------------------
# Owner-only endpoints
# ---------------------------------------------------------------------------


@router.post("/users/{user_id}/posts", response_model=UserResponse, status_code=201)
def create_post(
    request: Request,
    user_id: str,
    body: PostCreate,
    token: str | None = Depends(get_bearer_token),
) -> UserResponse:
    """Append a post to the caller's own sequence and return the updated user."""
    user = _service(request).create_post(user_id, token, body.content, body.image)
    return UserResponse.from_user(user)


@router.get("/users/{user_id}/dashboard", response_model=DashboardResponse)
def get_dashboard(
    request: Request,
    user_id: str,
    token: str | None = Depends(get_bearer_token),
) -> DashboardResponse:
    posts = _service(request).get_user_dashboard(user_id, token)
    return DashboardResponse(user_id=user_id, posts=[PostResponse.from_post(p) for p in posts])


@router.post("/users/{user_id}/following/{target_id}", response_model=UserResponse)
def follow(
    request: Request,
    user_id: str,
    target_id: str,
    token: str | None = Depends(get_bearer_token),
) -> UserResponse:
    """Follow target_id. 400 on self-follow, 409 if already following, 404 if target unknown."""
    return UserResponse.from_user(_service(request).follow_user(user_id, token, target_id))


@router.delete("/users/{user_id}/following/{target_id}", response_model=UserResponse)
def unfollow(
    request: Request,
    user_id: str,
    target_id: str,
    token: str | None = Depends(get_bearer_token),
) -> UserResponse:
    """Stop following target_id. 404 if target unknown or not followed."""
    return UserResponse.from_user(_service(request).unfollow_user(user_id, token, target_id))
