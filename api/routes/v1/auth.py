"""
api/routes/v1/auth.py -- Login and logout REST endpoints.

Routes:
  POST /api/v1/auth/login   -- check credentials; return the bearer token and set it as a cookie
  POST /api/v1/auth/logout  -- clear the cookie

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Unknown user id and wrong password produce the same 401 and take the same
  time (SocialService.check_credentials runs scrypt either way).
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import LoginRequest, LoginResponse
from auth.tokens import clear_auth_cookie, set_auth_cookie
from social.services import SocialService

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
router = APIRouter()


@limiter.limit(login_limit)  # brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with user_id and password; return and set the bearer token.

    Failures raise taxonomy errors (400 missing fields, 401 bad credentials)
    which api/main.py renders; the no-store header is added there for 401s
    on this path as well.
    """
    service: SocialService = request.app.state.social_service
    user, token = service.login_user(body.user_id, body.password)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            user_id=user.user_id,
            user_name=user.user_name,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the token cookie. The token itself stays valid for header use."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp
