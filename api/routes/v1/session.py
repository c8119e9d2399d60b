"""
api/routes/v1/session.py -- Session endpoints for API clients.

Routes:
  POST /api/v1/auth/login   -- password login; returns the token and sets the session cookie
  POST /api/v1/auth/logout  -- revokes the session and clears every Skillink cookie
  GET  /api/v1/auth/me      -- caller identity, roles and onboarding state (requires auth)

Security:
  POST /login is rate-limited by LOGIN_RATE_LIMIT per client address.
  Cache-Control: no-store on login responses.
  Wrong email and wrong password return the same generic 401.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, LoginResponse, MeResponse
from auth.cookies import clear_session_cookies, set_session_cookies
from auth.dependencies import get_backend, get_current_session, request_token
from auth.limiter import limiter, login_limit
from backend.client import AuthError, BackendError
from core.models import ONBOARDING_ROLES, Session
from marketplace.roles import get_user_roles, has_completed_onboarding

logger = logging.getLogger("skillink.api.session")

# Auth policy:
# - POST /api/v1/auth/login:   public
# - POST /api/v1/auth/logout:  public -- clearing cookies needs no prior auth
# - GET  /api/v1/auth/me:      requires auth (get_current_session)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_limit)  # inside the route decorator so FastAPI registers the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a session."""
    backend = get_backend(request)
    try:
        session = backend.sign_in(body.email, body.password)
        roles = get_user_roles(backend.as_user(session.access_token), session.user_id)
    except AuthError:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    except BackendError as exc:
        logger.warning("API login failed: %s", exc)
        raise HTTPException(status_code=503, detail="Backend unavailable") from exc

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=session.access_token,
            expires_at=session.expires_at,
            user_id=session.user_id,
            email=session.email,
            roles=roles,
        ).model_dump(mode="json"),
    )
    set_session_cookies(resp, session)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the session (best effort) and clear cookies."""
    token = request_token(request)
    if token:
        try:
            get_backend(request).sign_out(token)
        except BackendError as exc:
            logger.warning("Sign-out failed, clearing cookies anyway: %s", exc)
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookies(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, session: Session = Depends(get_current_session)) -> MeResponse:
    """Return the caller's identity and acquired roles."""
    backend = get_backend(request).as_user(session.access_token)
    try:
        roles = get_user_roles(backend, session.user_id)
        onboarded = {
            role: has_completed_onboarding(backend, session.user_id, role, roles)
            for role in roles
            if role in ONBOARDING_ROLES
        }
    except BackendError as exc:
        logger.warning("Role lookup failed for %s: %s", session.user_id, exc)
        raise HTTPException(status_code=503, detail="Backend unavailable") from exc
    return MeResponse(user_id=session.user_id, email=session.email, roles=roles, onboarded=onboarded)
