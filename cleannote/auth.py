"""
auth.py - Authentication module for CleanNote

This module provides account and session handling on top of the external
identity provider (see identity.py) and the local user documents in
Firestore. It includes:

1. Registration:
   - Validates email and password (>= 8 chars, letters and digits).
   - Creates the external identity, then the local user document.
   - If the local user cannot be created, the external identity is deleted
     again so no orphaned account is left behind.
   - Signs the new user in and sets the session cookie.

2. Login / Logout:
   - Password sign-in through the identity provider; the access token is
     stored in the HTTP-only `cleannote_session` cookie.
   - Logout clears the cookie.

3. Session:
   - `get_current_user` resolves the token (cookie or `Authorization:
     Bearer`) to the local user and is the dependency every protected route
     uses. It answers 401 before any entry or insight is read.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from . import identity
from .gcp_clients import SESSION_COOKIE_SECURE, ConfigurationError
from .identity import IdentityError
from .storage import get_store

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

SESSION_COOKIE_NAME = "cleannote_session"
SESSION_MAX_AGE_SECONDS = 60 * 60 * 24 * 7

_PASSWORD_RE = re.compile(r"^(?=.*[A-Za-z])(?=.*\d).{8,}$")


class Credentials(BaseModel):
    email: str
    password: str


def password_is_valid(password: str) -> bool:
    return bool(_PASSWORD_RE.match(password or ""))


def _set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _public_user(user: dict) -> dict:
    return {"id": user["id"], "email": user.get("email")}


# -------------------------
# Dependency helpers
# -------------------------
def get_session_token(request: Request) -> Optional[str]:
    """Session token from the cookie, else from an `Authorization: Bearer` header."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def resolve_user(token: Optional[str], store) -> Optional[dict]:
    """Local user for a session token, or None when the token is missing or invalid."""
    if not token:
        return None
    try:
        external = identity.verify_token(token)
    except IdentityError as e:
        _logger.error("Token verification failed: %s", e)
        return None
    if not external:
        return None
    return store.find_user_by_external_id(external["id"])


def get_current_user(request: Request, store=Depends(get_store)) -> dict:
    """
    FastAPI dependency returning the authenticated local user.
    Raises HTTPException(401) if the request carries no valid session.
    """
    user = resolve_user(get_session_token(request), store)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


# -------------------------
# API endpoints
# -------------------------
@router.post("/register")
def register(payload: Credentials, response: Response, store=Depends(get_store)):
    """
    Create an account.
    Steps:
    1. Validate the input.
    2. Create the external identity.
    3. Create the local user (compensating delete of step 2 on failure).
    4. Sign in and set the session cookie.
    """
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing fields")
    if not password_is_valid(payload.password):
        raise HTTPException(
            status_code=400,
            detail="Password must be at least 8 characters and include letters and numbers.",
        )

    try:
        external = identity.create_user(email, payload.password)
    except ConfigurationError as e:
        _logger.error("Registration misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except IdentityError as e:
        raise HTTPException(status_code=400, detail=e.message)

    try:
        user = store.create_user(external["id"], external.get("email") or email)
    except Exception as e:
        _logger.exception("Local user creation failed for %s; removing external identity: %s", email, e)
        try:
            identity.delete_user(external["id"])
        except IdentityError as cleanup_error:
            _logger.error("Could not remove external identity %s: %s", external["id"], cleanup_error)
        raise HTTPException(status_code=500, detail="An internal error occurred during registration.")

    try:
        token = identity.sign_in(email, payload.password)
    except IdentityError as e:
        raise HTTPException(status_code=400, detail=e.message)

    _set_session_cookie(response, token)
    _logger.info("New user registered: %s", user["id"])
    return {"ok": True, "user": _public_user(user)}


@router.post("/login")
def login(payload: Credentials, response: Response, store=Depends(get_store)):
    email = payload.email.strip().lower()
    try:
        token = identity.sign_in(email, payload.password)
    except ConfigurationError as e:
        _logger.error("Login misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except IdentityError as e:
        _logger.warning("Login failed for %s: %s", email, e.message)
        raise HTTPException(status_code=401, detail=e.message or "Login failed")

    _set_session_cookie(response, token)
    return {"ok": True}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/session")
def session(request: Request, store=Depends(get_store)):
    """Current user, or `null` when not signed in."""
    user = resolve_user(get_session_token(request), store)
    return {"user": _public_user(user) if user else None}
