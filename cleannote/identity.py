"""
identity.py - Client for the external identity provider

Accounts (email + password) live in a GoTrue-compatible auth server
(AUTH_URL). This module wraps the four calls the service needs:

- create_user()  admin call, creates a confirmed account
- sign_in()      password grant, returns the session access token
- verify_token() resolves an access token to the provider's user
- delete_user()  admin call, used to undo a half-finished registration

Admin calls authenticate with AUTH_SERVICE_KEY. Provider failures raise
IdentityError carrying the HTTP status the provider answered with.
"""

import logging
from typing import Any, Dict, Optional

import requests

from . import gcp_clients
from .gcp_clients import ConfigurationError

_logger = logging.getLogger(__name__)


class IdentityError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _base_url() -> str:
    if not gcp_clients.AUTH_URL or not gcp_clients.AUTH_SERVICE_KEY:
        raise ConfigurationError("Server missing AUTH_URL / AUTH_SERVICE_KEY")
    return gcp_clients.AUTH_URL.rstrip("/")


def _headers(bearer: Optional[str] = None) -> Dict[str, str]:
    return {
        "apikey": gcp_clients.AUTH_SERVICE_KEY,
        "Authorization": f"Bearer {bearer or gcp_clients.AUTH_SERVICE_KEY}",
        "Content-Type": "application/json",
    }


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("msg", "message", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return str(data)


def _request(method: str, path: str, bearer: Optional[str] = None, **kwargs) -> Any:
    url = f"{_base_url()}{path}"
    try:
        response = requests.request(
            method, url, headers=_headers(bearer), timeout=gcp_clients.HTTP_TIMEOUT_SECONDS, **kwargs
        )
    except requests.RequestException as e:
        _logger.exception("Identity provider unreachable (%s %s): %s", method, path, e)
        raise IdentityError(502, "Identity provider unreachable") from e

    if not response.ok:
        message = _error_message(response)
        _logger.warning("Identity provider %s %s failed: %s %s", method, path, response.status_code, message)
        raise IdentityError(response.status_code, message)
    if not response.content:
        return {}
    return response.json()


def create_user(email: str, password: str) -> Dict[str, Any]:
    """Create a confirmed account; returns the provider's user object."""
    data = _request("POST", "/admin/users", json={"email": email, "password": password, "email_confirm": True})
    return data.get("user", data)


def sign_in(email: str, password: str) -> str:
    """Password sign-in; returns the session access token."""
    data = _request("POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password})
    token = data.get("access_token")
    if not token:
        raise IdentityError(401, "Login failed")
    return token


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Provider user for a valid access token, or None."""
    try:
        data = _request("GET", "/user", bearer=token)
    except IdentityError as e:
        if e.status in (401, 403, 404):
            return None
        raise
    return data if data.get("id") else None


def delete_user(external_id: str) -> None:
    _request("DELETE", f"/admin/users/{external_id}")
    _logger.info("Deleted external identity %s", external_id)
