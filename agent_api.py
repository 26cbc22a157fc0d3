"""HTTP client for the AgentHub backend endpoints used by the exporter."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import time
from typing import Any

import requests
from dotenv import load_dotenv
from jsonschema import Draft202012Validator, ValidationError


logger = logging.getLogger(__name__)


class AgentApiError(Exception):
    """Raised when a backend request fails."""


class AuthExpiredError(AgentApiError):
    """Raised when the access token is missing, expired or rejected."""


class SharedDataNotFoundError(AgentApiError):
    """Raised when a shared link does not exist or has expired."""


class ApiResponseSchemaError(AgentApiError):
    """Raised when a backend response does not have the expected envelope."""


DEFAULT_API_BASE_URL = "https://agents-api.tryzent.com/api"
REQUEST_TIMEOUT_SECONDS: float = 15.0
MIN_RATING: int = 1
MAX_RATING: int = 5

RESPONSE_ENVELOPE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["status"],
    "properties": {
        "status": {"type": "boolean"},
        "message": {"type": ["string", "null"]},
        "data": {},
        "error": {"type": ["string", "null"]},
    },
}


def _api_base_url() -> str:
    load_dotenv()
    return os.getenv("AGENTHUB_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/")


def _access_token() -> str | None:
    load_dotenv()
    return os.getenv("AGENTHUB_ACCESS_TOKEN")


def is_jwt_expired(token: str | None, now: float | None = None) -> bool:
    """Return True unless ``token`` is a JWT whose ``exp`` lies in the future.

    Tokens that cannot be decoded, or that carry no ``exp`` claim, count as
    expired.
    """
    if not token:
        return True

    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return True

    payload_b64 = parts[1]
    padded = payload_b64 + "=" * (-len(payload_b64) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError):
        return True

    if not isinstance(payload, dict):
        return True
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool) or not exp:
        return True

    now_seconds = int(now if now is not None else time.time())
    return exp <= now_seconds


def _format_validation_error(error: ValidationError) -> str:
    """Build a safe schema validation error message for CLI display."""
    path = ".".join(str(part) for part in error.path)
    location = path if path else "root"
    return f"API response schema validation failed at '{location}': {error.message}"


def _validate_envelope(payload: Any) -> None:
    validator = Draft202012Validator(RESPONSE_ENVELOPE_SCHEMA)
    error = next(validator.iter_errors(payload), None)
    if error is None:
        return

    safe_message = _format_validation_error(error)
    logger.warning("API schema validation failure: %s", safe_message)
    raise ApiResponseSchemaError(safe_message)


def _decode_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise AgentApiError("API response is not valid JSON") from exc


def _error_message(response: requests.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return default


def fetch_shared_data(share_uuid: str, session: requests.Session | None = None) -> Any:
    """Fetch the agent output behind a public share link.

    Args:
        share_uuid: Identifier from the share URL.
        session: Optional HTTP session; a plain ``requests`` call is used
            otherwise.

    Returns:
        The ``data`` member of the response envelope, as opaque JSON.

    Raises:
        SharedDataNotFoundError: If the link does not exist or has expired.
        ApiResponseSchemaError: If the response envelope is malformed.
        AgentApiError: On timeouts, connection failures or a ``status: false``
            response.
    """
    if not share_uuid or not share_uuid.strip():
        raise AgentApiError("Share UUID is required")

    http = session if session is not None else requests
    url = f"{_api_base_url()}/agents/get-shared-data/{share_uuid.strip()}"

    try:
        response = http.get(url, headers={"accept": "application/json"}, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as exc:
        logger.exception("Shared data request failed")
        raise AgentApiError("Failed to retrieve shared data") from exc

    if response.status_code == 404:
        raise SharedDataNotFoundError("Shared content not found. The link may have expired or does not exist")
    if not response.ok:
        raise AgentApiError(f"API request failed with status {response.status_code}")

    payload = _decode_json(response)
    _validate_envelope(payload)

    if not payload["status"]:
        raise AgentApiError(payload.get("message") or "Failed to retrieve shared data")

    logger.info("Fetched shared data for %s", share_uuid)
    return payload.get("data")


def submit_rating(
    agent_id: str,
    execution_id: str,
    rating: int,
    feedback: str | None = None,
    session: requests.Session | None = None,
    token: str | None = None,
) -> dict[str, Any]:
    """Save a rating and optional feedback for one agent execution.

    Raises:
        ValueError: If required fields are missing or the rating is out of range.
        AuthExpiredError: If the access token is missing, expired or rejected.
        AgentApiError: On timeouts, connection failures or an error response.
    """
    if not agent_id or not execution_id:
        raise ValueError("agent_id and execution_id are required")
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")

    access_token = token if token is not None else _access_token()
    if is_jwt_expired(access_token):
        raise AuthExpiredError("Session expired, please sign in again")

    http = session if session is not None else requests
    url = f"{_api_base_url()}/agents/save-agent-execution-feedback/{execution_id}"
    body: dict[str, Any] = {
        "agent_id": agent_id,
        "execution_id": execution_id,
        "response_rating": rating,
        "response_feedback": feedback,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {access_token}",
        "accept": "application/json",
    }

    try:
        response = http.post(url, json=body, headers=headers, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as exc:
        logger.exception("Rating request failed")
        raise AgentApiError("Failed to submit rating") from exc

    if response.status_code == 401:
        raise AuthExpiredError("Session expired, please sign in again")
    if not response.ok:
        raise AgentApiError(_error_message(response, "External API request failed"))

    payload = _decode_json(response)
    if not isinstance(payload, dict):
        raise ApiResponseSchemaError("API response JSON root must be an object")

    logger.info("Saved rating %d for execution %s", rating, execution_id)
    return payload
