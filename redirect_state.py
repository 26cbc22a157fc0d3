"""Post-login redirect bookkeeping across a short-lived and a durable store.

The short-lived store holds the destination and two flags for the current
session; the durable store keeps a JSON envelope that survives an external
identity-provider round trip. Both are reconciled only when read.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol
from urllib.parse import urlencode

from jsonschema import Draft202012Validator, ValidationError


logger = logging.getLogger(__name__)

REDIRECT_KEY = "redirectAfterLogin"
FROM_AGENT_KEY = "authFromAgent"
FROM_HOME_KEY = "authFromHome"
ENVELOPE_KEY = "googleAuthRedirectState"
DEFAULT_DESTINATION = "/browse"

OAUTH_STATE_KEY = "oauth_state"
OAUTH_TIMESTAMP_KEY = "oauth_timestamp"
OAUTH_KEY_PREFIX = "oauth_"
OAUTH_TIMEOUT_SECONDS: int = 10 * 60

ENVELOPE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["path"],
    "properties": {
        "path": {"type": ["string", "null"]},
        "fromAgent": {"type": "boolean"},
        "fromHome": {"type": "boolean"},
        "timestamp": {"type": "number"},
        "source": {"type": "string", "enum": ["agent", "home", "direct"]},
    },
}

Clock = Callable[[], float]


class RedirectStateError(Exception):
    """Raised when redirect state cannot be stored."""


class OAuthStateError(RedirectStateError):
    """Raised when an OAuth callback fails anti-CSRF state validation."""


class OAuthProviderError(OAuthStateError):
    """Raised when the identity provider reports an error in the callback."""


class OAuthMissingStateError(OAuthStateError):
    """Raised when the callback carries a code but no state parameter."""


class OAuthStoredStateMissingError(OAuthStateError):
    """Raised when no state was stored before the provider redirect."""


class OAuthStateMismatchError(OAuthStateError):
    """Raised when the callback state differs from the stored one."""


class OAuthStateExpiredError(OAuthStateError):
    """Raised when the stored state is older than the allowed window."""


class Storage(Protocol):
    """Minimal key/value string store, shaped like browser Web Storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> Iterable[str]: ...


class MemoryStorage:
    """In-process store standing in for per-tab session storage."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage:
    """Durable store persisted as a flat JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path.name, type(exc).__name__)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _save(self, items: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            raise RedirectStateError(f"Failed to write storage file: {self.path}") from exc

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = str(value)
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)

    def keys(self) -> list[str]:
        return list(self._load())

    def __len__(self) -> int:
        return len(self._load())


@dataclass(frozen=True)
class RedirectEnvelope:
    path: str | None
    from_agent: bool = False
    from_home: bool = False
    timestamp: float | None = None
    source: str = "direct"

    def to_json(self) -> str:
        return json.dumps(
            {
                "path": self.path,
                "fromAgent": self.from_agent,
                "fromHome": self.from_home,
                "timestamp": self.timestamp,
                "source": self.source,
            }
        )


@dataclass(frozen=True)
class SessionSnapshot:
    path: str | None
    from_agent: bool
    from_home: bool


def _format_validation_error(error: ValidationError) -> str:
    """Build a short validation message for logs."""
    path = ".".join(str(part) for part in error.path)
    location = path if path else "root"
    return f"Redirect envelope validation failed at '{location}': {error.message}"


def parse_envelope(raw: str | None) -> RedirectEnvelope | None:
    """Decode the durable envelope, treating anything malformed as absent."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring redirect envelope that is not valid JSON")
        return None

    error = next(Draft202012Validator(ENVELOPE_SCHEMA).iter_errors(data), None)
    if error is not None:
        logger.warning(_format_validation_error(error))
        return None

    return RedirectEnvelope(
        path=data.get("path"),
        from_agent=data.get("fromAgent") is True,
        from_home=data.get("fromHome") is True,
        timestamp=data.get("timestamp"),
        source=data.get("source", "direct"),
    )


def resolve_destination(session: SessionSnapshot, envelope: RedirectEnvelope | None) -> str:
    """Pick the post-login destination from both stores.

    Priority:
    1. session path when the session says the user came from an agent;
    2. envelope path when the envelope says the user came from an agent;
    3. session path from any source;
    4. envelope path unless the envelope says the user came from home;
    5. the default when either store says the user came from home;
    6. the default.
    """
    if session.path and session.from_agent:
        return session.path
    if envelope is not None and envelope.from_agent and envelope.path:
        return envelope.path
    if session.path:
        return session.path
    if envelope is not None and envelope.path and not envelope.from_home:
        return envelope.path
    if session.from_home or (envelope is not None and envelope.from_home):
        return DEFAULT_DESTINATION
    return DEFAULT_DESTINATION


class RedirectState:
    """Remembers where to send a user once authentication completes."""

    def __init__(self, session: Storage, durable: Storage, clock: Clock = time.time) -> None:
        self.session = session
        self.durable = durable
        self._clock = clock

    def set_destination(self, path: str, from_agent: bool = False, from_home: bool = False) -> RedirectEnvelope:
        """Record ``path`` in both stores.

        Flags that are False are removed from the session store so a stale
        flag from an earlier call cannot leak into this one.
        """
        envelope = RedirectEnvelope(
            path=path,
            from_agent=from_agent,
            from_home=from_home,
            timestamp=int(self._clock() * 1000),
            source="agent" if from_agent else "home" if from_home else "direct",
        )

        self.session.set_item(REDIRECT_KEY, path)
        for key, flag in ((FROM_AGENT_KEY, from_agent), (FROM_HOME_KEY, from_home)):
            if flag:
                self.session.set_item(key, "true")
            else:
                self.session.remove_item(key)
        self.durable.set_item(ENVELOPE_KEY, envelope.to_json())

        logger.info("Stored redirect destination %s (source=%s)", path, envelope.source)
        return envelope

    def _session_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            path=self.session.get_item(REDIRECT_KEY) or None,
            from_agent=self.session.get_item(FROM_AGENT_KEY) == "true",
            from_home=self.session.get_item(FROM_HOME_KEY) == "true",
        )

    def _envelope(self) -> RedirectEnvelope | None:
        return parse_envelope(self.durable.get_item(ENVELOPE_KEY))

    def get_and_clear_destination(self) -> str:
        """Resolve the destination and empty both stores, whatever the outcome."""
        try:
            session = self._session_snapshot()
            envelope = self._envelope()
        finally:
            self.clear()

        destination = resolve_destination(session, envelope)
        logger.info("Resolved redirect destination %s", destination)
        return destination

    def is_from_agent(self) -> bool:
        if self.session.get_item(FROM_AGENT_KEY) == "true":
            return True
        envelope = self._envelope()
        return envelope is not None and envelope.from_agent

    def is_from_home(self) -> bool:
        if self.session.get_item(FROM_HOME_KEY) == "true":
            return True
        envelope = self._envelope()
        return envelope is not None and envelope.from_home

    def clear(self) -> None:
        for key in (REDIRECT_KEY, FROM_AGENT_KEY, FROM_HOME_KEY):
            self.session.remove_item(key)
        self.durable.remove_item(ENVELOPE_KEY)

    def describe(self) -> dict[str, dict[str, str | None]]:
        """Raw contents of both stores, for debug logging."""
        return {
            "session": {key: self.session.get_item(key) for key in (REDIRECT_KEY, FROM_AGENT_KEY, FROM_HOME_KEY)},
            "durable": {ENVELOPE_KEY: self.durable.get_item(ENVELOPE_KEY)},
        }


class OAuthStateGuard:
    """Issues and checks the anti-CSRF ``state`` parameter of an OAuth login."""

    def __init__(self, session: Storage, clock: Clock = time.time, timeout: int = OAUTH_TIMEOUT_SECONDS) -> None:
        self.session = session
        self._clock = clock
        self.timeout = timeout

    def authorization_url(self, base_url: str) -> str:
        """Store a fresh state and return the provider URL carrying it.

        Args:
            base_url: Identity provider authorization endpoint.

        Returns:
            ``base_url`` with ``prompt=select_account`` and ``state`` appended.

        Raises:
            OAuthStateError: If no authorization endpoint is configured.
        """
        if not base_url:
            raise OAuthStateError("OAuth authorization URL is not configured")

        state = secrets.token_urlsafe(16)
        self.session.set_item(OAUTH_STATE_KEY, state)
        self.session.set_item(OAUTH_TIMESTAMP_KEY, str(int(self._clock() * 1000)))

        stale = [
            key
            for key in self.session.keys()
            if key.startswith(OAUTH_KEY_PREFIX) and key not in (OAUTH_STATE_KEY, OAUTH_TIMESTAMP_KEY)
        ]
        for key in stale:
            self.session.remove_item(key)

        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{urlencode({'prompt': 'select_account', 'state': state})}"

    def validate_callback(self, code: str | None, state: str | None, error: str | None = None) -> str:
        """Check an OAuth callback and return its authorization code.

        The stored state is consumed whatever the outcome.

        Raises:
            OAuthProviderError: If the provider reported an error.
            OAuthMissingStateError: If the callback has no state parameter.
            OAuthStoredStateMissingError: If no state was stored beforehand.
            OAuthStateMismatchError: If the states differ.
            OAuthStateExpiredError: If the stored state is too old.
            OAuthStateError: If the callback carries no authorization code.
        """
        stored_state = self.session.get_item(OAUTH_STATE_KEY)
        stored_timestamp = self.session.get_item(OAUTH_TIMESTAMP_KEY)
        self.clear()

        if error:
            raise OAuthProviderError(f"Authentication was cancelled or failed: {error}")
        if not code:
            raise OAuthStateError("OAuth callback is missing the authorization code")
        if not state:
            raise OAuthMissingStateError("OAuth callback is missing the state parameter")
        if not stored_state or not stored_timestamp:
            raise OAuthStoredStateMissingError("No OAuth state was stored for this session")
        if not secrets.compare_digest(state, stored_state):
            raise OAuthStateMismatchError("OAuth state does not match the stored state")

        try:
            issued_ms = int(stored_timestamp)
        except ValueError as exc:
            raise OAuthStoredStateMissingError("Stored OAuth timestamp is malformed") from exc

        age_ms = int(self._clock() * 1000) - issued_ms
        if age_ms >= self.timeout * 1000:
            raise OAuthStateExpiredError("OAuth state expired, please sign in again")
        return code

    def clear(self) -> None:
        self.session.remove_item(OAUTH_STATE_KEY)
        self.session.remove_item(OAUTH_TIMESTAMP_KEY)
