"""Persistence of messaging session credentials."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredentials:
    """Credentials and resume state for a messaging session."""

    bot_token: str
    update_offset: int | None = None


class CredentialStore(Protocol):
    """Interface for loading and saving session credentials."""

    def load(self) -> SessionCredentials:
        """Return the persisted credentials."""

    def save(self, credentials: SessionCredentials) -> None:
        """Persist updated credentials."""


@dataclass
class FileCredentialStore(CredentialStore):
    """Keeps session credentials in a JSON file inside the auth directory."""

    auth_dir: Path
    default_token: str
    filename: str = "session.json"

    @property
    def path(self) -> Path:
        return self.auth_dir / self.filename

    def load(self) -> SessionCredentials:
        """Load saved credentials for the configured token.

        A saved update offset only applies to the token it was saved with;
        after a token change the session starts from Telegram's backlog.
        """
        fresh = SessionCredentials(bot_token=self.default_token)
        if not self.path.exists():
            return fresh
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.exception(
                "Failed to read session state", extra={"path": str(self.path)}
            )
            return fresh
        if not isinstance(payload, dict):
            _logger.warning(
                "Ignoring session state that is not a JSON object",
                extra={"path": str(self.path)},
            )
            return fresh
        if payload.get("bot_token") != self.default_token:
            return fresh
        offset = payload.get("update_offset")
        return SessionCredentials(
            bot_token=self.default_token,
            update_offset=offset if isinstance(offset, int) else None,
        )

    def save(self, credentials: SessionCredentials) -> None:
        """Write credentials atomically."""
        self.auth_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(asdict(credentials)), encoding="utf-8")
        tmp_path.replace(self.path)


@dataclass
class InMemoryCredentialStore(CredentialStore):
    """Credential store that keeps state in memory only."""

    credentials: SessionCredentials

    def load(self) -> SessionCredentials:
        return self.credentials

    def save(self, credentials: SessionCredentials) -> None:
        self.credentials = credentials
