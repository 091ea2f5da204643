"""
Secret Store
------------
Owns the one credential for the process: load once, consume once, scrub.

State machine:
    UNLOADED -> LOADED -> CONSUMED -> (reload) -> UNLOADED -> LOADED

Rules:
- Sources in priority order: process environment, then a .env file
- The environment slot is overwritten with a placeholder on load
- consume() returns the value exactly once, then zeroes the storage
- No accessor ever re-exposes the value; the guarded ones always raise
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Dict, List, MutableMapping, Optional, Tuple
import hashlib
import hmac
import os
import threading

from dotenv import dotenv_values

from infra.logging import get_logger
from core.errors import (
    CredentialUnavailable, IntegrityError, MissingCredential, SecurityViolation,
)
from .memory import SecureBuffer

DEFAULT_ENV_VAR = "VAULT_PRIVATE_KEY"
ENV_PLACEHOLDER = "[REDACTED]"
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class CredentialState(Enum):
    """Lifecycle states of the credential."""
    UNLOADED = auto()
    LOADED = auto()
    CONSUMED = auto()


VALID_TRANSITIONS: Dict[CredentialState, set] = {
    CredentialState.UNLOADED: {CredentialState.LOADED},
    CredentialState.LOADED: {CredentialState.CONSUMED},
    CredentialState.CONSUMED: {CredentialState.UNLOADED},
}


@dataclass
class CredentialTransition:
    """Record of a state change. Never carries the value."""
    from_state: CredentialState
    to_state: CredentialState
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)


class SecretStore:
    """
    Acquire-once-and-consume holder for the private key.

    Not designed for concurrent consumers: a second consume() racing
    the first observes CONSUMED and fails deterministically.
    """

    def __init__(
        self,
        env_var: str = DEFAULT_ENV_VAR,
        env_file: Optional[str] = None,
        expected_sha256: Optional[str] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        self._env_var = env_var
        self._env_file = Path(env_file) if env_file else None
        self._expected_sha256 = expected_sha256.lower() if expected_sha256 else None
        self._environ = environ if environ is not None else os.environ
        self._state = CredentialState.UNLOADED
        self._buffer: Optional[SecureBuffer] = None
        self._source: Optional[str] = None
        self._history: List[CredentialTransition] = []
        self._mutex = threading.Lock()
        self._logger = get_logger("security.secrets")

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def source(self) -> Optional[str]:
        """Where the current value came from: 'environment' or the file path."""
        return self._source

    @property
    def history(self) -> List[CredentialTransition]:
        return list(self._history)

    def _transition(self, to_state: CredentialState, reason: str) -> None:
        if to_state not in VALID_TRANSITIONS[self._state]:
            raise CredentialUnavailable(
                "credential",
                f"invalid transition {self._state.name} -> {to_state.name}",
            )
        self._history.append(CredentialTransition(self._state, to_state, reason))
        self._logger.info(f"Credential {self._state.name} -> {to_state.name} ({reason})")
        self._state = to_state

    # Sources

    def _read_environment(self) -> Optional[str]:
        value = self._environ.get(self._env_var)
        if not value or value == ENV_PLACEHOLDER:
            return None
        return value

    def _candidate_files(self) -> List[Path]:
        if self._env_file is not None:
            return [self._env_file]
        return [Path.cwd() / ".env", PROJECT_ROOT / ".env"]

    def _read_env_file(self) -> Tuple[Optional[str], Optional[Path]]:
        for path in self._candidate_files():
            if not path.is_file():
                continue
            self._verify_integrity(path)
            value = dotenv_values(path).get(self._env_var)
            self._logger.debug(f"Consulted env file: {path}")
            return (value or None), path
        return None, None

    def _verify_integrity(self, path: Path) -> None:
        if self._expected_sha256 is None:
            return
        digest = hashlib.sha256(path.read_bytes()).hexdigest()
        if not hmac.compare_digest(digest, self._expected_sha256):
            self._logger.critical(f"Integrity check failed for {path}")
            raise IntegrityError("credential", f"sha256 mismatch for {path}")

    # Lifecycle

    def load(self) -> None:
        """
        Load the credential from the highest-priority source.

        A no-op when already LOADED; from CONSUMED it reloads. Raises
        MissingCredential when no source yields a non-empty value,
        IntegrityError when the env file does not match its expected hash.
        """
        with self._mutex:
            if self._state == CredentialState.LOADED:
                return
            if self._state == CredentialState.CONSUMED:
                self._source = None
                self._transition(CredentialState.UNLOADED, "reload")

            value = self._read_environment()
            if value is not None:
                source = "environment"
                # Later reads of the slot observe the placeholder
                self._environ[self._env_var] = ENV_PLACEHOLDER
            else:
                value, path = self._read_env_file()
                source = str(path) if path else None

            if not value:
                raise MissingCredential(
                    "credential", f"{self._env_var} not set in environment or env file"
                )

            self._buffer = SecureBuffer(value.encode("utf-8"))
            del value
            self._source = source
            self._transition(CredentialState.LOADED, f"loaded from {source}")

    def consume(self) -> str:
        """Return the raw credential exactly once, then scrub it."""
        with self._mutex:
            if self._state != CredentialState.LOADED or self._buffer is None:
                raise CredentialUnavailable("credential")
            try:
                return self._buffer.reveal()
            finally:
                self._buffer.wipe()
                self._buffer = None
                self._transition(CredentialState.CONSUMED, "consumed")

    def reload(self) -> None:
        """Explicitly bring a consumed credential back: CONSUMED -> UNLOADED -> LOADED."""
        self.load()

    # Guarded accessors

    def get_private_key(self) -> str:
        raise SecurityViolation(
            "credential",
            "get_private_key() is designed to prevent accidental exposure of private keys",
        )

    def get_environment_variables(self) -> Dict[str, str]:
        raise SecurityViolation(
            "credential",
            "get_environment_variables() is designed to prevent accidental exposure "
            "of sensitive environment variables",
        )

    def __repr__(self) -> str:
        return f"SecretStore(env_var={self._env_var}, state={self._state.name})"
