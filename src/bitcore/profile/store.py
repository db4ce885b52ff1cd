"""Single-user profile persistence."""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bitcore.config.settings import Role
from bitcore.session.models import CurrentUser

PROFILE_FILENAME = "user-profile.json"
KNOWN_SERVICES = ("brave", "venice", "github")


class ProfileErrorCode(StrEnum):
    """Stable profile store error codes."""

    UNREADABLE = "profile_unreadable"
    INVALID_INPUT = "profile_invalid_input"
    UNAVAILABLE = "profile_unavailable"


class ProfileError(RuntimeError):
    """Profile store failure with stable code."""

    def __init__(self, code: ProfileErrorCode, message: str) -> None:
        """Create profile failure.

        Args:
            code: Stable error code.
            message: Human-readable error message.
        """
        super().__init__(message)
        self.code = code
        self.kind = (
            "input_validation" if code == ProfileErrorCode.INVALID_INPUT else "server"
        )


class GitHubConfig(BaseModel):
    """GitHub sync target stored on the profile."""

    model_config = ConfigDict(extra="forbid")

    owner: str | None = None
    repo: str | None = None
    branch: str = "main"
    token: str | None = None


class UserProfile(BaseModel):
    """Persisted operator profile."""

    model_config = ConfigDict(extra="forbid")

    username: str = "operator"
    role: Role = Role.ADMIN
    api_keys: dict[str, str] = Field(default_factory=dict)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    updated_at: datetime | None = None


def normalize_service(service: str) -> str:
    """Return canonical lowercase service identifier.

    Raises:
        ProfileError: If the service name is blank.
    """
    normalized = service.strip().lower()
    if not normalized:
        raise ProfileError(ProfileErrorCode.INVALID_INPUT, "Service name is required.")
    return normalized


class UserProfileStore:
    """JSON-file profile store for the single operator.

    The identity is fixed by construction (settings/env); only credentials and
    GitHub config are persisted. Writes are serialised with a file lock.
    """

    def __init__(
        self,
        *,
        root_dir: Path,
        username: str = "operator",
        role: Role = Role.ADMIN,
    ) -> None:
        """Create profile store.

        Args:
            root_dir: Storage root directory.
            username: Operator identity.
            role: Operator role.
        """
        self._root_dir = root_dir
        self._path = root_dir / PROFILE_FILENAME
        self._lock_path = root_dir / f"{PROFILE_FILENAME}.lock"
        self._user = CurrentUser(username=username, role=role)

    @property
    def path(self) -> Path:
        """Return backing profile file path."""
        return self._path

    def get_current_user(self) -> CurrentUser:
        """Return the operator identity; never fails in single-user mode."""
        return self._user

    def has_api_key(self, service: str) -> bool:
        """Return whether a non-empty key is stored for ``service``."""
        return bool(self.get_api_key(service))

    def get_api_key(self, service: str) -> str | None:
        """Return stored key for ``service`` or ``None``."""
        return self._load().api_keys.get(normalize_service(service)) or None

    def set_api_key(self, service: str, value: str | None) -> None:
        """Store or clear one service key.

        Args:
            service: Service identifier.
            value: Key value; blank or ``None`` removes the key.
        """
        name = normalize_service(service)
        with self._locked():
            profile = self._load()
            keys = dict(profile.api_keys)
            if value and value.strip():
                keys[name] = value.strip()
            else:
                keys.pop(name, None)
            self._save(profile.model_copy(update={"api_keys": keys}))

    def configured_services(self) -> dict[str, bool]:
        """Return configured flag per known service plus any extra stored keys."""
        keys = self._load().api_keys
        services = {name: bool(keys.get(name)) for name in KNOWN_SERVICES}
        for name, value in keys.items():
            services.setdefault(name, bool(value))
        return services

    def get_github_config(self) -> GitHubConfig:
        """Return stored GitHub sync configuration."""
        return self._load().github

    def set_github_config(self, config: GitHubConfig) -> None:
        """Persist GitHub sync configuration."""
        with self._locked():
            profile = self._load()
            self._save(profile.model_copy(update={"github": config}))

    @contextmanager
    def _locked(self) -> Generator[None]:
        """Hold the profile write lock for the context body."""
        self._root_dir.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self._lock_path)):
            yield

    def _load(self) -> UserProfile:
        """Load profile from disk, defaulting when missing.

        Raises:
            ProfileError: If payload is unreadable or invalid.
        """
        if not self._path.exists():
            return UserProfile(username=self._user.username, role=self._user.role)
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return UserProfile.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ProfileError(
                ProfileErrorCode.UNREADABLE, "User profile is unreadable."
            ) from exc

    def _save(self, profile: UserProfile) -> None:
        """Persist profile atomically.

        Raises:
            ProfileError: If filesystem persistence fails.
        """
        stamped = profile.model_copy(
            update={
                "username": self._user.username,
                "role": self._user.role,
                "updated_at": datetime.now(UTC),
            }
        )
        try:
            temp_path = self._path.with_name(f"{self._path.name}.tmp")
            temp_path.write_text(
                stamped.model_dump_json(indent=2), encoding="utf-8"
            )
            temp_path.replace(self._path)
        except OSError as exc:
            raise ProfileError(
                ProfileErrorCode.UNAVAILABLE, "User profile is unavailable."
            ) from exc
