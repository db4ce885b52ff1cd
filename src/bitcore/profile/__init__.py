"""Single-user profile package."""

from bitcore.profile.store import (
    KNOWN_SERVICES,
    GitHubConfig,
    ProfileError,
    ProfileErrorCode,
    UserProfile,
    UserProfileStore,
)

__all__ = [
    "KNOWN_SERVICES",
    "GitHubConfig",
    "ProfileError",
    "ProfileErrorCode",
    "UserProfile",
    "UserProfileStore",
]
