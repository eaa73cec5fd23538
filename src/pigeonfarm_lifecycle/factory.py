"""Database client factory.

Resolves a database profile from ``lifecycle.toml`` and builds an
``AsyncPostgresAdapter`` for it.

Profile resolution priority:
1. Explicit ``profile_name`` argument
2. ``LIFECYCLE_DB_PROFILE`` environment variable
3. Raise ``ProfileNotFoundError``
"""

import logging
import os
from urllib.parse import quote

from pigeonfarm_lifecycle.adapters.base import DatabaseClient
from pigeonfarm_lifecycle.adapters.postgres import AsyncPostgresAdapter
from pigeonfarm_lifecycle.config.loader import load_config
from pigeonfarm_lifecycle.config.models import DatabaseProfile, LifecycleConfig

logger = logging.getLogger(__name__)

PROFILE_ENV_VAR = "LIFECYCLE_DB_PROFILE"

# push_notifications.data and its archive copy
JSONB_COLUMNS = ["data"]


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def get_active_profile_name(profile_name: str | None = None) -> str:
    """Get active profile name from the argument or environment.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_profile = os.environ.get(PROFILE_ENV_VAR)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Pass --profile <name> or set {PROFILE_ENV_VAR}=<name>"
    )


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with ``[YOUR-PASSWORD]`` replaced by the
        URL-quoted ``db_password``.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_adapter(
    profile_name: str | None = None,
    config: LifecycleConfig | None = None,
) -> DatabaseClient:
    """Create a database adapter for the active profile.

    Args:
        profile_name: Profile name from lifecycle.toml.  When ``None``,
            uses the ``LIFECYCLE_DB_PROFILE`` env var.
        config: Already-loaded configuration.  Loaded from
            ``./lifecycle.toml`` when ``None``.

    Returns:
        ``AsyncPostgresAdapter`` for the profile.

    Raises:
        ProfileNotFoundError: If no profile is configured or the name is
            not present in the config.

    Example:
        adapter = get_adapter("local")
        try:
            rows = await adapter.select("users", "id, username")
        finally:
            await adapter.close()
    """
    name = get_active_profile_name(profile_name)
    if config is None:
        config = load_config()

    if name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found. Available: {available}"
        )

    profile = config.profiles[name]
    if profile.provider != "postgres":
        raise ProfileNotFoundError(
            f"Profile '{name}' uses unsupported provider '{profile.provider}'"
        )

    logger.debug(f"Creating adapter for profile '{name}'")
    return AsyncPostgresAdapter(database_url=resolve_url(profile), jsonb_columns=JSONB_COLUMNS)
