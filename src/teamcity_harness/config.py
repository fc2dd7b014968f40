"""Harness configuration.

Values are resolved in this order (first hit wins):
1. Process environment variables
2. `.env` overrides in the repository root / working directory
3. `.env.defaults` catalog

CI runs are detected via CI=true or GITHUB_ACTIONS=true; the server is then
addressed through TEAMCITY_HOST instead of TEAMCITY_BASE_URL.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Iterator, List
from urllib.parse import urljoin

import httpx

from teamcity_harness.config_defaults import get_default

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_BASE_URL = "http://localhost:8111"
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 1.0


def _setting(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value:
        return value
    return get_default(key, fallback)


def _flag(key: str, fallback: bool) -> bool:
    value = _setting(key)
    if value is None:
        return fallback
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class AuthProfile:
    """Credentials used for basic auth against the server."""

    name: str
    username: str
    password: str

    @property
    def auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.username, self.password)

    def __repr__(self) -> str:
        return f"AuthProfile(name={self.name!r}, username={self.username!r})"


@dataclass
class HarnessConfig:
    """Concrete settings for one harness run."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    log_level: str = "INFO"
    log_file: str | None = None
    verify_tls: bool = True
    is_ci: bool = False
    profiles: Dict[str, AuthProfile] = field(default_factory=dict)
    default_profile: str = "admin"

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        is_ci = os.getenv("CI", "").lower() == "true" or os.getenv("GITHUB_ACTIONS", "").lower() == "true"

        if is_ci:
            host = os.getenv("TEAMCITY_HOST")
            base_url = f"http://{host}:8111" if host else DEFAULT_BASE_URL
        else:
            base_url = _setting("TEAMCITY_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL

        profiles: Dict[str, AuthProfile] = {
            "admin": AuthProfile(
                name="admin",
                username=_setting("TEAMCITY_ADMIN_USERNAME", "admin") or "admin",
                password=_setting("TEAMCITY_ADMIN_PASSWORD", "admin") or "admin",
            )
        }
        superuser_token = _setting("TEAMCITY_SUPERUSER_TOKEN")
        if superuser_token:
            # TeamCity accepts the superuser token with an empty username.
            profiles["superuser"] = AuthProfile(name="superuser", username="", password=superuser_token)

        default_profile = _setting("HARNESS_AUTH_PROFILE", "admin") or "admin"
        if default_profile not in profiles:
            raise ValueError(
                f"HARNESS_AUTH_PROFILE={default_profile} is not configured. "
                f"Available profiles: {', '.join(sorted(profiles))}"
            )

        return cls(
            base_url=base_url,
            timeout=float(_setting("HARNESS_TIMEOUT", str(DEFAULT_TIMEOUT))),
            retries=int(_setting("HARNESS_RETRIES", str(DEFAULT_RETRIES))),
            retry_backoff=float(_setting("HARNESS_RETRY_BACKOFF", str(DEFAULT_RETRY_BACKOFF))),
            log_level=(_setting("LOG_LEVEL", "INFO") or "INFO").upper(),
            log_file=_setting("HARNESS_LOG_FILE"),
            verify_tls=_flag("HARNESS_VERIFY_TLS", True),
            is_ci=is_ci,
            profiles=profiles,
            default_profile=default_profile,
        )

    # ---- profile helpers ----------------------------------------------------------
    def profile(self, name: str | None = None) -> AuthProfile:
        """Return the named profile (default profile when name is None)."""
        key = name or self.default_profile
        try:
            return self.profiles[key]
        except KeyError:
            raise ValueError(
                f"Authentication profile '{key}' is not available. "
                f"Available profiles: {', '.join(sorted(self.profiles)) or 'none'}"
            ) from None

    def available_profiles(self) -> List[str]:
        return sorted(self.profiles)

    @contextmanager
    def use_profile(self, name: str) -> Iterator[AuthProfile]:
        """Temporarily switch the default profile.

        Works on a copy of the profile so a test mutating it cannot leak the
        change into the next test running in the same process.
        """
        previous = self.default_profile
        original = self.profile(name)
        self.profiles[name] = deepcopy(original)
        self.default_profile = name
        try:
            yield self.profiles[name]
        finally:
            self.profiles[name] = original
            self.default_profile = previous

    # ---- utility helpers ----------------------------------------------------------
    def url(self, path: str) -> str:
        """Return an absolute URL for the provided path."""
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))


@lru_cache(maxsize=1)
def load_config() -> HarnessConfig:
    """Process-wide config, read once from the environment."""
    return HarnessConfig.from_env()


def configure_logging(config: HarnessConfig) -> None:
    """Attach stream (and optional file) handlers to the root logger."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stream_handler)

    if config.log_file:
        try:
            file_handler = logging.FileHandler(config.log_file, mode="a")
        except OSError as exc:
            logging.getLogger(__name__).error(f"Failed to setup file logging: {exc}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info(f"Logging initialized at level {config.log_level}")
