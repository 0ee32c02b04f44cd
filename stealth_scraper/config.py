"""Configuration constants and runtime settings for the render service"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import Credentials

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

# Browser fingerprint
DEFAULT_BROWSER_OS = "windows"  # Desktop fingerprint family for Camoufox
DEFAULT_HEADLESS = True

# Timeouts (in seconds)
DEFAULT_OPERATION_TIMEOUT = 30.0  # Default for every wait/click/type
DEFAULT_NAVIGATION_TIMEOUT = 60.0  # page.goto
DEFAULT_LOAD_GRACE = 5.0  # Extra wait for "load" after DOM ready
DEFAULT_CHALLENGE_TIMEOUT = 45.0  # Challenge markers must clear within this
DEFAULT_CHALLENGE_SETTLE = 2.0  # Post-challenge script execution
DEFAULT_LOGIN_STEP_TIMEOUT = 20.0  # Each login protocol step
DEFAULT_UNKNOWN_SETTLE = 1.5  # Wait before re-classifying an unknown page
DEFAULT_SCREENSHOT_TIMEOUT = 5.0

# Resolver budget
DEFAULT_MAX_RESOLVER_CYCLES = 6  # challenge -> login -> challenge ... bound
DEFAULT_UNKNOWN_RETRIES = 3  # Consecutive unknown classifications allowed
DEFAULT_MAX_LOGIN_ATTEMPTS = 1

# Concurrency
DEFAULT_MAX_CONCURRENT_SESSIONS = 4

# Missing-credentials policies
POLICY_FAIL = "fail"  # Login wall without credentials is a terminal failure
POLICY_PASSTHROUGH = "passthrough"  # Extract the unauthenticated page, flagged degraded
MISSING_CREDENTIALS_POLICIES = (POLICY_FAIL, POLICY_PASSTHROUGH)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_str(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


@dataclass(frozen=True)
class ScraperSettings:
    """
    Process-wide settings, built once at startup and passed explicitly
    into the pipeline. Nothing reads the environment after construction.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    executable_path: Optional[Path] = None
    headless: bool = DEFAULT_HEADLESS
    browser_os: str = DEFAULT_BROWSER_OS
    user_agent: Optional[str] = None

    credentials: Optional[Credentials] = None
    login_url: Optional[str] = None
    missing_credentials_policy: str = POLICY_FAIL
    content_marker: Optional[str] = None

    operation_timeout: float = DEFAULT_OPERATION_TIMEOUT
    navigation_timeout: float = DEFAULT_NAVIGATION_TIMEOUT
    load_grace: float = DEFAULT_LOAD_GRACE
    challenge_timeout: float = DEFAULT_CHALLENGE_TIMEOUT
    challenge_settle: float = DEFAULT_CHALLENGE_SETTLE
    login_step_timeout: float = DEFAULT_LOGIN_STEP_TIMEOUT
    unknown_settle: float = DEFAULT_UNKNOWN_SETTLE

    max_resolver_cycles: int = DEFAULT_MAX_RESOLVER_CYCLES
    unknown_retries: int = DEFAULT_UNKNOWN_RETRIES
    max_login_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS
    reset_budget_after_login: bool = False

    max_concurrent_sessions: int = DEFAULT_MAX_CONCURRENT_SESSIONS
    screenshot_dir: Optional[Path] = None

    def __post_init__(self):
        if self.missing_credentials_policy not in MISSING_CREDENTIALS_POLICIES:
            raise ValueError(
                f"missing_credentials_policy must be one of "
                f"{MISSING_CREDENTIALS_POLICIES}, got {self.missing_credentials_policy!r}"
            )
        if self.max_resolver_cycles < 1:
            raise ValueError("max_resolver_cycles must be >= 1")
        if self.max_concurrent_sessions < 1:
            raise ValueError("max_concurrent_sessions must be >= 1")

    @property
    def has_credentials(self) -> bool:
        return self.credentials is not None

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, env_file: Optional[Path] = None
    ) -> "ScraperSettings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to ``os.environ`` after
                loading ``env_file``/``.env``)
            env_file: Optional dotenv file; existing variables win
        """
        if env is None:
            load_dotenv(env_file, override=False)
            env = os.environ

        username = _env_str(env, "SITE_USERNAME", "UPWORK_EMAIL")
        password = _env_str(env, "SITE_PASSWORD", "UPWORK_PASSWORD")
        credentials = (
            Credentials(username=username, password=password)
            if username and password
            else None
        )

        executable = _env_str(env, "BROWSER_EXECUTABLE_PATH")
        screenshot_dir = _env_str(env, "SCREENSHOT_DIR")

        return cls(
            host=_env_str(env, "HOST") or DEFAULT_HOST,
            port=_env_int(env, "PORT", DEFAULT_PORT),
            executable_path=Path(executable) if executable else None,
            headless=_env_bool(env, "BROWSER_HEADLESS", DEFAULT_HEADLESS),
            browser_os=_env_str(env, "BROWSER_OS") or DEFAULT_BROWSER_OS,
            user_agent=_env_str(env, "BROWSER_USER_AGENT"),
            credentials=credentials,
            login_url=_env_str(env, "LOGIN_URL"),
            missing_credentials_policy=(
                _env_str(env, "MISSING_CREDENTIALS_POLICY") or POLICY_FAIL
            ).lower(),
            content_marker=_env_str(env, "CONTENT_MARKER"),
            operation_timeout=_env_float(env, "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT),
            navigation_timeout=_env_float(env, "NAVIGATION_TIMEOUT", DEFAULT_NAVIGATION_TIMEOUT),
            challenge_timeout=_env_float(env, "CHALLENGE_TIMEOUT", DEFAULT_CHALLENGE_TIMEOUT),
            login_step_timeout=_env_float(env, "LOGIN_STEP_TIMEOUT", DEFAULT_LOGIN_STEP_TIMEOUT),
            max_resolver_cycles=_env_int(env, "MAX_RESOLVER_CYCLES", DEFAULT_MAX_RESOLVER_CYCLES),
            reset_budget_after_login=_env_bool(env, "RESET_BUDGET_AFTER_LOGIN", False),
            max_concurrent_sessions=_env_int(
                env, "MAX_CONCURRENT_SESSIONS", DEFAULT_MAX_CONCURRENT_SESSIONS
            ),
            screenshot_dir=Path(screenshot_dir) if screenshot_dir else None,
        )
