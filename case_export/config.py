"""
Export Settings

Tunables for one export run. Values come from keyword arguments or from
CASE_EXPORT_* environment variables (optionally loaded from a .env file).

Credentials are NOT settings: they are passed per export and never read
from the environment here.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional
import os

from dotenv import load_dotenv

from .errors import ConfigurationError

ENV_PREFIX = "CASE_EXPORT_"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ExportSettings:
    """
    Attributes:
        login_timeout_s: Max wait for a manual (human) login
        token_grace_s: Wait after login for an intercepted bearer token
        poll_max_attempts: Max status checks before PollTimeoutError
        poll_interval_s: Sleep between status checks
        download_timeout_s: Max wait for the browser download event
        download_dir: Where downloaded packages are written
        headless: Launch the browser without a window
        export_config_name: Server-side export configuration to use
        item_system_name: systemName of the exported item type
        created_by: Optional user to stamp on the job (server workaround)
        verify_reachability: HEAD the download URL before triggering it
        verify_ssl: Verify TLS certificates on host-side HTTP calls
        http_timeout_s: Per-request timeout on host-side HTTP calls
    """
    login_timeout_s: float = 180.0
    token_grace_s: float = 2.0
    poll_max_attempts: int = 120
    poll_interval_s: float = 0.5
    download_timeout_s: float = 30.0
    download_dir: str = "data/exports"
    headless: bool = True
    export_config_name: str = "VeryBasic"
    item_system_name: str = "sharedo-type"
    created_by: Optional[str] = None
    verify_reachability: bool = True
    verify_ssl: bool = True
    http_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if self.poll_max_attempts < 1:
            raise ConfigurationError("poll_max_attempts must be >= 1")
        for name in ("login_timeout_s", "token_grace_s", "poll_interval_s",
                     "download_timeout_s", "http_timeout_s"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

    @property
    def download_path(self) -> Path:
        return Path(self.download_dir)

    def with_overrides(self, **changes: Any) -> "ExportSettings":
        """Copy with some fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @staticmethod
    def from_env(env_file: Optional[str] = None) -> "ExportSettings":
        """
        Build settings from CASE_EXPORT_* environment variables.

        Args:
            env_file: Optional .env path; already-set variables win

        Raises:
            ConfigurationError: If a numeric or boolean value cannot be parsed
        """
        if env_file:
            load_dotenv(env_file, override=False)

        casts: Dict[str, Callable[[str], Any]] = {
            "login_timeout_s": float,
            "token_grace_s": float,
            "poll_max_attempts": int,
            "poll_interval_s": float,
            "download_timeout_s": float,
            "download_dir": str,
            "headless": _as_bool,
            "export_config_name": str,
            "item_system_name": str,
            "created_by": str,
            "verify_reachability": _as_bool,
            "verify_ssl": _as_bool,
            "http_timeout_s": float,
        }

        values: Dict[str, Any] = {}
        for name, cast in casts.items():
            raw = os.environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                values[name] = cast(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}"
                ) from e

        return ExportSettings(**values)
