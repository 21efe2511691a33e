"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No reconciliation logic
- No behavioral constants (see constants.py)
- No runtime mutation (device settings changed at runtime live in
  the reconciler, seeded from this object)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_DEVICE_ADDRESS = "172.16.234.150"


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory and the reconciler.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    device_address: str
    demo_mode: bool

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    host: str
    port: int

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if PORT is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            device_address=os.environ.get("DEVICE_ADDRESS", DEFAULT_DEVICE_ADDRESS),
            # Demo by default so the UI is usable without hardware
            demo_mode=_env_flag("DEMO_MODE", "1"),

            enable_json_logs=_env_flag("ENABLE_JSON_LOGS", "1"),

            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8000")),
        )
