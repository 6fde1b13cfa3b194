"""Environment-based configuration.

Values come from the process environment, with a ``.env`` file loaded by
``load_dotenv`` first. Command-line hosts override individual fields.
"""

import os
from typing import Literal, Optional

from dotenv import load_dotenv
from msgspec import Struct

from contract_workflow.error_handling import ConfigurationError


ReviewerMode = Literal["gemini", "rules"]

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"


class WorkflowConfig(Struct, kw_only=True):
    """Runtime settings shared by the CLI and the HTTP host."""
    google_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    reviewer_mode: ReviewerMode = "rules"
    hitl_timeout_seconds: float = 300.0
    max_supersteps: int = 100
    log_level: str = "INFO"
    log_dir: str = "logs"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def validate(self) -> None:
        """Check the settings for consistency.

        Raises:
            ConfigurationError: If a setting is invalid
        """
        if self.reviewer_mode not in ("gemini", "rules"):
            raise ConfigurationError(
                f"REVIEWER_MODE must be 'gemini' or 'rules', got '{self.reviewer_mode}'"
            )
        if self.reviewer_mode == "gemini" and not self.google_api_key:
            raise ConfigurationError("GOOGLE_API_KEY is required when REVIEWER_MODE is 'gemini'")
        if self.hitl_timeout_seconds <= 0:
            raise ConfigurationError("HITL_TIMEOUT_SECONDS must be positive")
        if self.max_supersteps < 1:
            raise ConfigurationError("MAX_SUPERSTEPS must be at least 1")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'") from e


def load_config(env_file: Optional[str] = None) -> WorkflowConfig:
    """Build a ``WorkflowConfig`` from the environment.

    Without an explicit ``REVIEWER_MODE`` the Gemini reviewers are used when
    ``GOOGLE_API_KEY`` is set, and the rule-based reviewers otherwise.

    Args:
        env_file: Optional path of a dotenv file (defaults to ``.env`` lookup)

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If a value is malformed
    """
    load_dotenv(env_file)

    api_key = os.getenv("GOOGLE_API_KEY") or None
    reviewer_mode = os.getenv("REVIEWER_MODE", "").strip().lower() or ("gemini" if api_key else "rules")

    config = WorkflowConfig(
        google_api_key=api_key,
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        reviewer_mode=reviewer_mode,
        hitl_timeout_seconds=_env_number("HITL_TIMEOUT_SECONDS", 300.0, float),
        max_supersteps=_env_number("MAX_SUPERSTEPS", 100, int),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_dir=os.getenv("LOG_DIR", "logs"),
        api_host=os.getenv("API_HOST", "0.0.0.0"),
        api_port=_env_number("API_PORT", 8000, int)
    )
    config.validate()
    return config
