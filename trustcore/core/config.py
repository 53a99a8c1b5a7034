"""
TrustCore - Configuration Module
================================

Environment configuration helpers and startup validation.

Values are read from the process environment (populated from `.env` by
`load_dotenv()` in the entry point) when this module is imported.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from trustcore.core.logger import logger


# =============================================================================
# Configuration Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    valid: bool
    missing_required: list[str] = field(default_factory=list)
    missing_optional: list[str] = field(default_factory=list)
    invalid_format: list[tuple[str, str]] = field(default_factory=list)  # (var_name, reason)


# Required environment variables (service won't start without these)
REQUIRED_ENV_VARS: list[str] = []

# Optional environment variables with their descriptions
OPTIONAL_ENV_VARS: dict[str, str] = {
    "OPENAI_API_KEY": "Semantic content classifier",
    "NOTIFY_WEBHOOK_URL": "Webhook forwarding of expert notifications",
    "TRUSTCORE_DB_PATH": "SQLite database location",
    "CLASSIFIER_MODEL": "Semantic classifier model",
}

# Numeric environment variables and the bounds they must respect
NUMERIC_ENV_VARS: dict[str, tuple[float, float]] = {
    "CLASSIFIER_TIMEOUT": (1, 120),
    "TRUSTCORE_API_PORT": (1, 65535),
}

# Features that require OpenAI API key (for startup warnings)
OPENAI_DEPENDENT_FEATURES: list[str] = [
    "Semantic message screening",
    "Semantic comment and review screening",
]


def validate_config() -> ConfigValidationResult:
    """
    Validate all environment variables at startup.

    Returns:
        ConfigValidationResult with validation status and any issues found.
    """
    result = ConfigValidationResult(valid=True)

    for var in REQUIRED_ENV_VARS:
        if not os.getenv(var):
            result.missing_required.append(var)
            result.valid = False

    for var in OPTIONAL_ENV_VARS:
        if not os.getenv(var):
            result.missing_optional.append(var)

    for var, (low, high) in NUMERIC_ENV_VARS.items():
        value = os.getenv(var)
        if not value:
            continue
        try:
            number = float(value)
        except ValueError:
            result.invalid_format.append((var, "Must be numeric"))
            result.valid = False
            continue
        if not low <= number <= high:
            result.invalid_format.append((var, f"Must be between {low:g} and {high:g}"))
            result.valid = False

    webhook = os.getenv("NOTIFY_WEBHOOK_URL")
    if webhook and not webhook.startswith(("http://", "https://")):
        result.invalid_format.append(("NOTIFY_WEBHOOK_URL", "Must be an http(s) URL"))
        result.valid = False

    return result


def validate_and_log_config() -> None:
    """
    Validate configuration and log results.

    Raises:
        ConfigValidationError: If required configuration is missing or malformed.
    """
    result = validate_config()

    for var in result.missing_required:
        logger.error("Missing Required Configuration", [
            ("Variable", var),
            ("Action", f"Add {var}=<value> to your .env file"),
        ])

    for var, reason in result.invalid_format:
        logger.error("Invalid Configuration Format", [
            ("Variable", var),
            ("Reason", reason),
        ])

    if "OPENAI_API_KEY" in result.missing_optional:
        logger.warning("OpenAI API Key Not Configured", [
            ("Impact", "Semantic checks fail closed, all screened content is blocked"),
            ("Affected Features", ", ".join(OPENAI_DEPENDENT_FEATURES)),
            ("Action", "Add OPENAI_API_KEY to .env"),
        ])

    if not result.valid:
        raise ConfigValidationError(
            f"Missing required config: {', '.join(result.missing_required) or 'none'}"
            + (f"; Invalid format: {', '.join(v for v, _ in result.invalid_format)}" if result.invalid_format else "")
        )

    logger.info("Configuration Validated Successfully", [
        ("Required", f"{len(REQUIRED_ENV_VARS)} OK"),
        ("Optional", f"{len(OPTIONAL_ENV_VARS) - len(result.missing_optional)}/{len(OPTIONAL_ENV_VARS)} configured"),
    ])


# =============================================================================
# Loaders
# =============================================================================

def _load_int(env_var: str, default: int) -> int:
    """Load an integer setting, falling back to the default when unset or malformed."""
    value = os.getenv(env_var)
    if not value:
        return default
    try:
        return int(float(value))
    except ValueError:
        logger.warning("Invalid Numeric Setting", [
            ("Variable", env_var),
            ("Value", value),
            ("Using Default", default),
        ])
        return default


def _load_optional(env_var: str) -> Optional[str]:
    value = os.getenv(env_var, "").strip()
    return value or None


# =============================================================================
# Storage
# =============================================================================

DB_PATH: str = os.getenv("TRUSTCORE_DB_PATH", os.path.join("data", "trustcore.db"))
DATABASE_TIMEOUT: float = 30.0  # SQLite connection timeout (seconds)


# =============================================================================
# Semantic Classifier
# =============================================================================

OPENAI_API_KEY: Optional[str] = _load_optional("OPENAI_API_KEY")
CLASSIFIER_MODEL: str = os.getenv("CLASSIFIER_MODEL", "gpt-4o-mini")
CLASSIFIER_TIMEOUT: int = _load_int("CLASSIFIER_TIMEOUT", 10)  # seconds, never retried


# =============================================================================
# Notifications
# =============================================================================

NOTIFY_WEBHOOK_URL: Optional[str] = _load_optional("NOTIFY_WEBHOOK_URL")
NETWORK_TIMEOUT: int = 10  # Webhook request timeout (seconds)


# =============================================================================
# HTTP API
# =============================================================================

API_HOST: str = os.getenv("TRUSTCORE_API_HOST", "0.0.0.0")
API_PORT: int = _load_int("TRUSTCORE_API_PORT", 8088)
API_REQUESTS_PER_MINUTE: int = _load_int("TRUSTCORE_API_REQUESTS_PER_MINUTE", 120)
API_BURST_LIMIT: int = _load_int("TRUSTCORE_API_BURST_LIMIT", 20)


__all__ = [
    "ConfigValidationError",
    "ConfigValidationResult",
    "validate_config",
    "validate_and_log_config",
    "DB_PATH",
    "DATABASE_TIMEOUT",
    "OPENAI_API_KEY",
    "CLASSIFIER_MODEL",
    "CLASSIFIER_TIMEOUT",
    "NOTIFY_WEBHOOK_URL",
    "NETWORK_TIMEOUT",
    "API_HOST",
    "API_PORT",
    "API_REQUESTS_PER_MINUTE",
    "API_BURST_LIMIT",
]
