"""
Configuration module for loading environment variables.
The pricing region and the embedded data directory are fixed per process.
"""
import os
import logging
from pathlib import Path
from typing import Mapping, Optional


logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 100
ABSOLUTE_MAX_BATCH_SIZE = 500

# Lookup order for overrides: current name, then older names kept for compatibility
MAX_BATCH_SIZE_ENV_VARS = ("COSTENGINE_MAX_BATCH_SIZE", "FINFOCUS_MAX_BATCH_SIZE", "MAX_BATCH_SIZE")
STRICT_VALIDATION_ENV_VARS = ("COSTENGINE_STRICT_VALIDATION", "FINFOCUS_STRICT_VALIDATION", "STRICT_VALIDATION")


def _first_env_value(names, environ: Mapping[str, str]) -> Optional[str]:
    """Return the first non-empty value among the given environment variable names."""
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def resolve_max_batch_size(environ: Mapping[str, str] = os.environ) -> int:
    """
    Resolve the maximum number of resources accepted in one batch request.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Batch size between 1 and ABSOLUTE_MAX_BATCH_SIZE
    """
    raw = _first_env_value(MAX_BATCH_SIZE_ENV_VARS, environ)
    if raw is None:
        return DEFAULT_MAX_BATCH_SIZE

    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid max batch size {raw!r}, using {DEFAULT_MAX_BATCH_SIZE}")
        return DEFAULT_MAX_BATCH_SIZE

    if value < 1:
        logger.warning(f"Ignoring non-positive max batch size {value}, using {DEFAULT_MAX_BATCH_SIZE}")
        return DEFAULT_MAX_BATCH_SIZE
    if value > ABSOLUTE_MAX_BATCH_SIZE:
        logger.warning(f"Max batch size {value} capped at {ABSOLUTE_MAX_BATCH_SIZE}")
        return ABSOLUTE_MAX_BATCH_SIZE
    return value


def resolve_strict_validation(environ: Mapping[str, str] = os.environ) -> bool:
    """Return True when strict batch validation is switched on."""
    raw = _first_env_value(STRICT_VALIDATION_ENV_VARS, environ)
    return raw is not None and raw.lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Catalog configuration
    PRICING_REGION: str = os.getenv("COSTENGINE_REGION", "us-east-1").strip().lower()
    PRICING_DATA_DIR: str = os.getenv(
        "COSTENGINE_PRICING_DATA_DIR",
        str(Path(__file__).parent.parent / "pricing" / "data")
    )
    CARBON_DATA_DIR: str = str(Path(__file__).parent.parent / "carbon" / "data")
    HOURS_PER_MONTH: int = 730  # Standard assumption: 24/7 operation
    SLOW_LOOKUP_THRESHOLD_MS: float = 50.0

    # Batch recommendations
    MAX_BATCH_SIZE: int = resolve_max_batch_size()
    STRICT_VALIDATION: bool = resolve_strict_validation()

    # HTTP surface
    SERVICE_NAME: str = "aws-public"
    SERVICE_VERSION: str = os.getenv("COSTENGINE_VERSION", "0.4.0")
    MAX_REQUEST_BODY_SIZE: int = int(os.getenv("COSTENGINE_MAX_REQUEST_BODY_SIZE", "1048576"))  # 1 MB

    @classmethod
    def validate(cls) -> None:
        """
        Validates that required configuration values are set.

        Raises:
            ValueError: If any required configuration is missing or invalid.
        """
        if not cls.PRICING_REGION:
            raise ValueError("COSTENGINE_REGION is required")
        if not Path(cls.PRICING_DATA_DIR).is_dir():
            raise ValueError(
                f"COSTENGINE_PRICING_DATA_DIR must be an existing directory (got: {cls.PRICING_DATA_DIR})"
            )
        if cls.MAX_REQUEST_BODY_SIZE <= 0:
            raise ValueError("COSTENGINE_MAX_REQUEST_BODY_SIZE must be positive")


config = Config()
