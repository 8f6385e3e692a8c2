"""
Configuration for context-envelope.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (context-envelope.toml)
3. Default values (lowest priority)

Environment variables:
- CONTEXT_ENVELOPE_CONFIG_FILE: Path to TOML config file
- CONTEXT_ENVELOPE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- CONTEXT_ENVELOPE_STRUCTURED_LOGGING: Emit JSON log lines (true/false)
- CONTEXT_ENVELOPE_MAX_TOKENS: Default token ceiling (0 = no limit)
- CONTEXT_ENVELOPE_MIN_CHUNKS: Chunks to prefer keeping in stages 1-2
- CONTEXT_ENVELOPE_TASK_RESERVE: Tokens reserved for the task on top of overhead
- CONTEXT_ENVELOPE_CAPABILITIES_FILE: Local capability override JSON file
- PORTKEY_BASE_URL: Base URL of the model metadata backend
- PORTKEY_API_KEY: API key for the model metadata backend

Example TOML:
    [logging]
    level = "DEBUG"
    structured = false

    [budget]
    max_tokens = 32000
    min_chunks = 2
    task_reserve = 500

    [capabilities]
    override_file = "model-capabilities.local.json"
    metadata_timeout = 10.0
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from context_envelope.core.logging_config import configure_logging


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = ("context-envelope.toml", ".context-envelope.toml")
DEFAULT_METADATA_BASE_URL = "https://api.portkey.ai/v1"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_non_negative_int(value: Any, name: str, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default
    if parsed < 0:
        logger.warning(f"Negative value for {name}: {parsed}, using {default}")
        return default
    return parsed


@dataclass
class BudgetSettings:
    """Defaults for the token budget ladder.

    Attributes:
        max_tokens: Default token ceiling (0 means no limit)
        min_chunks: Chunks the first two stages try to keep
        task_reserve: Extra tokens held back for the task and answer framing
    """

    max_tokens: int = 0
    min_chunks: int = 0
    task_reserve: int = 0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "BudgetSettings":
        """Create settings from the [budget] TOML section."""
        return cls(
            max_tokens=_parse_non_negative_int(data.get("max_tokens", 0), "budget.max_tokens", 0),
            min_chunks=_parse_non_negative_int(data.get("min_chunks", 0), "budget.min_chunks", 0),
            task_reserve=_parse_non_negative_int(
                data.get("task_reserve", 0), "budget.task_reserve", 0
            ),
        )


@dataclass
class CapabilitySettings:
    """Settings for model capability resolution.

    Attributes:
        override_file: Local JSON override table (None disables overrides)
        metadata_base_url: Base URL of the remote metadata backend
        metadata_api_key: API key for remote lookups (None disables them)
        metadata_timeout: Request timeout in seconds
        metadata_max_retries: Attempts before a lookup is abandoned
    """

    override_file: Optional[Path] = None
    metadata_base_url: str = DEFAULT_METADATA_BASE_URL
    metadata_api_key: Optional[str] = None
    metadata_timeout: float = 10.0
    metadata_max_retries: int = 2

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CapabilitySettings":
        """Create settings from the [capabilities] TOML section."""
        override_file = data.get("override_file")
        return cls(
            override_file=Path(override_file) if override_file else None,
            metadata_base_url=str(data.get("metadata_base_url", DEFAULT_METADATA_BASE_URL)),
            metadata_api_key=data.get("metadata_api_key"),
            metadata_timeout=float(data.get("metadata_timeout", 10.0)),
            metadata_max_retries=_parse_non_negative_int(
                data.get("metadata_max_retries", 2), "capabilities.metadata_max_retries", 2
            ),
        )


@dataclass
class EnvelopeConfig:
    """Configuration with support for env vars and TOML overrides."""

    log_level: str = "INFO"
    structured_logging: bool = True

    budget: BudgetSettings = field(default_factory=BudgetSettings)
    capabilities: CapabilitySettings = field(default_factory=CapabilitySettings)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "EnvelopeConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get("CONTEXT_ENVELOPE_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in DEFAULT_CONFIG_FILES:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = str(log["level"]).upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            if "budget" in data:
                self.budget = BudgetSettings.from_toml_dict(data["budget"])

            if "capabilities" in data:
                self.capabilities = CapabilitySettings.from_toml_dict(data["capabilities"])

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("CONTEXT_ENVELOPE_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("CONTEXT_ENVELOPE_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        if max_tokens := os.environ.get("CONTEXT_ENVELOPE_MAX_TOKENS"):
            self.budget.max_tokens = _parse_non_negative_int(
                max_tokens, "CONTEXT_ENVELOPE_MAX_TOKENS", self.budget.max_tokens
            )
        if min_chunks := os.environ.get("CONTEXT_ENVELOPE_MIN_CHUNKS"):
            self.budget.min_chunks = _parse_non_negative_int(
                min_chunks, "CONTEXT_ENVELOPE_MIN_CHUNKS", self.budget.min_chunks
            )
        if reserve := os.environ.get("CONTEXT_ENVELOPE_TASK_RESERVE"):
            self.budget.task_reserve = _parse_non_negative_int(
                reserve, "CONTEXT_ENVELOPE_TASK_RESERVE", self.budget.task_reserve
            )

        if override_file := os.environ.get("CONTEXT_ENVELOPE_CAPABILITIES_FILE"):
            self.capabilities.override_file = Path(override_file)
        if base_url := os.environ.get("PORTKEY_BASE_URL"):
            self.capabilities.metadata_base_url = base_url
        if api_key := os.environ.get("PORTKEY_API_KEY"):
            self.capabilities.metadata_api_key = api_key

    def setup_logging(self) -> logging.Logger:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)
        return configure_logging(
            level=level,
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[EnvelopeConfig] = None


def get_config() -> EnvelopeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = EnvelopeConfig.from_env()
    return _config


def set_config(config: Optional[EnvelopeConfig]) -> None:
    """Set (or reset with None) the global configuration instance."""
    global _config
    _config = config
