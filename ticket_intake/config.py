"""
Configuration module for the Support Ticket Intake System.

Handles all configuration through environment variables with safe defaults.
Keyword rule tables are not configured here; see rules.py for how a rule
file or URL named here is loaded.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


DEFAULT_MAX_PAYLOAD_BYTES = 10 * 1024 * 1024


def _optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    return Path(value) if value else None


@dataclass(frozen=True)
class RulesConfig:
    """Where the classifier keyword rules come from."""

    # Local YAML rule table (takes precedence over the URL)
    rules_file: Optional[Path] = field(
        default_factory=lambda: _optional_path("CLASSIFIER_RULES_FILE")
    )

    # Remote YAML rule table
    rules_url: str = field(
        default_factory=lambda: os.getenv("CLASSIFIER_RULES_URL", "")
    )

    # Request timeout in seconds
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30"))
    )


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the ticket store used by the CLI."""

    store_dir: Path = field(
        default_factory=lambda: Path(os.getenv("TICKET_STORE_DIR", "./data/tickets"))
    )


@dataclass(frozen=True)
class ImportConfig:
    """Configuration for bulk imports."""

    auto_classify: bool = field(
        default_factory=lambda: os.getenv("IMPORT_AUTO_CLASSIFY", "true").lower() == "true"
    )
    max_payload_bytes: int = field(
        default_factory=lambda: int(
            os.getenv("IMPORT_MAX_BYTES", str(DEFAULT_MAX_PAYLOAD_BYTES))
        )
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""

    rules: RulesConfig = field(default_factory=RulesConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    importer: ImportConfig = field(default_factory=ImportConfig)

    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if self.rules.rules_file and self.rules.rules_url:
            errors.append(
                "Set only one of CLASSIFIER_RULES_FILE and CLASSIFIER_RULES_URL"
            )
        if self.rules.rules_file and not self.rules.rules_file.is_file():
            errors.append(f"CLASSIFIER_RULES_FILE not found: {self.rules.rules_file}")
        if self.rules.request_timeout <= 0:
            errors.append("REQUEST_TIMEOUT must be positive")

        if self.importer.max_payload_bytes <= 0:
            errors.append("IMPORT_MAX_BYTES must be positive")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            errors.append(f"LOG_LEVEL '{self.log_level}' is not a valid logging level")

        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()
