"""
Configuration management for the prediction attestation agent.

This module handles all configuration loading from environment variables
and provides type-safe access to configuration values throughout the application.
"""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """
    Centralized configuration class for the attestation agent.

    All configuration values are loaded from environment variables with
    sensible defaults where appropriate. Nothing here holds key material:
    signing and broadcasting are handled outside this agent.
    """

    # Sapience Configuration
    SAPIENCE_MCP_URL: str = os.getenv("SAPIENCE_MCP_URL", "https://api.sapience.xyz/mcp")
    ATTESTER_ADDRESS: Optional[str] = os.getenv("ATTESTER_ADDRESS")

    # Chain Configuration
    CHAIN_ID: int = int(os.getenv("CHAIN_ID", "42161"))

    # Attestation Parameters
    PROBABILITY_CHANGE_THRESHOLD: float = float(os.getenv("PROBABILITY_CHANGE_THRESHOLD", "10"))
    REATTEST_MIN_HOURS: float = float(os.getenv("REATTEST_MIN_HOURS", "24"))
    MIN_CONFIDENCE: float = float(os.getenv("MIN_CONFIDENCE", "0.6"))
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "5"))

    # Request Timeouts (seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))

    # Scheduler Configuration
    ATTEST_INTERVAL_SECONDS: int = int(os.getenv("ATTEST_INTERVAL_SECONDS", "300"))
    SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[Path] = Path(os.getenv("LOG_FILE", "logs/attestor.log")) if os.getenv("LOG_FILE") else None

    @classmethod
    def validate(cls) -> tuple[bool, list[str]]:
        """
        Validate configuration values.

        Returns:
            tuple: (is_valid, list_of_errors)
        """
        errors: list[str] = []

        if not cls.ATTESTER_ADDRESS:
            errors.append("ATTESTER_ADDRESS is required but not set")

        # Validate numeric ranges
        if not (0.0 <= cls.PROBABILITY_CHANGE_THRESHOLD <= 100.0):
            errors.append("PROBABILITY_CHANGE_THRESHOLD must be between 0 and 100")

        if cls.REATTEST_MIN_HOURS < 0:
            errors.append("REATTEST_MIN_HOURS cannot be negative")

        if not (0.0 <= cls.MIN_CONFIDENCE <= 1.0):
            errors.append("MIN_CONFIDENCE must be between 0.0 and 1.0")

        if cls.BATCH_SIZE < 1:
            errors.append("BATCH_SIZE must be at least 1")

        if cls.ATTEST_INTERVAL_SECONDS < 1:
            errors.append("ATTEST_INTERVAL_SECONDS must be at least 1")

        return (len(errors) == 0, errors)

    @classmethod
    def ensure_directories(cls) -> None:
        """Create the log directory if a log file is configured."""
        if cls.LOG_FILE:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
