"""Configuration management for Meal Planner Service.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults
"""

import os

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        # Default: gemini-2.5-flash (fast, cheap, follows JSON mime hints well)
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        # LLM Model Parameters
        # Temperature: 0.4 keeps meal plans varied without drifting off the JSON shape
        self.TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.4"))
        # Max Output Tokens: a full week (21 meals) needs well over 4k tokens
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "8192"))

        # Guarded Generation Configuration
        # MAX_ATTEMPTS: generate -> extract -> parse -> validate passes per request
        self.MAX_ATTEMPTS: int = int(os.getenv("MAX_ATTEMPTS", "3"))
        # RETRY_BASE_DELAY: seconds, multiplied by the attempt number (linear backoff)
        self.RETRY_BASE_DELAY: float = float(os.getenv("RETRY_BASE_DELAY", "0.4"))

        # Rate Limiting: fixed window per (user, action)
        self.RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
        # How often expired windows are purged when the limiter is started
        self.RATE_LIMIT_CLEANUP_SECONDS: int = int(os.getenv("RATE_LIMIT_CLEANUP_SECONDS", "300"))

        # Prompt defaults
        # DEFAULT_CALORIE_GOAL: daily target used when the profile has none
        self.DEFAULT_CALORIE_GOAL: int = int(os.getenv("DEFAULT_CALORIE_GOAL", "2000"))
        # ALTERNATIVES_COUNT: meal suggestions offered when swapping a meal
        self.ALTERNATIVES_COUNT: int = int(os.getenv("ALTERNATIVES_COUNT", "3"))

    def validate(self) -> None:
        """Validate required configuration.

        Raises:
            ValueError: If required API keys are missing or invalid values provided.
        """
        if not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY environment variable is required")
        self.validate_generation()

    def validate_generation(self) -> None:
        """Validate every setting except the API key.

        Services run this on construction, including when a client is injected.

        Raises:
            ValueError: If a sampling, retry, rate-limit or prompt setting is invalid.
        """
        if not (0.0 <= self.TEMPERATURE <= 2.0):
            raise ValueError(
                f"TEMPERATURE must be between 0.0 and 2.0, got: {self.TEMPERATURE}"
            )
        if self.MAX_OUTPUT_TOKENS < 512:
            raise ValueError(
                f"MAX_OUTPUT_TOKENS must be at least 512, got: {self.MAX_OUTPUT_TOKENS}"
            )
        if self.MAX_ATTEMPTS < 1:
            raise ValueError(
                f"MAX_ATTEMPTS must be at least 1, got: {self.MAX_ATTEMPTS}"
            )
        if self.RETRY_BASE_DELAY < 0:
            raise ValueError(
                f"RETRY_BASE_DELAY must not be negative, got: {self.RETRY_BASE_DELAY}"
            )
        if self.RATE_LIMIT_WINDOW_SECONDS < 1:
            raise ValueError(
                f"RATE_LIMIT_WINDOW_SECONDS must be at least 1, got: {self.RATE_LIMIT_WINDOW_SECONDS}"
            )
        if self.RATE_LIMIT_MAX_REQUESTS < 1:
            raise ValueError(
                f"RATE_LIMIT_MAX_REQUESTS must be at least 1, got: {self.RATE_LIMIT_MAX_REQUESTS}"
            )
        if self.RATE_LIMIT_CLEANUP_SECONDS < 1:
            raise ValueError(
                f"RATE_LIMIT_CLEANUP_SECONDS must be at least 1, got: {self.RATE_LIMIT_CLEANUP_SECONDS}"
            )
        if not (1 <= self.ALTERNATIVES_COUNT <= 10):
            raise ValueError(
                f"ALTERNATIVES_COUNT must be between 1 and 10, got: {self.ALTERNATIVES_COUNT}"
            )


# Module-level config instance. Validation runs when the Gemini client is
# built so the library imports cleanly without an API key.
config = Config()
