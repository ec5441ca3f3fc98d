"""Configuration settings for the medication tracker."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        """Initialize settings by loading from .env file and environment variables."""
        # Load .env file if it exists
        env_path = Path(__file__).parent.parent.parent / ".env"
        load_dotenv(dotenv_path=env_path)

        # Groq LLM Configuration (only needed when explanations are generated)
        self.groq_api_key: Optional[str] = self._get_env("GROQ_API_KEY")
        self.groq_model: str = self._get_env("GROQ_MODEL", "openai/gpt-oss-120b")
        self.groq_timeout: int = int(self._get_env("GROQ_TIMEOUT", "30"))
        self.groq_max_retries: int = int(self._get_env("GROQ_MAX_RETRIES", "3"))

        # openFDA reference lookup
        self.openfda_url: str = self._get_env(
            "OPENFDA_URL", "https://api.fda.gov/drug/label.json"
        )
        self.openfda_timeout: int = int(self._get_env("OPENFDA_TIMEOUT", "10"))
        self.reference_text_limit: int = int(
            self._get_env("REFERENCE_TEXT_LIMIT", "1500")
        )

        # Application Configuration
        self.log_level: str = self._get_env("LOG_LEVEL", "INFO")
        self.data_dir: Path = Path(self._get_env("DATA_DIR", "data"))
        self.user_id: str = self._get_env("MEDBUDDY_USER_ID", "local")
        self.date_check_interval_seconds: int = int(
            self._get_env("DATE_CHECK_INTERVAL_SECONDS", "60")
        )

        # Timezone Configuration
        self.default_timezone_offset: str = self._get_env(
            "DEFAULT_TIMEZONE_OFFSET", "+00:00"
        )

    def _get_env(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get environment variable with optional default value.

        Args:
            key: Environment variable name
            default: Default value if variable is not set

        Returns:
            Environment variable value or default
        """
        return os.getenv(key, default)

    def __repr__(self) -> str:
        """Return string representation of settings (without sensitive data)."""
        return (
            f"Settings("
            f"groq_api_key={'*' * 8}, "
            f"groq_model={self.groq_model}, "
            f"groq_timeout={self.groq_timeout}, "
            f"groq_max_retries={self.groq_max_retries}, "
            f"openfda_url={self.openfda_url}, "
            f"log_level={self.log_level}, "
            f"data_dir={self.data_dir}, "
            f"user_id={self.user_id}, "
            f"date_check_interval_seconds={self.date_check_interval_seconds}, "
            f"default_timezone_offset={self.default_timezone_offset}"
            f")"
        )
