from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    LOG_LEVEL: str = "INFO"

    # Link-matching backend
    LINK_API_BASE_URL: str = "http://localhost:3000"
    LINK_API_KEY: str | None = None
    LINK_API_REQUEST_TIMEOUT: float = 15.0  # transport-level, outer bound per request

    # =================================================================
    # RETRY CONTROLLER SETTINGS
    # =================================================================
    ATTRIBUTION_ATTEMPT_TIMEOUT: float = 10.0
    ATTRIBUTION_MAX_ATTEMPTS: int = 3
    ATTRIBUTION_BACKOFF_FACTOR: float = 2.0  # 2s before attempt 2, 4s before attempt 3
    ATTRIBUTION_BACKOFF_JITTER: float = 0.0  # fraction of the delay, 0 disables

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_retry_config(self) -> dict:
        """
        Get retry controller configuration.
        Development keeps the documented contract; only jitter is forced off
        so local runs are reproducible.
        """
        config = {
            "max_attempts": self.ATTRIBUTION_MAX_ATTEMPTS,
            "attempt_timeout": self.ATTRIBUTION_ATTEMPT_TIMEOUT,
            "backoff_factor": self.ATTRIBUTION_BACKOFF_FACTOR,
            "jitter": self.ATTRIBUTION_BACKOFF_JITTER,
        }

        if self.environment == "development":
            config["jitter"] = 0.0

        return config


settings = Settings()
