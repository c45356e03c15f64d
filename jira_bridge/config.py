import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv()  # loads from .env if present


REQUIRED_VARS = ("JIRA_BASE_URL", "JIRA_USERNAME", "JIRA_PASSWORD")


@dataclass(frozen=True)
class Settings:
    # Network
    listen_host: str = os.getenv("LISTEN_HOST", "127.0.0.1")
    listen_port: int = int(os.getenv("LISTEN_PORT", "8088"))

    # Jira
    jira_base_url: str = os.getenv("JIRA_BASE_URL", "")
    jira_username: str = os.getenv("JIRA_USERNAME", "")
    jira_password: str = os.getenv("JIRA_PASSWORD", "")
    jira_webhook_secret: str = os.getenv("JIRA_WEBHOOK_SECRET", "")

    # Transport behaviour
    jira_timeout_seconds: int = int(os.getenv("JIRA_TIMEOUT_SECONDS", "30"))
    jira_max_attempts: int = int(os.getenv("JIRA_MAX_ATTEMPTS", "6"))
    jira_retry_backoff_seconds: float = float(os.getenv("JIRA_RETRY_BACKOFF_SECONDS", "1.0"))

    # Where normalized events are forwarded (optional)
    app_events_url: str = os.getenv("APP_EVENTS_URL", "")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "human")  # human|json
    log_file: str = os.getenv("LOG_FILE", "")

    def missing(self) -> List[str]:
        """Names of required env vars that are not set."""
        values = {
            "JIRA_BASE_URL": self.jira_base_url,
            "JIRA_USERNAME": self.jira_username,
            "JIRA_PASSWORD": self.jira_password,
        }
        return [name for name in REQUIRED_VARS if not values[name]]

    def require(self) -> None:
        missing = self.missing()
        if missing:
            raise RuntimeError(f"Missing required env var(s): {', '.join(missing)}")


settings = Settings()
