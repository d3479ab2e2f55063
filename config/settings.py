"""
Interview Dispatch: Configuration
All secrets loaded from environment variables.
Copy .env.example to .env and fill in your credentials.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env before any os.getenv() calls in dataclass defaults
_ENV_PATH = Path.cwd() / ".env"
load_dotenv(_ENV_PATH)


def _split_csv_env(name: str, default: str) -> List[str]:
    return [part.strip().lower() for part in os.getenv(name, default).split(",") if part.strip()]


@dataclass
class AirtableConfig:
    api_key: str = os.getenv("AIRTABLE_API_KEY", "")
    base_id: str = os.getenv("AIRTABLE_BASE_ID", "")
    table_name: str = os.getenv("AIRTABLE_TABLE_NAME", "")
    base_url: str = "https://api.airtable.com/v0"
    timeout: float = 30.0
    # Airtable allows 5 requests/second per base; 429s are retried with backoff
    max_retries: int = 4
    max_backoff: float = 30.0


@dataclass
class MailerSendConfig:
    api_key: str = os.getenv("MAILERSEND_API_KEY", "")
    base_url: str = "https://api.mailersend.com/v1"
    # Sender must be verified in the MailerSend account
    from_email: str = os.getenv("FROM_EMAIL", "noreply@yourdomain.com")
    from_name: str = os.getenv("FROM_NAME", "Interview Scheduling Team")
    timeout: float = 30.0


@dataclass
class DispatchConfig:
    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")
    force_send: bool = os.getenv("FORCE_SEND", "false").lower() == "true"
    allowed_link_domains: List[str] = field(default_factory=lambda: _split_csv_env(
        "ALLOWED_LINK_DOMAINS", "calendly.com,cal.com,forms.gle"
    ))


@dataclass
class DispatchSettings:
    airtable: AirtableConfig = field(default_factory=AirtableConfig)
    mailersend: MailerSendConfig = field(default_factory=MailerSendConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    debug: bool = os.getenv("DISPATCH_DEBUG", "false").lower() == "true"


def missing_required_settings(settings: "DispatchSettings" = None) -> List[str]:
    """Return the env var names of required settings that are unset."""
    settings = settings or config
    required = {
        "AIRTABLE_API_KEY": settings.airtable.api_key,
        "AIRTABLE_BASE_ID": settings.airtable.base_id,
        "AIRTABLE_TABLE_NAME": settings.airtable.table_name,
        "MAILERSEND_API_KEY": settings.mailersend.api_key,
    }
    return [name for name, value in required.items() if not value]


# Global config instance
config = DispatchSettings()
