from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./recharge.db"

    # Internal API security
    operator_api_key: str = ""

    # Code inventory
    code_import_batch_limit: int = 1000
    code_expiry_days: int = 30
    allocation_max_attempts: int = 5
    default_app_name: str = "Default App"
    company_name: str = "Recharge Store"

    # Expiry reminders
    reminder_timezone: str = "UTC"
    expiry_reminder_worker_enabled: bool = False
    expiry_reminder_interval_seconds: int = 3600
    expiry_reminder_initial_delay_seconds: float = 5.0
    expiry_reminder_trigger_label: str = "scheduler"

    # Outbound messaging (Z-API WhatsApp gateway)
    whatsapp_enabled: bool = False
    zapi_base_url: str = "https://api.z-api.io"
    zapi_api_key: str = ""
    zapi_instance_id: str = ""
    zapi_client_token: str = ""
    whatsapp_country_code: str = "55"
    messaging_timeout_seconds: float = 10.0
    sale_notifications_enabled: bool = True

    # Cron scheduler
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"

    @field_validator("whatsapp_country_code", mode="before")
    @classmethod
    def _digits_only(cls, value: object) -> str:
        if value is None:
            return ""
        return "".join(ch for ch in str(value) if ch.isdigit())

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_enabled and self.zapi_api_key and self.zapi_instance_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
