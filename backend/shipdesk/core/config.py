from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Shipdesk"
    app_version: str = "0.1.0"
    environment: str = "local"
    log_json: bool = False

    # Remote document store; local mode is used when unset.
    remote_database_url: str | None = None
    redis_url: str | None = None
    change_feed_channel: str = "shipdesk:shipments"
    admin_email_allowlist: list[str] = []

    local_store_path: str = "shipdesk-localstore.json"
    local_storage_key: str = "jp_shipments"
    local_store_max_bytes: int = 5 * 1024 * 1024
    seed_demo_data: bool = True

    tracking_prefix: str = "JP"
    public_origin: str = "https://jpeglogistics.cc"
    tracking_path: str = "/tracking.html"

    emailjs_service_id: str | None = None
    emailjs_template_id: str | None = None
    emailjs_public_key: str | None = None
    emailjs_private_key: str | None = None
    emailjs_api_url: str = "https://api.emailjs.com/api/v1.0/email/send"
    email_from: str = "info@ssdtechnicianlab.com"
    email_from_name: str = "JP Logistics"
    email_timeout_seconds: float = 10.0

    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0

    cors_origins: list[str] = ["http://localhost:8000"]

    @property
    def remote_configured(self) -> bool:
        return bool((self.remote_database_url or "").strip())

    @property
    def relay_configured(self) -> bool:
        return all(
            (value or "").strip()
            for value in (self.emailjs_service_id, self.emailjs_template_id, self.emailjs_public_key)
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
