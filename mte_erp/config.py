"""
Centralized configuration using Pydantic Settings.

All environment variables are loaded and validated here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # PostgreSQL
    database_host: str = "postgres"
    database_port: int = 5432
    database_name: str = "mte_erp"
    database_user: str = "mte_erp"
    database_password: str = ""

    # Reordering
    reorder_max_attempts: int = 3
    reorder_retry_delay: float = 0.05  # seconds

    # MinIO (optional)
    minio_endpoint: str | None = None
    minio_access_key: str | None = None
    minio_secret_key: str | None = None
    minio_bucket: str = "mte-erp-files"
    minio_secure: bool = True

    # Task attachment uploads over this size are skipped (25 MiB)
    attachment_max_size: int = 26214400

    # Pusher-compatible live updates (optional, e.g. soketi)
    pusher_app_id: str | None = None
    pusher_key: str | None = None
    pusher_secret: str | None = None
    pusher_host: str | None = None
    pusher_port: int | None = None
    pusher_cluster: str | None = None
    pusher_ssl: bool = True

    # SendGrid
    sendgrid_api_key: str = ""
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    mail_from_email: str = "inquiry@mte.example.com"
    mail_from_name: str = "MTE"

    # WhatsApp Cloud API
    whatsapp_api_url: str = "https://graph.facebook.com/v17.0"
    whatsapp_access_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_supplier_template: str = "inquiries_send_to_supplier"
    whatsapp_customer_template: str = "offer_sent_to_customer"

    # Outbound HTTP
    dispatch_timeout: float = 30.0

    # Document subjects, e.g. "INQUIRY FROM MTE"
    company_code: str = "MTE"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def pusher_enabled(self) -> bool:
        """Check if live updates are configured."""
        return bool(self.pusher_app_id and self.pusher_key and self.pusher_secret)


# Global settings instance
settings = Settings()
