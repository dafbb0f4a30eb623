"""Application configuration loaded from environment variables.

Settings for database, mail delivery, temporary link lifetimes, and the
expired-link sweeper. Uses pydantic-settings for validation and .env file
support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_settings() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "templink_dev_password"  # nosec B105


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "templink"
    database_user: str = "templink_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    site_name: str = "nealblim.com"

    # Public URL used to build absolute links inside emails
    backend_url: str = "http://localhost:8000"

    # Mail delivery
    # Sender used when a message does not name one explicitly
    admin_email_address: str = "no-reply@nealblim.com"
    mail_transport: Literal["sendmail", "resend", "log"] = "sendmail"
    sendmail_path: str = "/usr/sbin/sendmail"
    resend_api_key: SecretStr = SecretStr("")

    # Temporary link lifetimes (hours)
    activation_link_ttl_hours: int = 24
    reset_link_ttl_hours: int = 2

    # Expired link cleanup
    expired_link_sweep_enabled: bool = True
    expired_link_sweep_interval_seconds: int = 60 * 60

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "5/hour")
    rate_limit_link_requests: str = "5/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate link lifetimes, mail transport, and production security.

        Checks:
        - Link TTLs must be positive so every link expires in the future
        - Sweep interval must be positive
        - Resend transport requires an API key
        - Database password must not be the default in production
        """
        for name in ("activation_link_ttl_hours", "reset_link_ttl_hours"):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.expired_link_sweep_interval_seconds <= 0:
            msg = (
                "EXPIRED_LINK_SWEEP_INTERVAL_SECONDS must be positive. "
                f"Got: {self.expired_link_sweep_interval_seconds}"
            )
            raise ValueError(msg)

        if (
            self.mail_transport == "resend"
            and not self.resend_api_key.get_secret_value()
        ):
            msg = "RESEND_API_KEY must be set when MAIL_TRANSPORT=resend."
            raise ValueError(msg)

        if (
            self.environment == "production"
            and self.database_password == _INSECURE_DEFAULT_PASSWORD
        ):
            msg = (
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD environment variable to a secure value."
            )
            raise ValueError(msg)

        return self


settings = Settings()
