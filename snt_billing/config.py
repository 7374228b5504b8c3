"""Application configuration from environment variables."""

from dotenv import find_dotenv, load_dotenv
from pydantic import Field, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./snt_billing.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Path to log file")

    # API
    api_title: str = Field(default="SNT Billing API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    # Billing
    csv_delimiter: str = Field(default=";", description="Delimiter for CSV exports")
    auto_allocate_on_import: bool = Field(
        default=True, description="Apply imported payments to open accruals right away"
    )


# get_log_level reads LOG_LEVEL straight from os.environ; .env is looked up
# from the working directory, as env_file above is
load_dotenv(find_dotenv(usecwd=True))

# Global settings instance
settings = Settings()
