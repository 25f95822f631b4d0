"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (certificate record store)
    database_url: Optional[str] = None
    postgres_user: str = "bloodlink"
    postgres_password: str = "bloodlink_dev_password"
    postgres_db: str = "bloodlink"
    postgres_port: int = 5432

    # Ledger
    ledger_provider: str = "local"  # local, web3
    ledger_database_url: str = "sqlite:///./bloodlink_ledger.db"
    ledger_operator_address: str = "0x00000000000000000000000000000000000a11ce"
    ledger_confirmation_timeout_seconds: int = 120
    ledger_poll_interval_seconds: float = 2.0
    ledger_gas_limit: int = 200000
    ledger_chain_id: Optional[int] = None
    rpc_url: str = "https://rpc-amoy.polygon.technology/"
    donor_contract_address: Optional[str] = None
    minter_private_key: Optional[str] = None  # Required for web3 provider
    ledger_start_block: int = 0  # First block scanned for audit events

    # Object storage (certificate files)
    storage_provider: str = "local"  # local, minio
    local_storage_path: str = "./storage/certificates"
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None  # Required in non-dev
    minio_secret_key: Optional[str] = None  # Required in non-dev
    minio_bucket: str = "certificates"
    minio_use_ssl: bool = False

    # Uploads
    max_certificate_size_mb: int = 10
    allowed_certificate_types: list[str] = [
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
    ]

    # API
    api_port: int = 8000
    environment: str = "development"
    api_host: str = "0.0.0.0"

    # Security
    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def max_certificate_size_bytes(self) -> int:
        return self.max_certificate_size_mb * 1024 * 1024

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.ledger_provider == "local":
                raise ValueError(
                    "LEDGER_PROVIDER=local is not allowed in production. "
                    "Use LEDGER_PROVIDER=web3."
                )
            if not self.donor_contract_address or not self.minter_private_key:
                raise ValueError(
                    "DONOR_CONTRACT_ADDRESS and MINTER_PRIVATE_KEY are required in production."
                )
            if self.storage_provider == "local":
                raise ValueError(
                    "STORAGE_PROVIDER=local is not allowed in production. "
                    "Use STORAGE_PROVIDER=minio."
                )
            if not self.minio_access_key or not self.minio_secret_key:
                raise ValueError(
                    "MINIO_ACCESS_KEY and MINIO_SECRET_KEY are required in production. "
                    "Do not use default credentials."
                )
            if self.jwt_secret_key.startswith("dev-"):
                raise ValueError("JWT_SECRET_KEY must be set in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
