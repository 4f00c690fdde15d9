"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "mysql+aiomysql://root:@localhost:3306/search_products?charset=utf8mb4"
    db_timeout_seconds: float = 60.0

    # Upstream catalog API
    catalog_api_url: str = "https://csapi.claroshop.com/products/v1/products/"
    api_page_size: int = 100
    api_timeout_seconds: float = 30.0
    api_max_retries: int = 3
    api_retry_delay_seconds: float = 1.0  # Linear backoff base: delay * attempt
    api_user_agent: str = "ProductIngest/1.0"

    # ==========================================================================
    # Bulk Upsert Settings
    # ==========================================================================
    db_chunk_size: int = 50  # Products per transaction
    chunk_pause_seconds: float = 0.1  # Pacing between chunks

    # ==========================================================================
    # Pipeline Driver Settings
    # ==========================================================================
    page_pause_seconds: float = 0.1
    error_pause_seconds: float = 2.0  # Pause after a failed page
    max_consecutive_errors: int = 5  # Abort when the streak goes above this
    checkpoint_interval: int = 25  # Pages between checkpoint writes
    checkpoint_path: str = "logs/checkpoint.json"

    # ==========================================================================
    # Search Index (Typesense) Settings
    # ==========================================================================
    typesense_host: str = "localhost"
    typesense_port: int = 8108
    typesense_protocol: str = "http"
    typesense_api_key: str = "cs-products-search-supersecret-key-2024"
    typesense_collection: str = "products"
    typesense_timeout_seconds: float = 60.0
    index_batch_size: int = 100  # 10 is a good value when debugging
    index_batch_pause_seconds: float = 0.0
    error_examples_per_bucket: int = 3

    # Maintenance
    cleanup_days_old: int = 30

    # App Settings
    debug_reports: bool = False
    logs_dir: str = "logs"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def typesense_url(self) -> str:
        return f"{self.typesense_protocol}://{self.typesense_host}:{self.typesense_port}"


settings = Settings()
