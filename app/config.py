"""
Service configuration, read from the environment and an optional .env file.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Sampling, storage and service settings; every field can be overridden by env var."""

    # Sampling Round
    tree_count: int = Field(
        default=100,
        description="Number of tree sites in a standard sampling round"
    )
    max_fruit_count: int = Field(
        default=300,
        description="Upper bound for any per-tree fruit count"
    )
    max_leaf_count: int = Field(
        default=50,
        description="Upper bound for any per-tree leaf count"
    )
    min_sampled_trees: int = Field(
        default=2,
        description="Minimum sampled trees required to project the rest"
    )

    # Risk Thresholds (percent, lower bound of the next bucket)
    infestation_moderate_threshold: float = Field(
        default=2.0,
        description="Bore infestation rate at which risk becomes moderate"
    )
    infestation_severe_threshold: float = Field(
        default=5.0,
        description="Bore infestation rate at which risk becomes severe"
    )
    rust_moderate_threshold: float = Field(
        default=5.0,
        description="Rust incidence rate at which risk becomes moderate"
    )
    rust_severe_threshold: float = Field(
        default=10.0,
        description="Rust incidence rate at which risk becomes severe"
    )

    # Imputation
    imputation_seed: Optional[int] = Field(
        default=None,
        description="Fixed seed for imputation draws (unset = fresh entropy)"
    )

    # Storage
    storage_path: str = Field(
        default="data/evaluations.json",
        description="Path of the JSON file holding all evaluations"
    )

    # Agronomic Analysis API Configuration
    analysis_api_base_url: str = Field(
        default="https://api.example.com",
        description="Base URL for the agronomic analysis service"
    )
    analysis_api_key: str = Field(
        default="",
        description="API key for the agronomic analysis service"
    )
    analysis_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for analysis requests"
    )

    # Retries against the analysis service (exponential backoff)
    max_retry_attempts: int = Field(
        default=3,
        description="Attempts per analysis request, including the first"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Backoff multiplier between analysis attempts"
    )
    retry_min_wait: int = Field(
        default=4,
        description="Shortest pause in seconds before retrying"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Longest pause in seconds before retrying"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level name"
    )

    # HTTP surface
    cors_origins: list[str] = Field(
        default=["*"],
        description="Origins allowed to call the API from a browser"
    )
    rate_limit_requests: int = Field(
        default=100,
        description="Requests per minute allowed for one client address"
    )
    app_name: str = Field(
        default="Coffee Plot Sampling API",
        description="Service name shown in the docs and health checks"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Service version shown in the docs and health checks"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
