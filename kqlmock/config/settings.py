# Configuration management

from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore
from functools import lru_cache
from typing import List

from kqlmock.ingest.table_builder import ColumnTypePolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KQLMOCK_", env_file=".env", case_sensitive=False)

    # Application
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # Batch queries
    query_timeout_seconds: float = 30.0  # 0 disables the per-item timeout
    # 0 = unbounded; a timed-out threaded query keeps its slot until it returns
    max_concurrent_queries: int = 0

    # Ingestion
    column_type_policy: ColumnTypePolicy = ColumnTypePolicy.FIRST_RECORD

    # Security
    allowed_origins: List[str] = [
        "http://localhost:3000", "http://localhost:8000"]

    # Observability
    metrics_enabled: bool = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
