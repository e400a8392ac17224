"""Settings for the release pipeline, loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Triplestore
    sparql_endpoint: str = "http://database:8890/sparql"
    sparql_update_endpoint: Optional[str] = Field(default=None, validate_default=True)
    sparql_sudo: bool = True
    request_timeout: float = 300.0

    # Graphs
    task_graph: str = "http://mu.semte.ch/graphs/publication-tasks"
    public_graph: str = "http://mu.semte.ch/graphs/public"
    email_graph: str = "http://mu.semte.ch/graphs/system/email"
    email_outbox: str = "http://themis.vlaanderen.be/id/mail-folders/d9a415a4-b5e5-41d0-80ee-3f85d69e318c"

    # Resources
    host_domain: str = "https://themis.vlaanderen.be"
    resource_base_uri: str = "http://themis.vlaanderen.be"
    catalog_uri: str = "http://themis.vlaanderen.be/id/catalog/1e4733c1-7701-4f99-b3db-f5d348a7bc4b"
    dataset_type: str = "http://themis.vlaanderen.be/id/concept/dataset-type/9119805f-9ee6-4ef1-9ef7-ad8dccc2bf2d"
    subject_type: str = "http://data.vlaanderen.be/ns/besluit#Vergaderactiviteit"

    # Batching
    update_batch_size: int = 10
    select_batch_size: int = 1000

    # Snapshot files
    share_dir: Path = Path("/share")

    # Failure notification
    email_from_address: str = "noreply@kaleidos.vlaanderen.be"
    email_to_address_on_failure: str = ""

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @field_validator("sparql_update_endpoint", mode="before")
    @classmethod
    def default_update_endpoint(cls, v, info):
        """Updates go to the query endpoint unless a separate one is set."""
        if v:
            return v
        return info.data.get("sparql_endpoint")

    @field_validator("update_batch_size", "select_batch_size")
    @classmethod
    def positive_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch sizes must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
